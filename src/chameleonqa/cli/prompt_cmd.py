"""chameleonqa prompt — Print a hand-off prompt for free-form rewriting.

The prompt carries the page objects the script already touches; it is
written to stdout so it can be piped elsewhere.
"""

from __future__ import annotations

from pathlib import Path

import typer

from chameleonqa.cli.common import console, load_config, output_console, read_script, resolve_repo
from chameleonqa.engine.prompt import ContextMatcher, generate_refactor_prompt
from chameleonqa.engine.reconnaissance import perform_reconnaissance


def prompt(
    script: Path = typer.Argument(..., help="Recorded Playwright script."),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Target repository root.  [default: .]"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file (default: repo chameleonqa.yaml)."),
) -> None:
    """Print an LLM prompt with the relevant page-object context for a script."""
    raw_code = read_script(script)
    repo_root = resolve_repo(repo)
    config = load_config(repo_root, config_path)

    recon = perform_reconnaissance(repo_root, config)
    context = ContextMatcher().match(raw_code, recon.page_object_index)
    console.print(
        f"[dim]{len(context.relevant_pages)} relevant page object(s), "
        f"{len(context.matched_selectors)} matched selector(s)[/dim]"
    )
    output_console.print(generate_refactor_prompt(raw_code, context), markup=False, highlight=False, soft_wrap=True)
