"""ChameleonQA CLI — Main Typer entry point.

Registers all subcommands and provides --version / --verbose global options.
"""

from __future__ import annotations

import typer
from rich.console import Console

from chameleonqa import __version__

TAGLINE = "Recorded Playwright scripts, refactored into your page objects."

console = Console()

# ── Version callback ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"ChameleonQA v{__version__}", style="bold")
        console.print(f"  {TAGLINE}", style="dim")
        raise typer.Exit()


# ── Main app ──────────────────────────────────────────────────────────────

app = typer.Typer(
    name="chameleonqa",
    help=TAGLINE,
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show ChameleonQA version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
) -> None:
    """ChameleonQA -- style-matched page-object refactoring for Playwright tests."""
    if verbose:
        import logging

        logging.basicConfig(level=logging.DEBUG, format="%(name)s  %(message)s")


# ── Register subcommands ──────────────────────────────────────────────────

from chameleonqa.cli.inspect_cmd import inspect  # noqa: E402
from chameleonqa.cli.prompt_cmd import prompt  # noqa: E402
from chameleonqa.cli.refactor import refactor  # noqa: E402

app.command(name="refactor", help="Refactor a recorded script into the repository's page objects.")(refactor)
app.command(name="inspect", help="Show detected structure, style and page objects (no changes).")(inspect)
app.command(name="prompt", help="Print an LLM hand-off prompt with relevant page-object context.")(prompt)
