"""Helpers shared by the ChameleonQA subcommands."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from chameleonqa.config import ChameleonConfig, ChameleonConfigError

console = Console(stderr=True)
output_console = Console()  # stdout for machine-readable output


def print_error(message: str, title: str = "Error") -> None:
    console.print(Panel(f"[red]{message}[/red]", title=f"[red]{title}[/red]", border_style="red"))


def resolve_repo(repo: Path) -> Path:
    """Absolute repository root, or exit 2 when it does not exist."""
    if not repo.is_dir():
        print_error(
            f"Repository not found: {repo}\n\nTo fix: pass --repo pointing at the target repository root",
            "Config Error",
        )
        raise typer.Exit(code=2)
    return repo.resolve()


def load_config(repo_root: Path, config_path: Path | None) -> ChameleonConfig:
    """Explicit --config file, else the repository's own chameleonqa.yaml, else defaults."""
    try:
        if config_path is not None:
            return ChameleonConfig.from_file(config_path)
        return ChameleonConfig.discover(repo_root)
    except ChameleonConfigError as exc:
        print_error(str(exc), "Config Error")
        raise typer.Exit(code=2)


def read_script(script: Path) -> str:
    if not script.is_file():
        print_error(f"Script not found: {script}\n\nTo fix: pass the path of a recorded Playwright script", "Config Error")
        raise typer.Exit(code=2)
    return script.read_text(encoding="utf-8")
