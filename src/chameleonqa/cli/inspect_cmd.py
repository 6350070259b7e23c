"""chameleonqa inspect — Show what ChameleonQA learns about a repository.

Runs reconnaissance only and makes no changes.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.panel import Panel
from rich.table import Table

from chameleonqa.cli.common import console, load_config, resolve_repo
from chameleonqa.engine.reconnaissance import ReconnaissanceResult, perform_reconnaissance


def _print_context(recon: ReconnaissanceResult) -> None:
    ctx = recon.repo_context
    style = recon.style_profile
    lines = [
        f"[bold]Type:[/bold]          {ctx.repo_type}",
        f"[bold]Page objects:[/bold]  {ctx.page_object_dir or '-'}",
        f"[bold]Tests:[/bold]         {ctx.test_dir or '-'}",
        f"[bold]Fixtures:[/bold]      {ctx.fixture_file or '-'}",
        f"[bold]Config file:[/bold]   {ctx.config_file or '-'}",
        "",
        f"[bold]Locator style:[/bold] {style.locator_style}"
        + (f" ({style.wrapper_class_name})" if style.wrapper_class_name else ""),
        f"[bold]Base class:[/bold]    {style.base_class_name or '-'}",
        f"[bold]Visibility:[/bold]    {style.property_visibility}",
        f"[bold]Methods:[/bold]       {style.method_style}",
        f"[bold]Confidence:[/bold]    {style.confidence:.0%}",
        f"[dim]{style.reasoning}[/dim]",
    ]
    console.print(Panel("\n".join(lines), title="[bold cyan]Repository[/bold cyan]", border_style="cyan"))


def _print_page_objects(recon: ReconnaissanceResult) -> None:
    if not recon.page_object_index:
        console.print("[dim]No page objects indexed.[/dim]")
        return
    table = Table(title="Page Objects")
    table.add_column("Class", style="cyan")
    table.add_column("File")
    table.add_column("Base")
    table.add_column("Locators", justify="right")
    table.add_column("Methods", justify="right")
    table.add_column("Fixture")
    fixtures = {entry.class_name: name for name, entry in recon.fixture_registry.items()}
    for class_name, record in recon.page_object_index.items():
        table.add_row(
            class_name,
            record.file_path,
            record.base_class or "-",
            str(len(record.locators)),
            str(len(record.methods)),
            fixtures.get(class_name, "-"),
        )
    console.print(table)


def inspect(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Target repository root.  [default: .]"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file (default: repo chameleonqa.yaml)."),
) -> None:
    """Show the detected structure, style and page-object index of a repository."""
    repo_root = resolve_repo(repo)
    config = load_config(repo_root, config_path)
    recon = perform_reconnaissance(repo_root, config)
    _print_context(recon)
    _print_page_objects(recon)
