"""chameleonqa refactor — Turn a recorded script into page-object code.

Runs the full pipeline against a target repository: learns its structure
and style, maps every selector to a page object, writes style-matched
properties and a fixture-driven test, then runs the test and repairs
known failure modes.

Exit codes:
- 0: success
- 1: the generated test failed verification
- 2: configuration error (missing repo, script or bad config file)
- 3: internal pipeline error
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import typer
from rich.panel import Panel
from rich.table import Table

from chameleonqa.cli.common import console, load_config, output_console, print_error, read_script, resolve_repo
from chameleonqa.engine.knowledge import RefactorResult
from chameleonqa.engine.orchestrator import RefactorOrchestrator
from chameleonqa.engine.report_generator import ReportGenerator

logger = logging.getLogger("chameleonqa.cli.refactor")


# ── Rich output helpers ───────────────────────────────────────────────────


def _print_summary_panel(result: RefactorResult, dry_run: bool) -> None:
    if result.success:
        border = "green"
        verdict = "[bold green]DRY RUN OK[/bold green]" if dry_run else "[bold green]REFACTOR VERIFIED[/bold green]"
    else:
        border = "red"
        verdict = "[bold red]REFACTOR FAILED[/bold red]"

    lines = [verdict, ""]
    knowledge = result.knowledge
    if knowledge is not None:
        summary = knowledge.summary()
        lines += [
            f"  Repository:   {summary['repo_type']} ({summary['page_objects_found']} page objects)",
            f"  Style:        {summary['locator_style']}",
            f"  Actions:      {summary['tokens_extracted']} in {summary['clusters_identified']} cluster(s)",
            f"  Selectors:    {summary['total_mappings']} ({summary['orphan_selectors']} new)",
        ]
        if knowledge.verification is not None:
            lines.append(
                f"  Verification: {knowledge.verification.state} after {knowledge.verification.attempts} attempt(s)"
            )
    lines.append(f"  Test file:    {result.generated_test_path or '-'}")
    for path in result.modified_files:
        lines.append(f"  Modified:     {path}")

    console.print()
    console.print(Panel("\n".join(lines), title="[bold cyan]ChameleonQA Refactor[/bold cyan]", border_style=border))


def _print_mappings_table(result: RefactorResult) -> None:
    if result.knowledge is None or not result.knowledge.mappings:
        return
    table = Table(title="Selector Mappings", show_lines=False)
    table.add_column("Selector", style="cyan")
    table.add_column("Class")
    table.add_column("Property")
    table.add_column("New", justify="center")
    table.add_column("Confidence", justify="right")
    for m in result.knowledge.mappings:
        table.add_row(
            m.selector.original_text or m.selector.key,
            m.target_class,
            m.target_property,
            "[yellow]yes[/yellow]" if m.is_new_property else "no",
            f"{m.confidence:.2f}",
        )
    console.print(table)


def _print_messages(result: RefactorResult) -> None:
    for warning in result.warnings:
        console.print(f"  [yellow]Warning:[/yellow] {warning}")
    for error in result.errors:
        console.print(f"  [red]Error:[/red] {error}")
    console.print()


def _exit_code(result: RefactorResult) -> int:
    if result.success:
        return 0
    knowledge = result.knowledge
    if knowledge is not None and knowledge.verification is not None and not knowledge.verification.passed:
        return 1
    return 3


# ── Main command ──────────────────────────────────────────────────────────


def refactor(
    script: Path = typer.Argument(..., help="Recorded Playwright script to refactor."),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Target repository root.  [default: .]"),
    instruction: str | None = typer.Option(
        None,
        "--instruction",
        "-i",
        help="What the test does; names the generated test and its file.",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Stage and check everything, write nothing."),
    timeout: float | None = typer.Option(None, "--timeout", help="Overall deadline for the run, in seconds."),
    output_format: str = typer.Option("text", "--output", "-o", help="Output format: text or json.  [default: text]"),
    report: Path | None = typer.Option(None, "--report", help="Write a markdown run report to this path."),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file (default: repo chameleonqa.yaml)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging."),
) -> None:
    """Refactor a recorded script into the target repository's page objects.

    \b
    Examples:
      chameleonqa refactor recorded.ts --repo ../webapp --dry-run
      chameleonqa refactor recorded.ts -r ../webapp -i "Submit contact form"
      chameleonqa refactor recorded.ts -r ../webapp --output json | jq '.success'
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s  %(message)s")

    if output_format not in ("text", "json"):
        print_error(f"Invalid output format: {output_format!r}\n\nValid formats: text, json", "Config Error")
        raise typer.Exit(code=2)

    raw_code = read_script(script)
    repo_root = resolve_repo(repo)
    config = load_config(repo_root, config_path)
    orchestrator = RefactorOrchestrator(config)

    try:
        if output_format == "text":
            with console.status("[bold blue]Refactoring...[/bold blue]", spinner="dots"):
                result = orchestrator.run(raw_code, instruction, repo_root, dry_run=dry_run, timeout=timeout)
        else:
            result = orchestrator.run(raw_code, instruction, repo_root, dry_run=dry_run, timeout=timeout)
    except KeyboardInterrupt:
        console.print("\n[yellow]Run interrupted by user.[/yellow]")
        raise typer.Exit(code=1)

    if report is not None:
        report.parent.mkdir(parents=True, exist_ok=True)
        report.write_text(ReportGenerator().generate(result.knowledge, result), encoding="utf-8")

    if output_format == "json":
        output_console.print(json.dumps(result.to_dict(), indent=2), markup=False, highlight=False, soft_wrap=True)
    else:
        _print_summary_panel(result, dry_run)
        _print_mappings_table(result)
        _print_messages(result)
        if report is not None:
            console.print(f"[dim]Report written to: {report}[/dim]\n")

    code = _exit_code(result)
    if code:
        raise typer.Exit(code=code)
