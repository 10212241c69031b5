"""Command-line interface for convtest."""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from convtest import __version__
from convtest.config import ConvtestConfig, ExecutionConfig, create_example_config


console = Console(stderr=True)


def print_banner() -> None:
    """Print the convtest banner."""
    console.print(
        Panel.fit(
            "[bold blue]convtest[/bold blue] - convention-based test runner",
            subtitle=f"v{__version__}",
        )
    )


def _load_config(ctx: click.Context) -> tuple[ConvtestConfig, Path]:
    """Load the configuration named on the command line, or the nearest one."""
    config_path = ctx.obj.get("config_path")
    try:
        return ConvtestConfig.load_or_default(config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(2)
    except ValueError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        sys.exit(2)


def _make_adapter(ctx: click.Context, config: ConvtestConfig, base_dir: Path):
    from convtest.adapter.protocol import HostAdapter
    from convtest.log import setup_logger

    paths = config.get_absolute_paths(base_dir)
    logger = setup_logger(
        debug_file=paths.get("log_file"),
        verbose=ctx.obj.get("verbose", False),
        level=config.logging.level,
        console=console,
    )
    return HostAdapter(config=config, base_dir=base_dir, logger=logger)


@click.group()
@click.version_option(version=__version__, prog_name="convtest")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False),
    help="Path to configuration file (default: convtest.json)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """convtest - convention-based test registration and execution.

    Discovers tests through one registration function per module, runs them
    in isolation and reports each result as it completes.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config


@main.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default="convtest.json",
    help="Output path for configuration file",
)
@click.option("--force", "-f", is_flag=True, help="Overwrite existing configuration")
def init(output: str, force: bool) -> None:
    """Initialize a new convtest configuration file."""
    print_banner()

    output_path = Path(output)
    if output_path.exists() and not force:
        console.print(f"[yellow]Configuration file already exists:[/yellow] {output_path}")
        console.print("Use --force to overwrite")
        sys.exit(1)

    create_example_config(output_path)
    console.print(f"[green]Created configuration file:[/green] {output_path}")
    console.print("\nNext steps:")
    console.print("  1. List your test modules under discovery.containers")
    console.print("  2. Give each module one function taking a Registrar")
    console.print("  3. Run [bold]convtest run[/bold] to execute tests")


@main.command()
@click.argument("containers", nargs=-1)
@click.option("--json", "as_json", is_flag=True, help="Print one JSON test case per line")
@click.pass_context
def discover(ctx: click.Context, containers: tuple[str, ...], as_json: bool) -> None:
    """List the tests found in CONTAINERS (default: configured containers)."""
    from convtest.adapter.wire import TestCaseMessage
    from convtest.errors import AdapterError

    config, base_dir = _load_config(ctx)
    adapter = _make_adapter(ctx, config, base_dir)

    try:
        tests = list(adapter.discover(list(containers) or None))
    except AdapterError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(2)

    if as_json:
        for test in tests:
            click.echo(TestCaseMessage.from_descriptor(test).to_json())
        return

    table = Table(title=f"Discovered {len(tests)} test(s)")
    table.add_column("ID", style="cyan")
    table.add_column("Location", style="dim")
    for test in tests:
        table.add_row(test.id, test.source_location or "-")
    console.print(table)

    for diagnostic in adapter.diagnostics:
        console.print(f"[yellow]![/yellow] {diagnostic}")


@main.command()
@click.argument("containers", nargs=-1)
@click.option("--select", "-k", "selection", multiple=True, help="Run only this test id (repeatable)")
@click.option("--workers", "-w", type=int, default=None, help="Run top-level groups on N threads")
@click.option("--timeout", type=float, default=None, help="Per-test timeout in seconds")
@click.option("--fail-fast", "-x", is_flag=True, help="Stop after the first failure")
@click.option("--report/--no-report", default=False, help="Generate HTML report after tests")
@click.option("--store/--no-store", default=None, help="Record the run in the history database")
@click.pass_context
def run(
    ctx: click.Context,
    containers: tuple[str, ...],
    selection: tuple[str, ...],
    workers: Optional[int],
    timeout: Optional[float],
    fail_fast: bool,
    report: bool,
    store: Optional[bool],
) -> None:
    """Run tests and print one line per result."""
    from convtest.adapter.standalone import TextRunner

    config, base_dir = _load_config(ctx)
    overrides = {}
    if workers is not None:
        overrides["workers"] = workers
    if timeout is not None:
        overrides["timeout_seconds"] = timeout
    if fail_fast:
        overrides["fail_fast"] = True
    if overrides:
        try:
            execution = ExecutionConfig.model_validate({**config.execution.model_dump(), **overrides})
        except ValueError as e:
            console.print(f"[red]Invalid option:[/red] {e}")
            sys.exit(2)
        config = config.model_copy(update={"execution": execution})

    adapter = _make_adapter(ctx, config, base_dir)
    runner = TextRunner(adapter, stream=sys.stdout)
    exit_code = runner.run(list(containers) or None, set(selection) or None)

    if runner.summary is None:
        sys.exit(exit_code)

    results = runner.results.to_dict()
    _display_results_summary(results, cancelled=runner.summary.cancelled)
    diagnostics = [str(d) for d in adapter.diagnostics]

    if store if store is not None else config.storage.enabled:
        _store_run(config, base_dir, containers or config.discovery.containers, runner)

    if report:
        from convtest.report.generator import ReportGenerator

        report_path = ReportGenerator(config, base_dir).generate(results, diagnostics)
        console.print(f"[green]Report generated:[/green] {report_path}")

    sys.exit(exit_code)


def _store_run(config: ConvtestConfig, base_dir: Path, containers, runner) -> None:
    from convtest.storage.database import Database

    db = Database(config.get_absolute_paths(base_dir)["database_path"])
    test_run = db.create_run([str(c) for c in containers])
    for result in runner.results.results:
        db.add_result(test_run.id, result)

    test_run.total_tests = runner.results.total
    test_run.passed = runner.results.passed
    test_run.failed = runner.results.failed
    test_run.skipped = runner.results.skipped
    test_run.cancelled = runner.summary.cancelled
    db.finish_run(test_run)


@main.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Serve the host adapter protocol as JSON lines on stdin/stdout."""
    from convtest.adapter.server import AdapterServer

    config, base_dir = _load_config(ctx)
    adapter = _make_adapter(ctx, config, base_dir)
    server = AdapterServer(adapter, input_stream=sys.stdin, output_stream=sys.stdout)
    sys.exit(server.serve())


@main.command()
@click.option(
    "--run-id",
    type=int,
    help="Generate report for a specific run ID (default: latest)",
)
@click.pass_context
def report(ctx: click.Context, run_id: Optional[int]) -> None:
    """Generate or regenerate a test report from the history database."""
    print_banner()

    from convtest.report.generator import ReportGenerator
    from convtest.storage.database import Database

    config, base_dir = _load_config(ctx)
    db = Database(config.get_absolute_paths(base_dir)["database_path"])

    if run_id:
        results = db.get_run_results(run_id)
    else:
        results = db.get_latest_run_results()

    if not results:
        console.print("[yellow]No test results found[/yellow]")
        console.print("Run [bold]convtest run --store[/bold] first to record a run")
        sys.exit(1)

    report_path = ReportGenerator(config, base_dir).generate(results)
    console.print(f"[green]Report generated:[/green] {report_path}")


@main.command()
@click.option("--limit", "-n", type=int, default=10, help="Number of runs to show")
@click.option("--flaky", is_flag=True, help="Show tests that both pass and fail instead")
@click.pass_context
def history(ctx: click.Context, limit: int, flaky: bool) -> None:
    """Show test run history."""
    print_banner()

    from convtest.storage.database import Database

    config, base_dir = _load_config(ctx)
    db = Database(config.get_absolute_paths(base_dir)["database_path"])

    if flaky:
        tests = db.get_flaky_tests()[:limit]
        if not tests:
            console.print("[green]No flaky tests recorded[/green]")
            return
        table = Table(title="Flaky Tests")
        table.add_column("Test", style="cyan")
        table.add_column("Runs", justify="right")
        table.add_column("Failures", justify="right", style="red")
        table.add_column("Failure Rate", justify="right")
        for test in tests:
            table.add_row(
                test.test_id,
                str(test.total_runs),
                str(test.failure_count),
                f"{test.failure_rate:.0%}",
            )
        console.print(table)
        return

    runs = db.get_recent_runs(limit)
    if not runs:
        console.print("[yellow]No test runs found[/yellow]")
        return

    table = Table(title="Test Run History")
    table.add_column("ID", style="cyan")
    table.add_column("Date", style="dim")
    table.add_column("Containers")
    table.add_column("Total", justify="right")
    table.add_column("Passed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="yellow")

    for test_run in runs:
        table.add_row(
            str(test_run.id),
            test_run.started_at.strftime("%Y-%m-%d %H:%M") if test_run.started_at else "-",
            ", ".join(test_run.containers) or "-",
            str(test_run.total_tests) + (" (cancelled)" if test_run.cancelled else ""),
            str(test_run.passed),
            str(test_run.failed),
            str(test_run.skipped),
        )

    console.print(table)


def _display_results_summary(results: dict, cancelled: bool = False) -> None:
    """Display a summary of test results."""
    total = results.get("total", 0)
    passed = results.get("passed", 0)
    failed = results.get("failed", 0)
    skipped = results.get("skipped", 0)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Total Tests", str(total))
    table.add_row("Passed", f"[green]{passed}[/green]")
    table.add_row("Failed", f"[red]{failed}[/red]")
    table.add_row("Skipped", f"[yellow]{skipped}[/yellow]")

    console.print()
    console.print(table)

    if cancelled:
        console.print("\n[yellow]Run cancelled before all tests started[/yellow]")
    elif failed > 0:
        console.print(f"\n[red]{failed} test(s) failed[/red]")
    else:
        console.print("\n[green]All tests passed![/green]")


if __name__ == "__main__":
    main()
