"""Typer CLI entrypoint for market-sync."""

from __future__ import annotations

import signal
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Mapping, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .catalog import Catalog
from .config import ConfigRepository
from .errors import SyncError
from .logging_conf import configure_logging, log_path, tail_log
from .models import ListingRecord
from .orchestrator import SyncEngine
from .scheduler import APSchedulerAdapter
from .ui import ProgressReporter

app = typer.Typer(help="market-sync command line", no_args_is_help=True, rich_markup_mode=None)
scan_app = typer.Typer(name="scan", help="Scan the identifier space", no_args_is_help=True)
log_app = typer.Typer(name="log", help="Inspect log files", no_args_is_help=True)
app.add_typer(scan_app, name="scan")
app.add_typer(log_app, name="log")

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    engine: SyncEngine
    progress_enabled: bool = True


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    settings = repository.load_settings()
    engine = SyncEngine(settings)
    return AppState(
        repository=repository,
        engine=engine,
        progress_enabled=settings.enable_progress_bar,
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


@contextmanager
def _cancel_on_interrupt(engine: SyncEngine) -> Iterator[None]:
    """Turn Ctrl-C into a graceful stop after the current batch or item."""

    def _handler(_signum, _frame) -> None:
        console.print("Stopping after the current unit…", style="yellow")
        engine.cancel()

    try:
        previous = signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # Not the main thread (e.g. under a test runner); run without the hook.
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _render_summary(title: str, summary: Mapping[str, object]) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    for key, value in summary.items():
        if key == "ranges":
            value = ", ".join(f"{lo}-{hi}" for lo, hi in value) or "-"  # type: ignore[union-attr]
        if value is None:
            continue
        table.add_row(key, str(value))
    return table


def _render_listings(records: Sequence[ListingRecord], title: str) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD)
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Title", style="cyan", overflow="fold")
    table.add_column("Price", style="green", justify="right")
    table.add_column("Stock", justify="right")
    table.add_column("Seller", style="magenta")
    table.add_column("URL", style="dim", overflow="fold")
    for record in records:
        stock_style = "green" if record.in_stock >= 5 else "yellow" if record.in_stock >= 2 else "red"
        price = record.price_amount
        table.add_row(
            str(record.id),
            record.display_title,
            f"{price:,.0f}" if price is not None else "-",
            f"[{stock_style}]{record.in_stock}[/{stock_style}]",
            record.user_name or "Unknown",
            record.url or "-",
        )
    return table


def _run_with_progress(state: AppState, label: str, total: int | None, operation):
    reporter = ProgressReporter(enabled=state.progress_enabled, label=label)
    reporter.start(total)
    try:
        with _cancel_on_interrupt(state.engine):
            return operation(reporter)
    except SyncError as exc:
        console.print(f"{label} failed: {exc}", style="red")
        raise typer.Exit(code=1)
    finally:
        reporter.close()


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging", is_flag=True),
) -> None:
    ctx.obj = build_state(verbose)


@scan_app.command("full", help="Probe every identifier in [START, END].")
def scan_full(
    ctx: typer.Context,
    start: int = typer.Argument(..., min=1, help="First identifier."),
    end: int = typer.Argument(..., min=1, help="Last identifier (inclusive)."),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1, help="Identifiers per merge."),
) -> None:
    state = _get_state(ctx)
    summary = _run_with_progress(
        state,
        "full",
        max(0, end - start + 1),
        lambda reporter: state.engine.full_rescan(start, end, batch_size, on_probe=reporter),
    )
    console.print(_render_summary("Full rescan", summary.as_dict()))


@scan_app.command("discover", help="Sample every k-th identifier, then refine found ranges.")
def scan_discover(
    ctx: typer.Context,
    start: int = typer.Option(1, "--start", min=1, help="First identifier to sample."),
    ceiling: Optional[int] = typer.Option(None, "--ceiling", min=1, help="Highest identifier to sample."),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1),
) -> None:
    state = _get_state(ctx)
    summary = _run_with_progress(
        state,
        "discover",
        None,
        lambda reporter: state.engine.discover(start, ceiling, batch_size, on_probe=reporter),
    )
    console.print(_render_summary("Discovery scan", summary.as_dict()))


@scan_app.command("incremental", help="Scan the window just above the highest known identifier.")
def scan_incremental(
    ctx: typer.Context,
    window: Optional[int] = typer.Option(None, "--window", min=1, help="Identifiers to scan."),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1),
) -> None:
    state = _get_state(ctx)
    total = window if window is not None else state.engine.settings.scan.incremental_window
    summary = _run_with_progress(
        state,
        "incremental",
        total,
        lambda reporter: state.engine.incremental_update(window, batch_size, on_probe=reporter),
    )
    console.print(_render_summary("Incremental update", summary.as_dict()))


@app.command("refresh", help="Re-check low-stock listings and drop depleted ones.")
def refresh(
    ctx: typer.Context,
    threshold: Optional[int] = typer.Option(None, "--threshold", min=1, help="Stock below this is re-checked."),
) -> None:
    state = _get_state(ctx)
    summary = _run_with_progress(
        state,
        "refresh",
        None,
        lambda reporter: state.engine.refresh_low_stock(threshold, on_probe=reporter),
    )
    console.print(_render_summary("Low-stock refresh", summary.as_dict()))


@app.command("dedupe", help="Rewrite the catalog with unique, active listings only.")
def dedupe(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    try:
        counts = state.engine.dedupe()
    except SyncError as exc:
        console.print(f"dedupe failed: {exc}", style="red")
        raise typer.Exit(code=1)
    console.print(_render_summary("Dedupe", counts.as_dict()))


@app.command("search", help="Search in-stock listings by title, name or slug.")
def search(
    ctx: typer.Context,
    query: list[str] = typer.Argument(..., help="Search terms."),
    page: int = typer.Option(1, "--page", min=1, help="Result page (5 per page)."),
) -> None:
    state = _get_state(ctx)
    if len(state.engine.catalog) == 0:
        console.print("Catalog is empty. Run `market-sync scan discover` first.", style="yellow")
        raise typer.Exit(code=1)
    results = state.engine.search(" ".join(query))
    if not results:
        console.print("Nothing found.", style="yellow")
        raise typer.Exit(code=0)
    current = Catalog.page(results, page - 1)
    console.print(f"Found {current.total_items} listing(s)")
    console.print(
        _render_listings(current.items, f"Page {current.index + 1} of {current.total_pages}")
    )


@app.command("stats", help="Show catalog statistics.")
def stats(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    result = state.engine.stats()
    if result.total == 0:
        console.print("Catalog is empty.", style="yellow")
        raise typer.Exit(code=0)
    table = _render_summary("Catalog statistics", result.as_dict())
    table.add_row("cursor", str(state.engine.catalog.cursor))
    console.print(table)


@app.command("schedule", help="Run incremental updates and refreshes on their configured schedules.")
def schedule(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    jobs = state.engine.settings.jobs
    adapter = APSchedulerAdapter()
    adapter.schedule_job("incremental", jobs.incremental, state.engine.incremental_update)
    adapter.schedule_job("refresh", jobs.refresh, state.engine.refresh_low_stock)
    adapter.start()
    console.print("Scheduler running; press Ctrl-C to stop.", style="green")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        state.engine.cancel()
    finally:
        adapter.shutdown()
        state.engine.close()


@log_app.command("show", help="Print the last lines of a log file.")
def log_show(
    name: str = typer.Option("sync", "--name", help="Log file name: sync or error."),
    tail: int = typer.Option(100, "--tail", min=1, help="Number of lines."),
) -> None:
    path = log_path(name)
    lines = tail_log(path, tail)
    if not lines:
        console.print(f"No log entries in {path}.", style="dim")
        raise typer.Exit(code=0)
    for line in lines:
        console.print(line.rstrip("\n"), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
