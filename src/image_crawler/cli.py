"""CLI interface for the image crawler."""

import asyncio
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .errors import ConfigurationError
from .events import ErrorEvent, EventLevel, ProgressEvent
from .models import RunState, RunStats

app = typer.Typer(
    name="image-crawler",
    help="Collect images for a query from web sources or a local directory",
    add_completion=False,
)
console = Console()

_LEVEL_STYLES = {"debug": "dim", "info": "white", "warning": "yellow", "error": "red"}
_LEVEL_ORDER = ["debug", "info", "warning", "error"]


class RichEventSink:
    """Renders crawl events on a rich console, driving an optional progress bar."""

    def __init__(self, console: Console, progress: Progress | None = None, verbose: bool = False):
        self.console = console
        self._progress = progress
        self.min_level = "debug" if verbose else "info"
        self.task_id = None
        self.final_stats: RunStats | None = None

    def log(self, level: EventLevel, message: str) -> None:
        if _LEVEL_ORDER.index(level) < _LEVEL_ORDER.index(self.min_level):
            return
        style = _LEVEL_STYLES.get(level, "white")
        self.console.print(f"[{style}]{escape(message)}[/{style}]", markup=True, highlight=False)

    def progress(self, event: ProgressEvent) -> None:
        if self._progress is None:
            return
        description = f"{escape(event.source_name)}: {event.discovered_count} found"
        if self.task_id is None:
            self.task_id = self._progress.add_task(description, total=event.requested_count)
        self._progress.update(self.task_id, completed=event.downloaded_count, description=description)

    def error(self, event: ErrorEvent) -> None:
        self.console.print(f"[red]Error: {escape(event.message)}[/red]", highlight=False)

    def complete(self, stats: RunStats) -> None:
        self.final_stats = stats


def get_config(config_path: Path | None, overrides: dict):
    """Load settings from the environment, an optional file and CLI overrides."""
    from dotenv import load_dotenv

    from .config import load_settings

    load_dotenv()
    try:
        return load_settings(config_path, overrides)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def _limit_overrides(**values) -> dict:
    limits = {key: value for key, value in values.items() if value is not None}
    return {"limits": limits} if limits else {}


def print_summary(stats: RunStats) -> None:
    table = Table(title=f"Crawl summary ({stats.state.value})")
    table.add_column("Source", style="cyan")
    table.add_column("Discovered", justify="right")
    table.add_column("Downloaded", justify="right", style="green")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Errored", justify="right", style="red")
    for name, source_stats in stats.sources.items():
        table.add_row(
            name,
            str(source_stats.discovered),
            str(source_stats.downloaded),
            str(source_stats.skipped),
            str(source_stats.errored),
        )
    table.add_row(
        "[bold]Total[/bold]",
        str(stats.discovered),
        str(stats.downloaded),
        str(stats.skipped),
        str(stats.errored),
    )
    console.print(table)
    if stats.duration_seconds is not None:
        console.print(f"Finished in {stats.duration_seconds:.1f}s")
    if stats.error:
        console.print(f"[red]{stats.error}[/red]")


@app.command()
def web(
    query: str = typer.Argument(..., help="Search query"),
    output: Path = typer.Option(None, "--output", "-o", help="Destination directory"),
    max_downloads: int = typer.Option(None, "--max-downloads", "-n", help="Global download budget"),
    per_source: int = typer.Option(None, "--per-source", help="Default cap per source"),
    min_width: int = typer.Option(None, "--min-width", help="Minimum width in pixels"),
    min_height: int = typer.Option(None, "--min-height", help="Minimum height in pixels"),
    min_size: str = typer.Option(None, "--min-size", help="Minimum file size, e.g. 50KB"),
    sources: str = typer.Option(None, "--sources", "-s", help="Comma-separated source names, or 'all'"),
    no_safe_search: bool = typer.Option(False, "--no-safe-search", help="Disable safe search"),
    headed: bool = typer.Option(False, "--headed", help="Show the browser window"),
    config: Path = typer.Option(None, "--config", "-c", help="YAML or JSON settings file"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Structured log level"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show detailed output"),
):
    """Crawl web sources for images matching QUERY."""
    from .config import with_source_overrides
    from .logging import configure_logging
    from .orchestrator import CrawlOrchestrator

    configure_logging(log_level.upper())
    overrides = _limit_overrides(
        global_max_downloads=max_downloads,
        per_source_max_results=per_source,
        min_width=min_width,
        min_height=min_height,
        min_byte_size=min_size,
        safe_search=False if no_safe_search else None,
        headless=False if headed else None,
    )
    if output is not None:
        overrides["output_dir"] = str(output)
    settings = get_config(config, overrides)
    if sources:
        settings = with_source_overrides(settings, sources)

    console.print(Panel(f"[bold]Query:[/bold] {query}\n[bold]Output:[/bold] {settings.output_dir}", title="Image Crawl"))

    async def run() -> RunStats:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            console=console,
        ) as progress:
            sink = RichEventSink(console, progress, verbose=verbose)
            orchestrator = CrawlOrchestrator(settings, query, sink=sink)
            loop = asyncio.get_running_loop()
            try:
                loop.add_signal_handler(signal.SIGINT, orchestrator.cancel, "interrupted by user")
            except NotImplementedError:
                pass
            return await orchestrator.run()

    stats = asyncio.run(run())
    print_summary(stats)
    if stats.state is RunState.FAILED:
        raise typer.Exit(1)


@app.command()
def local(
    source_dir: Path = typer.Argument(..., help="Directory to import images from"),
    output: Path = typer.Option(None, "--output", "-o", help="Destination directory"),
    max_downloads: int = typer.Option(None, "--max-downloads", "-n", help="Maximum files to import"),
    min_width: int = typer.Option(None, "--min-width", help="Minimum width in pixels"),
    min_height: int = typer.Option(None, "--min-height", help="Minimum height in pixels"),
    min_size: str = typer.Option(None, "--min-size", help="Minimum file size, e.g. 50KB"),
    flat: bool = typer.Option(False, "--flat", help="Do not mirror the source directory structure"),
    config: Path = typer.Option(None, "--config", "-c", help="YAML or JSON settings file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show detailed output"),
):
    """Import images from a local directory tree."""
    from .local import LocalScanner

    overrides = _limit_overrides(
        global_max_downloads=max_downloads,
        min_width=min_width,
        min_height=min_height,
        min_byte_size=min_size,
    )
    if output is not None:
        overrides["output_dir"] = str(output)
    settings = get_config(config, overrides)

    sink = RichEventSink(console, verbose=verbose)
    scanner = LocalScanner(source_dir, settings, sink=sink, preserve_structure=not flat)
    stats = scanner.run()
    print_summary(stats)
    if stats.state is RunState.FAILED:
        raise typer.Exit(1)


@app.command("sources")
def list_sources(
    config: Path = typer.Option(None, "--config", "-c", help="YAML or JSON settings file"),
):
    """List configured sources in crawl order."""
    from .sources.registry import SourceRegistry

    settings = get_config(config, {})
    registry = SourceRegistry()
    providers = settings.providers

    table = Table(title="Sources")
    table.add_column("#", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Enabled")
    table.add_column("Cap", justify="right")
    table.add_column("Kind")
    for index, name in enumerate(providers.order, 1):
        source_settings = providers.settings_for(name)
        cap = source_settings.max_results
        table.add_row(
            str(index),
            name,
            "[green]yes[/green]" if source_settings.enabled else "[dim]no[/dim]",
            str(cap if cap is not None else settings.limits.per_source_max_results),
            registry.kind_of(name, source_settings) or "[red]unknown[/red]",
        )
    console.print(table)


def main():
    app()


if __name__ == "__main__":
    main()
