"""Typer CLI entrypoint for the corpus cleaner."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import ConfigRepository, OutputFormat, RefineryConfig
from .errors import ConfigurationError, RefineryError
from .logging_conf import configure_logging, default_log_dir, tail_log
from .orchestrator import Refinery, RunReport

app = typer.Typer(
    help="Separating the signal from the noise: refine transaction logs into a clean corpus.",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()

_STATUS_STYLES = {"success": "green", "partial": "yellow", "failed": "red"}


def _render_banner(config: RefineryConfig) -> None:
    threads = config.scheduler.threads
    console.rule("[bold]CORPUS CLEANER[/bold] · high-performance data refinery")
    console.print(f"Input:   {config.input_path}")
    console.print(f"Output:  {config.output_path}")
    console.print(f"Threads: {'auto' if threads <= 0 else threads}")
    if config.dedup.store_path:
        console.print(f"Dedup store: {config.dedup.store_path}")
    console.rule()


def _render_report(report: RunReport) -> Table:
    counters = report.counters
    style = _STATUS_STYLES.get(report.status.value, "white")
    table = Table(
        title=f"Run result · [{style}]{report.status.value.upper()}[/{style}]",
        box=box.SIMPLE_HEAD,
    )
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Processed", f"{counters.total:,}")
    table.add_row("Kept", f"{counters.kept:,}")
    table.add_row("Dropped · failed", f"{counters.dropped_failed:,}")
    table.add_row("Dropped · dust", f"{counters.dropped_dust:,}")
    table.add_row("Dropped · malformed", f"{counters.dropped_malformed:,}")
    table.add_row("  of which decode failures", f"{counters.decode_failures:,}")
    table.add_row("Dropped · duplicate", f"{counters.dropped_duplicate:,}")
    table.add_row("Written", f"{sum(report.delivered):,}")
    if report.lost:
        table.add_row("Lost (sink failure)", f"{report.lost:,}")
    if report.unprocessed:
        table.add_row("Unprocessed", f"{report.unprocessed:,}")
    table.add_row("Files", f"{report.files:,}" + (f" ({report.files_failed} unreadable)" if report.files_failed else ""))
    table.add_row("Elapsed", f"{report.elapsed:.2f}s")
    table.add_row("Throughput", f"{report.records_per_second:,.0f} rec/s")
    if report.persisted:
        table.add_row("Fingerprints persisted", f"{report.persisted:,}")
    return table


@app.callback()
def main() -> None:
    """Corpus cleaner command group."""


@app.command("run", help="Filter, deduplicate and write a clean corpus.")
def run(
    input_path: Path = typer.Option(..., "--input", "-i", help="Input file or directory (.jsonl/.json/.parquet)."),
    output_path: Path = typer.Option(..., "--output", "-o", help="Output directory."),
    threads: int = typer.Option(0, "--threads", "-t", help="Worker threads (<= 0 means auto-detect)."),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML/JSON configuration file."),
    output_format: Optional[OutputFormat] = typer.Option(None, "--format", help="Output format."),
    shards: Optional[int] = typer.Option(None, "--shards", help="Number of output shards."),
    min_value: Optional[float] = typer.Option(None, "--min-value", help="Dust threshold on transferred value."),
    max_fee_ratio: Optional[float] = typer.Option(None, "--max-fee-ratio", help="Maximum fee/value ratio."),
    dedup_store: Optional[Path] = typer.Option(None, "--dedup-store", help="SQLite file for cross-run dedup."),
    max_runtime: Optional[float] = typer.Option(None, "--max-runtime", help="Stop gracefully after N seconds."),
    as_json: bool = typer.Option(False, "--json", help="Print the final report as JSON.", is_flag=True),
    quiet: bool = typer.Option(False, "--quiet", help="Only print the final summary line.", is_flag=True),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging.", is_flag=True),
) -> None:
    repository = ConfigRepository()
    try:
        config = repository.load(
            config_file,
            **{
                "input_path": input_path,
                "output_path": output_path,
                "scheduler.threads": threads if threads > 0 else None,
                "output.format": output_format.value if output_format else None,
                "output.shards": shards,
                "filters.min_value": min_value,
                "filters.max_fee_ratio": max_fee_ratio,
                "dedup.store_path": dedup_store,
                "scheduler.max_runtime_seconds": max_runtime,
                "progress": False if (quiet or as_json) else None,
                "verbose": verbose or None,
            },
        )
        configure_logging(verbose=config.verbose)
        if not (quiet or as_json):
            _render_banner(config)
        report = Refinery(config).run()
    except ConfigurationError as exc:
        console.print(f"Configuration error: {exc}", style="red")
        raise typer.Exit(code=1)
    except RefineryError as exc:
        console.print(f"Error: {exc}", style="red")
        raise typer.Exit(code=1)

    if as_json:
        console.print_json(json.dumps(report.as_dict()))
    elif quiet:
        counters = report.counters
        console.print(
            f"{report.status.value}: processed {counters.total}, kept {counters.kept}, "
            f"failed {counters.dropped_failed}, dust {counters.dropped_dust}, "
            f"malformed {counters.dropped_malformed}, duplicate {counters.dropped_duplicate}"
        )
    else:
        console.print(_render_report(report))
        if report.cancel_reason and report.status.value == "partial":
            console.print(f"Run stopped early ({report.cancel_reason}); output holds everything classified so far.", style="yellow")
        if report.error:
            console.print(f"Error: {report.error}", style="red")
    raise typer.Exit(code=report.exit_code)


@app.command("init-config", help="Write a configuration file with default settings.")
def init_config(
    path: Path = typer.Argument(Path("corpus_cleaner.yaml"), help="Target file (.yaml/.yml/.json)."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file.", is_flag=True),
) -> None:
    if path.exists() and not force:
        console.print(f"{path} already exists; use --force to overwrite.", style="yellow")
        raise typer.Exit(code=1)
    try:
        target = ConfigRepository().dump(RefineryConfig(), path)
    except ConfigurationError as exc:
        console.print(f"Configuration error: {exc}", style="red")
        raise typer.Exit(code=1)
    console.print(f"Configuration written to {target}")


@app.command("logs", help="Show the tail of the refinery log.")
def logs(
    lines: int = typer.Option(50, "--lines", "-n", help="Number of lines to show."),
    errors: bool = typer.Option(False, "--errors", help="Show error.log instead.", is_flag=True),
) -> None:
    path = default_log_dir() / ("error.log" if errors else "refinery.log")
    content = tail_log(path, lines)
    if not content:
        console.print(f"No log entries in {path}", style="dim")
        raise typer.Exit(code=0)
    for line in content:
        console.print(line.rstrip("\n"), markup=False, highlight=False)


@app.command("version", help="Print the version.")
def version() -> None:
    console.print(__version__)


if __name__ == "__main__":  # pragma: no cover
    app()
