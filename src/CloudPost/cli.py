"""Typer-based CLI for CloudPost with Pydantic v2 configuration."""

import json
import logging
import os
import time
from typing import List, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from CloudPost import __version__
from CloudPost.client import SolrUpdateClient
from CloudPost.config import PostConfig, load_config
from CloudPost.errors import PoolTimeoutError, describe_error
from CloudPost.runner import post_files
from CloudPost.summary import RunSummary, build_summary_record

console = Console()
app = typer.Typer(help="Post (zipped) add/delete XML command files to a document store.")

EXIT_PARTIAL_FAILURE = 1
EXIT_FATAL = 2

# ============================================================================
# Setup
# ============================================================================


def _setup_logging(verbose: bool) -> None:
    """Setup logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _terminate(code: int) -> NoReturn:
    """Exit immediately without waiting for worker threads still running."""
    logging.shutdown()
    os._exit(code)


def _load(config: Optional[str], overrides: dict) -> PostConfig:
    try:
        return load_config(path=config, cli_overrides=overrides)
    except ValueError as e:
        console.print(f"[red]✗ Invalid configuration: {escape(str(e))}[/red]")
        raise typer.Exit(code=EXIT_FATAL)


def _format_elapsed(seconds: float) -> str:
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{int(hours)}:{int(minutes):02d}:{secs:06.3f}"


def _render_summary(summary: RunSummary, elapsed_s: float) -> None:
    if summary.failed:
        table = Table(title="Failed files")
        table.add_column("File", style="cyan")
        table.add_column("Posted", style="yellow", justify="right")
        table.add_column("Kind", style="magenta")
        table.add_column("Error", style="red")
        for result in summary.failed:
            table.add_row(
                escape(result.source),
                str(result.posted),
                result.error_kind.value if result.error_kind else "-",
                escape(describe_error(result.error)) if result.error else "-",
            )
        console.print(table)

    status = "[bold green]✓ All files posted[/bold green]"
    if summary.failed:
        status = f"[bold red]✗ {len(summary.failed)} file(s) failed[/bold red]"
    console.print(
        Panel(
            f"{status}\n"
            f"Files processed: {summary.files_processed}\n"
            f"Updates posted: {summary.total_posted}\n"
            f"Time spent: {_format_elapsed(elapsed_s)}",
            title="CloudPost",
        )
    )


# ============================================================================
# Commands
# ============================================================================


@app.command()
def post(
    paths: List[str] = typer.Argument(..., help="Files, directories or glob patterns"),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to config file", envvar="CLOUDPOST_CONFIG"
    ),
    url: Optional[str] = typer.Option(None, "--url", help="Base URL of the document store"),
    collection: Optional[str] = typer.Option(None, "--collection", help="Target collection"),
    workers: Optional[int] = typer.Option(None, "--workers", help="Files posted in parallel"),
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", help="Maximum updates per request"
    ),
    commit_within: Optional[int] = typer.Option(
        None, "--commit-within", help="Commit-within interval in seconds"
    ),
    delay: Optional[float] = typer.Option(
        None, "--delay", help="Seconds to wait after each posted file"
    ),
    retries: Optional[int] = typer.Option(
        None, "--retries", help="Attempts per request on connection errors"
    ),
    retry_wait: Optional[float] = typer.Option(
        None, "--retry-wait", help="Seconds between attempts"
    ),
    commit: Optional[bool] = typer.Option(
        None, "--commit/--no-commit", help="Commit after all files are posted"
    ),
    optimize: Optional[bool] = typer.Option(
        None, "--optimize/--no-optimize", help="Optimize after all files are posted"
    ),
    summary_json: bool = typer.Option(False, "--json", help="Print the summary record as JSON"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose"),
) -> None:
    """Post command files and report per-file failures."""
    _setup_logging(verbose)

    overrides = {
        "workers": workers,
        "batch_size": batch_size,
        "commit_within_s": commit_within,
        "delay_s": delay,
        "commit": commit,
        "optimize": optimize,
        "retry": {"max_attempts": retries, "wait_seconds": retry_wait},
        "store": {"url": url, "collection": collection},
    }
    cfg = _load(config, overrides)

    if not summary_json:
        console.print(f"CloudPost version {__version__}")
        console.print(
            f"Posting files to {cfg.store.url} (collection: {cfg.store.collection or '-'})"
        )

    started = time.monotonic()
    with SolrUpdateClient.from_config(cfg.store) as client:
        try:
            summary = post_files(paths, cfg, client)
        except PoolTimeoutError as e:
            console.print(f"[red]✗ FATAL: {escape(str(e))}[/red]")
            _terminate(EXIT_FATAL)
    elapsed = time.monotonic() - started

    if summary_json:
        record = build_summary_record(summary, run_id=cfg.run_id, elapsed_s=elapsed)
        typer.echo(json.dumps(record, indent=2))
    else:
        _render_summary(summary, elapsed)

    if not summary.ok:
        raise typer.Exit(code=EXIT_PARTIAL_FAILURE)


@app.command()
def print_config(
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to config file", envvar="CLOUDPOST_CONFIG"
    ),
) -> None:
    """Print merged effective config."""
    cfg = _load(config, {})
    typer.echo(json.dumps(cfg.model_dump(mode="json"), indent=2))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
