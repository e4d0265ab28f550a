"""
CLI: ``labelsync``, run the API and inspect dataset documents.

Commands::

    labelsync serve                  Start the API server
    labelsync init-dataset ptz       Create an empty document if none exists
    labelsync show ptz               Record count and generation
    labelsync export ptz out.xlsx    Write the document as a spreadsheet
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from labelsync import __version__
from labelsync.config import get_settings
from labelsync.datasets import DATASETS, Dataset, get_dataset
from labelsync.errors import LabelSyncError, PreconditionFailedError
from labelsync.logging import configure_logging

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="labelsync",
    help="labelsync: concurrent-safe storage for image annotation datasets.",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"labelsync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """labelsync CLI: serve the API and manage dataset documents."""
    configure_logging()


def _resolve(dataset_id: str) -> Dataset:
    try:
        return get_dataset(dataset_id)
    except LabelSyncError as e:
        err_console.print(f"[bold red]Error[/bold red]: {e.message}")
        raise typer.Exit(code=1) from e


def _fail(e: LabelSyncError) -> typer.Exit:
    err_console.print(f"[bold red]Error[/bold red] ({e.category.value}): {e.message}")
    return typer.Exit(code=1)


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on changes"),
) -> None:
    """Start the labelsync REST API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(f"[bold green]Starting labelsync API[/bold green] on {host}:{port}")
    uvicorn.run(
        "labelsync.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command("init-dataset")
def init_dataset(dataset_id: str = typer.Argument(..., help="Dataset id")) -> None:
    """Create an empty document for a dataset unless one already exists."""
    from labelsync.storage import get_store

    dataset = _resolve(dataset_id)
    store = get_store()
    try:
        generation = store.put_if_generation(dataset.path, [], None)
    except PreconditionFailedError:
        console.print(f"[yellow]{dataset.id}[/yellow] already has a document at {dataset.path}")
        return
    except LabelSyncError as e:
        raise _fail(e) from e

    console.print(
        f"[green]Created[/green] {store.describe()}/{dataset.path} (generation {generation})"
    )


@app.command()
def show(
    dataset_id: str | None = typer.Argument(None, help="Dataset id; all datasets when omitted"),
) -> None:
    """Show record count and generation of dataset documents."""
    from labelsync.storage import get_store

    datasets = [_resolve(dataset_id)] if dataset_id else list(DATASETS.values())
    store = get_store()

    table = Table(title=f"Datasets ({store.describe()})", pad_edge=False)
    table.add_column("dataset", no_wrap=True)
    table.add_column("path", overflow="fold")
    table.add_column("records", justify="right", no_wrap=True)
    table.add_column("generation", no_wrap=True)

    for dataset in datasets:
        try:
            doc = store.get(dataset.path)
        except LabelSyncError as e:
            raise _fail(e) from e
        if doc is None:
            table.add_row(dataset.id, dataset.path, "[dim]-[/dim]", "[dim]none[/dim]")
        else:
            table.add_row(dataset.id, dataset.path, str(len(doc.records)), doc.generation)

    console.print(table)


@app.command()
def export(
    dataset_id: str = typer.Argument(..., help="Dataset id"),
    out: Path = typer.Argument(..., help="Output .xlsx path", dir_okay=False),
) -> None:
    """Write a dataset document to an Excel workbook."""
    from labelsync.export import export_xlsx
    from labelsync.storage import get_store

    dataset = _resolve(dataset_id)
    try:
        doc = get_store().get(dataset.path)
    except LabelSyncError as e:
        raise _fail(e) from e

    if doc is None or not doc.records:
        err_console.print(f"[bold red]Error[/bold red]: no analytics data saved for {dataset.id}")
        raise typer.Exit(code=1)

    out.write_bytes(export_xlsx(doc.records))
    console.print(f"[green]Exported[/green] {len(doc.records)} records to {out}")


if __name__ == "__main__":
    app()
