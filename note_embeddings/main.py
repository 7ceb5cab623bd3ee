"""
CLI entrypoint for note_embeddings: index a notes folder and find similar notes.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from .concurrency import ProgressListener
from .config import Config
from .documents import DocumentRef, FolderDocumentStore
from .embedding import EmbeddingModel
from .errors import NoteIndexError
from .logging_utils import configure_logging, get_logger
from .orchestrator import IndexRunSummary
from .service import IndexService
from .vector_store.settings_store import JsonFileSettingsStore


app = typer.Typer(help="Semantic search over a folder of markdown notes")
console = Console()
logger = get_logger(__name__)

TRUNCATED_CONTENT_LENGTH = 400


class RichProgressListener(ProgressListener):
    def __init__(self, progress: Progress, task_id: Any) -> None:
        self.progress = progress
        self.task_id = task_id

    def task_completed(self, completed: int, total: int) -> None:
        self.progress.update(self.task_id, completed=completed, total=total)

    def task_failed(self, item: Any, error: BaseException) -> None:
        self.progress.console.print(f"[red]Failed:[/red] {escape(item.path)}: {escape(str(error))}")


def _service(
    notes_root: Optional[str] = None,
    settings_path: Optional[str] = None,
    concurrency: Optional[int] = None,
) -> IndexService:
    cfg = Config()
    if notes_root:
        cfg.notes_root = notes_root
    if settings_path:
        cfg.settings_path = settings_path
    if concurrency:
        cfg.index_concurrency = concurrency

    cfg.validate()
    configure_logging(cfg.log_level)

    return IndexService(
        config=cfg,
        store=JsonFileSettingsStore(cfg.settings_path),
        documents=FolderDocumentStore(cfg.notes_root),
    )


def _run_with_progress(description: str, run) -> IndexRunSummary:
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task(description, total=None)
        listener = RichProgressListener(progress, task_id)
        return asyncio.run(run(listener))


def _link(identity: str) -> str:
    return escape(f"[[{identity}]]")


def _print_summary(summary: IndexRunSummary) -> None:
    colour = "yellow" if summary.failed else "green"
    console.print(
        f"[bold {colour}]Processed {summary.completed} notes "
        f"({summary.failed} failed); {summary.stored_vectors} vectors stored.[/bold {colour}]"
    )


def _fail(exc: Exception) -> None:
    console.print(f"[red]Error:[/red] {escape(str(exc))}")
    raise typer.Exit(1)


NotesRootOption = typer.Option(None, "--notes-root", "-r", help="Notes folder (defaults to NOTES_ROOT).")
SettingsOption = typer.Option(None, "--settings", help="Settings file (defaults to SETTINGS_PATH).")


@app.command()
def index(
    group: Optional[int] = typer.Option(
        None, "--group", "-g", help="Note group to index; switching groups drops existing vectors."
    ),
    pattern: Optional[str] = typer.Option(
        None, "--pattern", "-p", help="Index notes matching an allow pattern instead of the group."
    ),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", "-c", help="Embedding requests in flight (defaults to INDEX_CONCURRENCY)."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask before deleting vectors."),
    notes_root: Optional[str] = NotesRootOption,
    settings_path: Optional[str] = SettingsOption,
) -> None:
    """
    Embed every note in the active scope that is new or changed.
    """
    service = _service(notes_root, settings_path, concurrency)

    try:
        if pattern is not None:
            refs = service.orchestrator().documents_in_scope(allow_pattern=pattern)
            console.print(f"[bold cyan]Enqueued {len(refs)} notes matching '{pattern}'[/bold cyan]")
            summary = _run_with_progress(
                "Embedding notes", lambda listener: service.index_documents(refs, listener)
            )
        elif group is not None and group != service.settings.indexed_note_group:
            count = service.index.count()
            if count and not yes:
                typer.confirm(
                    f"Switching the indexed note group deletes {count} vectors and re-indexes. Continue?",
                    abort=True,
                )
            summary = _run_with_progress(
                "Embedding notes", lambda listener: service.set_active_group(group, listener)
            )
        else:
            active = service.active_group
            console.print(
                f"[bold cyan]Indexing scope:[/bold cyan] "
                f"{active.name if active else service.settings.allow_pattern}"
            )
            summary = _run_with_progress("Embedding notes", service.reindex)
    except NoteIndexError as exc:
        _fail(exc)

    _print_summary(summary)


@app.command("index-note")
def index_note(
    path: str = typer.Argument(..., help="Path of the note, relative to the notes root."),
    notes_root: Optional[str] = NotesRootOption,
    settings_path: Optional[str] = SettingsOption,
) -> None:
    """
    Generate and store the embedding for a single note.
    """
    service = _service(notes_root, settings_path)
    try:
        ref = service.documents.resolve(path)
        record = asyncio.run(service.index_note(ref))
    except (NoteIndexError, FileNotFoundError) as exc:
        _fail(exc)

    console.print(f"[green]Indexed[/green] {_link(record.identity)} ({len(record.embedding)} dimensions)")


@app.command()
def search(
    path: str = typer.Argument(..., help="Note to find similar notes for."),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-k", help="Number of results (defaults to SEARCH_RESULT_LIMIT)."
    ),
    show_content: bool = typer.Option(False, "--content", help="Show the start of each note."),
    notes_root: Optional[str] = NotesRootOption,
    settings_path: Optional[str] = SettingsOption,
) -> None:
    """
    Semantic search for notes similar to the given note.
    """
    service = _service(notes_root, settings_path)
    limit = limit or service.config.search_result_limit
    try:
        ref = service.documents.resolve(path)
        results = asyncio.run(service.search_similar(ref, limit=limit))
    except (NoteIndexError, FileNotFoundError) as exc:
        _fail(exc)

    identity = service.documents.identity_for(ref)
    table = Table(title=f"Notes similar to {_link(identity)} (searched {service.index.count()} entries)")
    table.add_column("#", justify="right")
    table.add_column("Note", style="cyan")
    table.add_column("Similarity", style="yellow")
    if show_content:
        table.add_column("Content", overflow="fold", max_width=60)

    for i, result in enumerate(results, start=1):
        row = [str(i), _link(result.stored_vector.identity), f"{result.similarity:.3f}"]
        if show_content:
            row.append(escape(_preview(service, result.stored_vector.path)))
        table.add_row(*row)

    console.print(table)


def _preview(service: IndexService, path: str) -> str:
    try:
        text = service.documents.read_text(DocumentRef(path=path))
    except OSError:
        return ""
    if len(text) > TRUNCATED_CONTENT_LENGTH:
        return text[:TRUNCATED_CONTENT_LENGTH] + "..."
    return text


@app.command()
def status(
    notes_root: Optional[str] = NotesRootOption,
    settings_path: Optional[str] = SettingsOption,
) -> None:
    """
    Show what is indexed and how many notes still need embedding.
    """
    service = _service(notes_root, settings_path)
    st = service.status()

    table = Table(title="Index status")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Stored vectors", str(st.stored_vectors))
    table.add_row("Embedding model", st.model)
    table.add_row("Active note group", st.active_group or "N/A")
    table.add_row("Notes in scope", str(st.documents_in_scope))
    table.add_row("Notes needing indexing", str(st.documents_needing_index))
    console.print(table)


@app.command("set-model")
def set_model(
    model_key: str = typer.Argument(..., help=f"One of: {', '.join(EmbeddingModel.keys())}"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask before deleting vectors."),
    notes_root: Optional[str] = NotesRootOption,
    settings_path: Optional[str] = SettingsOption,
) -> None:
    """
    Change the embedding model; existing vectors are deleted and notes re-indexed.
    """
    service = _service(notes_root, settings_path)
    if not yes:
        typer.confirm(
            "Changing the embedding model means throwing out existing vectors and re-indexing "
            f"using the new model. This will delete {service.index.count()} vectors. Continue?",
            abort=True,
        )
    try:
        summary = _run_with_progress(
            f"Re-indexing with {model_key}",
            lambda listener: service.change_embedding_model(model_key, listener),
        )
    except NoteIndexError as exc:
        _fail(exc)

    _print_summary(summary)


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    settings_path: Optional[str] = SettingsOption,
) -> None:
    """
    Delete all stored vectors.
    """
    service = _service(settings_path=settings_path)
    if not yes:
        typer.confirm(f"This will delete {service.index.count()} vectors. Continue?", abort=True)
    dropped = service.clear_vectors()
    console.print(f"[green]Deleted {dropped} vectors.[/green]")


@app.command()
def groups(
    settings_path: Optional[str] = SettingsOption,
) -> None:
    """
    List configured note groups.
    """
    service = _service(settings_path=settings_path)
    table = Table(title="Note groups")
    table.add_column("#", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Folder", style="green")
    table.add_column("Indexed", justify="center")
    for i, group in enumerate(service.settings.note_groups):
        active = "*" if i == service.settings.indexed_note_group else ""
        table.add_row(str(i), group.name, group.notes_folder or "(none selected)", active)
    console.print(table)


@app.command("set-group-folder")
def set_group_folder(
    group: int = typer.Argument(..., help="Note group number (see `groups`)."),
    folder: Optional[str] = typer.Argument(None, help="Folder path; omit to unset."),
    settings_path: Optional[str] = SettingsOption,
) -> None:
    """
    Assign the folder whose notes belong to a note group.
    """
    service = _service(settings_path=settings_path)
    try:
        service.set_group_folder(group, folder)
    except NoteIndexError as exc:
        _fail(exc)
    console.print(f"[green]Group {group} folder set to[/green] {folder or '(none selected)'}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
