"""Command line host for codecomposer."""

import logging
import sys
import uuid
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from codecomposer.checkpoint import snapshot_id
from codecomposer.config import Config
from codecomposer.constants import (
    EVENT_CANCELLED,
    EVENT_DONE,
    EVENT_ERROR,
    EVENT_FILES,
    EVENT_MESSAGE_FINISH,
    EVENT_MESSAGE_STREAM,
)
from codecomposer.graph import ComposerGraph, ComposerRequest
from codecomposer.llm import LLM
from codecomposer.state import FileMetadata
from codecomposer.utils.diffs import create_patch

app = typer.Typer(help="codecomposer - plan, write and review multi-file code changes")
logger = logging.getLogger(__name__)
console = Console()

PathOption = typer.Option(None, "--path", "-p", help="Workspace path (default: current directory)")
ThreadOption = typer.Option(..., "--thread", "-t", help="Thread id")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
    )


def _open_graph(
    path: Optional[str], model: Optional[str] = None, require_llm: bool = False
) -> ComposerGraph:
    """Resolve the workspace, load configuration and build the graph."""
    workspace = Path(path).resolve() if path else Path.cwd()

    if not workspace.exists():
        console.print(f"[red]Error: Path does not exist: {workspace}[/red]")
        sys.exit(1)

    if not workspace.is_dir():
        console.print(f"[red]Error: Path is not a directory: {workspace}[/red]")
        sys.exit(1)

    try:
        config = Config.load(workspace)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(1)

    if model:
        config.default_model = model

    logger.debug("Configuration: %s", config.to_dict())

    if require_llm:
        errors = config.validate()
        if errors:
            console.print("[red]Configuration errors:[/red]")
            for error in errors:
                console.print(f"  - {error}")
            sys.exit(1)

    try:
        return ComposerGraph.from_config(workspace, config, require_llm=require_llm)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def _files_table(files: list[FileMetadata]) -> Table:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("File")
    table.add_column("Diff", justify="right")
    table.add_column("Status")
    table.add_column("Description")

    for record in files:
        if record.accepted:
            status = "[green]accepted[/green]"
        elif record.rejected:
            status = "[red]rejected[/red]"
        elif record.has_code:
            status = "[yellow]pending[/yellow]"
        else:
            status = "[dim]planned[/dim]"
        if record.problems:
            status += f" [red]({len(record.problems)} problem(s))[/red]"
        table.add_row(record.path, record.diff, status, record.description)

    return table


def _report(result: tuple[bool, Optional[str]], done: str) -> None:
    success, error = result
    if not success:
        console.print(f"[red]Error: {error}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]{done}[/green]")


@app.command()
def compose(
    prompt: str = typer.Argument(..., help="What to build or change"),
    thread: Optional[str] = typer.Option(None, "--thread", "-t", help="Thread id (new thread if omitted)"),
    files: list[str] = typer.Option([], "--file", "-f", help="Context file, repeatable"),
    path: Optional[str] = PathOption,
    model: Optional[str] = typer.Option(
        None, "--model", "-m", help=f"Model to use ({', '.join(LLM.list_models())})"
    ),
) -> None:
    """Plan and generate changes for a request."""
    graph = _open_graph(path, model, require_llm=True)
    thread_id = thread or uuid.uuid4().hex[:12]
    console.print(f"[dim]Thread: {thread_id}[/dim]\n")

    printed = 0
    failed = False
    try:
        for event in graph.compose(ComposerRequest(thread_id=thread_id, input=prompt, context_files=files)):
            if event.kind == EVENT_MESSAGE_STREAM:
                content = event.payload.get("content", "")
                console.out(content[printed:], end="", highlight=False)
                printed = len(content)
            elif event.kind == EVENT_MESSAGE_FINISH:
                console.print()
                printed = 0
            elif event.kind == EVENT_FILES:
                records = [FileMetadata.model_validate(f) for f in event.payload.get("files", [])]
                console.print(_files_table([r for r in records if r.has_code]))
            elif event.kind == EVENT_ERROR:
                console.print(f"[red]{event.payload.get('error')}[/red]")
            elif event.kind == EVENT_CANCELLED:
                console.print("[yellow]Cancelled[/yellow]")
            elif event.kind == EVENT_DONE:
                failed = bool(event.payload.get("error"))
    except KeyboardInterrupt:
        graph.cancel_composer(thread_id)
        console.print("\n[yellow]Cancelled[/yellow]")
        raise typer.Exit(130)

    state = graph.get_state(thread_id)
    pending = [r for r in (state or {}).get("files", {}).values() if r.has_code and not r.is_decided]
    if pending:
        console.print(Panel.fit(
            "\n".join(f"codecomposer accept -t {thread_id} {r.path}" for r in pending),
            title="Review",
            border_style="cyan",
        ))

    if failed:
        raise typer.Exit(1)


@app.command()
def accept(
    file: str = typer.Argument(..., help="File path as shown by 'show'"),
    thread: str = ThreadOption,
    path: Optional[str] = PathOption,
) -> None:
    """Write a generated file to disk."""
    graph = _open_graph(path)
    _report(graph.accept_file(file, thread), f"Accepted {file}")


@app.command()
def reject(
    file: str = typer.Argument(..., help="File path as shown by 'show'"),
    thread: str = ThreadOption,
    path: Optional[str] = PathOption,
) -> None:
    """Discard a generated file."""
    graph = _open_graph(path)
    _report(graph.reject_file(file, thread), f"Rejected {file}")


@app.command()
def undo(
    file: str = typer.Argument(..., help="File path as shown by 'show'"),
    thread: str = ThreadOption,
    path: Optional[str] = PathOption,
) -> None:
    """Restore an accepted file to its original content."""
    graph = _open_graph(path)
    _report(graph.undo_file(file, thread), f"Restored {file}")


@app.command()
def branch(
    thread: str = typer.Argument(..., help="Thread to branch from"),
    checkpoint: Optional[str] = typer.Option(None, "--checkpoint", "-c", help="Checkpoint id (default: latest)"),
    new_id: Optional[str] = typer.Option(None, "--new-id", help="Id of the new thread"),
    path: Optional[str] = PathOption,
) -> None:
    """Fork a thread into a new one."""
    graph = _open_graph(path)
    new_thread_id = new_id or uuid.uuid4().hex[:12]
    state = graph.branch_thread(thread, checkpoint, new_thread_id)
    if state is None:
        console.print(f"[red]Error: Cannot branch {thread} into {new_thread_id}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Branched {thread} -> {new_thread_id}[/green]")


@app.command()
def clear(
    thread: str = typer.Argument(..., help="Thread to clear"),
    path: Optional[str] = PathOption,
) -> None:
    """Start a thread over (earlier checkpoints stay available)."""
    graph = _open_graph(path)
    if not graph.clear_chat_history(thread):
        console.print(f"[red]Error: Thread not found: {thread}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Cleared {thread}[/green]")


@app.command()
def threads(path: Optional[str] = PathOption) -> None:
    """List threads of the workspace."""
    graph = _open_graph(path)

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Thread")
    table.add_column("Title")
    table.add_column("Updated")
    table.add_column("Parent")
    for item in graph.list_threads():
        table.add_row(
            item.id,
            item.title,
            item.updated_at.strftime("%Y-%m-%d %H:%M"),
            item.parent_thread_id or "",
        )
    console.print(table)


@app.command()
def show(
    thread: str = typer.Argument(..., help="Thread to show"),
    diff: bool = typer.Option(False, "--diff", "-d", help="Show unified diffs of generated files"),
    history: bool = typer.Option(False, "--history", help="List checkpoints instead"),
    path: Optional[str] = PathOption,
) -> None:
    """Show the plan, files and errors of a thread."""
    graph = _open_graph(path)

    if history:
        for snapshot in graph.history(thread):
            step = (snapshot.metadata or {}).get("step", "")
            console.print(
                f"{step:>4}  {snapshot_id(snapshot)}  "
                f"{snapshot.created_at or ''}  {snapshot.values.get('node') or ''}"
            )
        return

    state = graph.get_state(thread)
    if state is None:
        console.print(f"[red]Error: Thread not found: {thread}[/red]")
        raise typer.Exit(1)

    if state.get("implementation_plan"):
        console.print(Panel(Markdown(state["implementation_plan"]), title="Plan", border_style="green"))

    records = list(state.get("files", {}).values())
    if records:
        console.print(_files_table(records))

    if state.get("dependencies"):
        console.print(f"New dependencies: {', '.join(state['dependencies'])}")

    if diff:
        for record in records:
            if not record.has_code:
                continue
            patch = create_patch(record.original, record.code, record.path)
            if patch:
                console.print(Syntax(patch, "diff", theme="monokai"))
            for problem in record.problems:
                console.print(f"[red]{problem}[/red]")

    if state.get("error"):
        console.print(f"[red]Last run failed: {state['error'].message}[/red]")


if __name__ == "__main__":
    app()
