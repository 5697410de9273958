"""Main CLI entry point for minivcs."""

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Sequence

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from minivcs.config import ConfigManager, VCSConfig
from minivcs.constants import (
    EXIT_DATA_ERROR,
    EXIT_INTERRUPTED,
    EXIT_SYSTEM_ERROR,
    EXIT_USER_ERROR,
)
from minivcs.core.diff_engine import format_diff
from minivcs.core.vcs import VCS
from minivcs.exceptions import (
    DatabaseError,
    PartialCommitError,
    StoreUnavailableError,
    VCSError,
    VCSIOError,
)
from minivcs.logging_config import setup_logging
from minivcs.tasks import (
    CancelledEvent,
    ErrorEvent,
    ProgressEvent,
    ProgressListener,
    SuccessEvent,
    TaskEvent,
    TaskHandle,
    TaskOrchestrator,
)

console = Console()
app = typer.Typer(
    name="minivcs",
    help="A miniature version-control system",
    add_completion=False,
)


class _State:
    def __init__(self, repo: Path, config: VCSConfig, verbose: bool):
        self.repo = repo
        self.config = config
        self.verbose = verbose


class ConsoleProgressListener(ProgressListener):
    """Prints progress events while a task runs (verbose mode only)."""

    def __init__(self, enabled: bool):
        self.enabled = enabled

    def on_progress(self, event: ProgressEvent) -> None:
        if self.enabled:
            console.print(f"[dim]{event.percent:3d}% {escape(event.message)}[/dim]")


def _format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.2f} MB"


def _exit_code_for(error: BaseException) -> int:
    if isinstance(error, PartialCommitError):
        return EXIT_DATA_ERROR
    if isinstance(error, (VCSIOError, StoreUnavailableError, DatabaseError)):
        return EXIT_SYSTEM_ERROR
    if isinstance(error, VCSError):
        return EXIT_USER_ERROR
    return EXIT_SYSTEM_ERROR


def _fail(error: BaseException) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(str(error))}", style="red")
    if isinstance(error, PartialCommitError):
        console.print(
            "  The snapshot is on disk but HEAD and the staging area are unchanged; "
            "re-run the commit once the metadata database is reachable.",
            style="yellow",
        )
    raise typer.Exit(_exit_code_for(error))


@contextmanager
def _session(ctx: typer.Context, open_repo: bool = True) -> Iterator[TaskOrchestrator]:
    """Orchestrator over a fresh ``VCS``, with the repository opened first."""
    state: _State = ctx.obj
    with VCS(state.config) as vcs:
        with TaskOrchestrator(vcs, max_workers=1) as orchestrator:
            orchestrator.add_listener(ConsoleProgressListener(state.verbose))
            if open_repo:
                opened = orchestrator.wait(orchestrator.open(state.repo))
                if isinstance(opened, ErrorEvent):
                    _fail(opened.cause or VCSError(opened.message))
            yield orchestrator


def _await(
    orchestrator: TaskOrchestrator,
    handle: TaskHandle,
    pending: Sequence[TaskHandle] = (),
) -> Optional[TaskEvent]:
    """Wait for ``handle`` while dispatching progress.

    Ctrl-C cancels ``handle`` and every task in ``pending``, then exits.
    """
    try:
        while not handle.done():
            handle.wait(0.1)
            orchestrator.dispatch_events()
    except KeyboardInterrupt:
        for other in [handle, *pending]:
            other.cancel()
        event = orchestrator.wait(handle)
        console.print("\n[yellow]Interrupted[/yellow]")
        if isinstance(event, CancelledEvent) and event.partial is not None:
            console.print(f"[dim]Kept partial progress: {event.partial.added} file(s) staged[/dim]")
        raise typer.Exit(EXIT_INTERRUPTED)
    return orchestrator.wait(handle)


def _run_task(
    ctx: typer.Context,
    submit: Callable[[TaskOrchestrator], TaskHandle],
    open_repo: bool = True,
) -> Any:
    """Run one operation on the orchestrator and return its result.

    Ctrl-C cancels the task; failures exit with the matching exit code.
    """
    with _session(ctx, open_repo) as orchestrator:
        event = _await(orchestrator, submit(orchestrator))
        if isinstance(event, ErrorEvent):
            _fail(event.cause or VCSError(event.message))
        if isinstance(event, CancelledEvent):
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(EXIT_INTERRUPTED)
        return event.result  # type: ignore[union-attr]


@app.callback()
def main_callback(
    ctx: typer.Context,
    repo: Optional[Path] = typer.Option(
        None,
        "--repo",
        "-C",
        help="Repository root (default: current directory)",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Configuration file (default: ~/.minivcs/config.json)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show progress and debug logging",
    ),
) -> None:
    """A miniature version-control system."""
    try:
        config = ConfigManager(config_path).load()
    except VCSError as e:
        _fail(e)

    setup_logging("DEBUG" if verbose else config.logging.level)
    ctx.obj = _State((repo or Path.cwd()).resolve(), config, verbose)


@app.command()
def version() -> None:
    """Show minivcs version."""
    from minivcs import __version__
    typer.echo(f"minivcs version {__version__}")


@app.command()
def init(
    ctx: typer.Context,
    path: Optional[Path] = typer.Argument(None, help="Directory to initialize (default: --repo)"),
    name: Optional[str] = typer.Option(None, "--name", help="Repository display name"),
    description: Optional[str] = typer.Option(None, "--description", help="Free-text description"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output except errors"),
) -> None:
    """Initialize a repository."""
    state: _State = ctx.obj
    target = (path or state.repo).resolve()
    repository = _run_task(
        ctx,
        lambda orchestrator: orchestrator.init(target, name, description),
        open_repo=False,
    )

    if not quiet:
        storage = "filesystem + metadata database" if repository.repo_id else "filesystem only"
        message = f"""[bold green]✓[/bold green] Initialized minivcs repository

[dim]Repository root:[/dim] {escape(str(repository.root))}
[dim]Name:[/dim] {escape(repository.name)}
[dim]Storage:[/dim] {storage}

[bold]Next steps:[/bold]
  1. Stage files: [cyan]minivcs add notes.txt[/cyan] or [cyan]minivcs add-all[/cyan]
  2. Commit: [cyan]minivcs commit -m "first"[/cyan]
"""
        console.print(Panel(message, border_style="green", title="minivcs"))


@app.command()
def add(
    ctx: typer.Context,
    paths: List[str] = typer.Argument(..., help="Files to stage"),
) -> None:
    """Add files to the staging area."""
    errors = 0
    last_error: Optional[BaseException] = None

    with _session(ctx) as orchestrator:
        handles = [orchestrator.add(path) for path in paths]
        for handle in handles:
            event = _await(orchestrator, handle, pending=handles)
            if isinstance(event, ErrorEvent):
                errors += 1
                last_error = event.cause or VCSError(event.message)
                console.print(f"  [red]x[/red] {escape(event.message)}")
                continue
            if not isinstance(event, SuccessEvent):
                errors += 1
                continue
            result = event.result
            size_str = _format_size(result.size)
            if result.already_staged:
                console.print(f"  [yellow]*[/yellow] {escape(result.path)}  [dim]({size_str}, refreshed)[/dim]")
            else:
                console.print(f"  [green]+[/green] {escape(result.path)}  [dim]({size_str})[/dim]")

    staged = len(paths) - errors
    if staged:
        console.print(f"\n[bold green]>[/bold green] {staged} file(s) staged for commit")
    if last_error is not None:
        raise typer.Exit(_exit_code_for(last_error))


@app.command("add-all")
def add_all(
    ctx: typer.Context,
    directory: Optional[Path] = typer.Argument(None, help="Directory to scan (default: repository root)"),
    exclude: Optional[List[str]] = typer.Option(
        None,
        "--exclude",
        "-x",
        help="Extra pattern to exclude (matched against path components)",
    ),
) -> None:
    """Stage every new file under a directory."""
    result = _run_task(ctx, lambda orchestrator: orchestrator.add_all(directory, exclude or None))

    if result.added_files:
        console.print("[bold green]Added:[/bold green]")
        for path in result.added_files:
            console.print(f"  [green]+[/green] {escape(path)}")
    console.print(
        f"\nProcessed {result.processed} file(s): "
        f"[green]{result.added} added[/green], [dim]{result.skipped} skipped[/dim]"
    )


@app.command()
def commit(
    ctx: typer.Context,
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Commit message (required)"),
    summary: Optional[str] = typer.Option(None, "--summary", help="Override the generated summary"),
) -> None:
    """Commit staged files as a snapshot."""
    if not message:
        console.print("[bold red]Error:[/bold red] Commit message is required", style="red")
        console.print('  Use [bold]-m "your message"[/bold] to provide a commit message', style="yellow")
        raise typer.Exit(EXIT_USER_ERROR)

    result = _run_task(ctx, lambda orchestrator: orchestrator.commit(message, summary))

    console.print(f"[bold green]✓[/bold green] Created commit [bold yellow]{result.commit_id}[/bold yellow]")
    console.print(f"  [dim]Message:[/dim] {escape(result.message)}")
    console.print(f"  [dim]Summary:[/dim] {escape(result.summary)}")


@app.command()
def status(
    ctx: typer.Context,
    short: bool = typer.Option(False, "--short", help="Show short format output"),
    quick: bool = typer.Option(False, "--quick", help="Show a compact summary report"),
) -> None:
    """Show HEAD and the staging area."""
    if quick:
        report = _run_task(ctx, lambda orchestrator: orchestrator.quick_status())
        console.print(escape(report), end="")
        return

    repo_status = _run_task(ctx, lambda orchestrator: orchestrator.status())

    if short:
        for entry in repo_status.staged:
            console.print(f"A  {escape(entry.path)}")
        return

    console.print(f"[bold]Repository:[/bold] {escape(repo_status.name)}  [dim]({escape(str(repo_status.root))})[/dim]")
    if repo_status.head:
        console.print(f"[bold]HEAD:[/bold] {repo_status.head}")
    else:
        console.print("[bold]HEAD:[/bold] [dim](no commits yet)[/dim]")
    console.print(f"[bold]Commits:[/bold] {repo_status.commit_count}")
    if not repo_status.database_backed:
        console.print("[dim]Metadata database: not in use (filesystem only)[/dim]")
    console.print()

    if repo_status.staged:
        console.print("[bold green]Changes to be committed:[/bold green]")
        console.print('  [dim](use "minivcs commit -m <message>" to commit)[/dim]\n')
        for entry in repo_status.staged:
            console.print(f"  [green]+[/green] {escape(entry.path)}  [dim]({_format_size(entry.size)})[/dim]")
        console.print()
    elif repo_status.head:
        console.print("[dim]Nothing to commit[/dim]")
    else:
        console.print("[yellow]No files staged for commit[/yellow]")
        console.print("  Use [bold]minivcs add <file>[/bold] to stage files")


@app.command()
def log(
    ctx: typer.Context,
    max_count: Optional[int] = typer.Option(None, "--max-count", "-n", help="Limit number of commits to show"),
    oneline: bool = typer.Option(False, "--oneline", help="Show each commit on a single line"),
    format: str = typer.Option(  # noqa: A002
        "default",
        "--format",
        help="Output format: default, oneline, json",
    ),
    activity: bool = typer.Option(False, "--activity", help="Show a recent activity summary"),
) -> None:
    """Show commit history."""
    if activity:
        report = _run_task(
            ctx,
            lambda orchestrator: orchestrator.recent_activity(max_count if max_count is not None else 10),
        )
        console.print(escape(report), end="")
        return

    commits = _run_task(ctx, lambda orchestrator: orchestrator.log(max_count))

    if not commits:
        console.print("[dim]No commits yet[/dim]")
        return

    if format == "json":
        typer.echo(json.dumps([c.to_dict() for c in commits], indent=2))
    elif oneline or format == "oneline":
        for c in commits:
            console.print(f"[yellow]{c.commit_id}[/yellow] {escape(c.message.splitlines()[0])}")
    else:
        for i, c in enumerate(commits):
            console.print(f"[bold yellow]commit {c.commit_id}[/bold yellow]")
            console.print(f"[bold]Date:[/bold]    {c.formatted_timestamp}")
            console.print(f"[bold]Summary:[/bold] {escape(c.summary)}")
            console.print()
            for line in c.message.split("\n"):
                console.print(f"    {escape(line)}")
            if i < len(commits) - 1:
                console.print()


@app.command()
def show(
    ctx: typer.Context,
    commit_id: str = typer.Argument(..., help="Commit to describe"),
) -> None:
    """Show a detailed report of one commit."""
    report = _run_task(ctx, lambda orchestrator: orchestrator.show(commit_id))
    console.print(escape(report), end="")


@app.command()
def diff(
    ctx: typer.Context,
    commit_a: str = typer.Argument(..., help="Base commit"),
    commit_b: str = typer.Argument(..., help="Commit to compare against the base"),
    detailed: bool = typer.Option(False, "--detailed", "-d", help="Include line-level changes"),
    summary: bool = typer.Option(False, "--summary", help="Show only change counts"),
    format: str = typer.Option(  # noqa: A002
        "text",
        "--format",
        help="Output format: text, json",
    ),
) -> None:
    """Compare two commits."""
    result = _run_task(ctx, lambda orchestrator: orchestrator.diff(commit_a, commit_b, detailed))

    if format == "json":
        typer.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        return

    if summary:
        table = Table(title=f"{result.commit_a} -> {result.commit_b}")
        table.add_column("Change")
        table.add_column("Files", justify="right")
        table.add_row("Added", str(len(result.added)))
        table.add_row("Removed", str(len(result.removed)))
        table.add_row("Common", str(len(result.common)))
        console.print(table)
        return

    console.print(escape(format_diff(result)), end="")


def main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        raise SystemExit(EXIT_INTERRUPTED)


if __name__ == "__main__":
    main()
