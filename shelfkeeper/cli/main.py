# Copyright (c) 2025 Trae AI. All rights reserved.

import logging
import typer
from typing import Optional
from rich.console import Console
from rich.table import Table
from ..core.config import Config
from ..core.errors import LifecycleError
from ..core.models import MediaStatus, MediaType
from ..services.library import Library

app = typer.Typer(help="shelfkeeper - shared media library with quorum-based deletion.")
console = Console()


def _load_library(config_path: str, dry_run: bool = False) -> Library:
    try:
        config = Config.load(config_path)
    except Exception as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1)
    if dry_run:
        config.dry_run = True
    logging.basicConfig(
        level=logging.DEBUG if config.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return Library(config)


def _human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


@app.command("server")
def run_server(config_path: str = "config.yaml", dry_run: bool = False):
    """
    Run the web API, the library watcher and the reconciliation schedule.
    """
    from ..server.app import Server

    config = Config.load(config_path)
    if dry_run:
        config.dry_run = True
    server = Server(config=config)
    server.run()


@app.command("scan")
def scan(config_path: str = "config.yaml"):
    """
    Rescan every library root and mark missing items as gone.
    """
    library = _load_library(config_path)
    console.print(f"Scanning [cyan]{len(library.config.library_roots)}[/cyan] library root(s)...")
    report = library.scan_service.full_scan()

    for root in report.failed_roots:
        console.print(f"[red]Failed to scan[/red] {root}")
    console.print(
        f"Found [bold]{len(report.seen_paths)}[/bold] items, "
        f"marked [bold]{report.marked_gone}[/bold] as gone."
    )


@app.command("reconcile")
def reconcile(config_path: str = "config.yaml", dry_run: bool = False):
    """
    Run one reconciliation cycle: rescan, clean marks, repair trash, purge expired items.
    """
    library = _load_library(config_path, dry_run)
    report = library.reconcile_service.run_cycle()

    table = Table(title="Reconciliation")
    table.add_column("Step", style="magenta")
    table.add_column("Result", style="green")
    table.add_row("Marked gone", str(report.marked_gone))
    table.add_row("Marks removed", str(report.marks_removed))
    table.add_row("Missing from trash", str(report.missing_trash))
    table.add_row("Purged", str(report.purged))
    table.add_row("Sessions expired", str(report.sessions_expired))
    console.print(table)

    for step, error in report.errors.items():
        console.print(f"[red]{step} failed:[/red] {error}")
    if report.errors:
        raise typer.Exit(1)


@app.command("list")
def list_items(config_path: str = "config.yaml", status: Optional[str] = None, media_type: Optional[str] = None):
    """
    List catalogued media and their quorum progress.
    """
    library = _load_library(config_path)
    catalog = library.catalog
    try:
        kind = MediaType(media_type) if media_type else None
        items = (
            catalog.media.list_by_status(MediaStatus(status), kind) if status else catalog.media.list_all(kind)
        )
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    total_users = catalog.users.count()
    table = Table(title="Media Library")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="magenta")
    table.add_column("Type", style="green")
    table.add_column("Status", style="yellow")
    table.add_column("Marks")
    table.add_column("Size")

    for item in items:
        title = item.title
        if item.season is not None:
            title += f" - Season {item.season}"
        elif item.year:
            title += f" ({item.year})"
        table.add_row(
            str(item.id),
            title,
            item.media_type.value,
            item.status.value,
            f"{catalog.marks.count(item.id)}/{total_users}",
            _human_size(item.size_bytes),
        )

    console.print(table)
    console.print(f"\n[bold]{len(items)}[/bold] items.")


@app.command("trash")
def show_trash(config_path: str = "config.yaml"):
    """
    Show items waiting in trash and when they were trashed.
    """
    library = _load_library(config_path)
    items = library.catalog.media.list_by_status(MediaStatus.TRASHED)

    table = Table(title=f"Trash (grace period {library.config.grace_period_days} days)")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="magenta")
    table.add_column("Trashed At", style="yellow")
    table.add_column("Trash Location")
    for item in items:
        try:
            location = str(library.resolver.trash_location(item.path))
        except LifecycleError as e:
            location = f"[red]{e}[/red]"
        table.add_row(str(item.id), item.title, item.trashed_at or "", location)
    console.print(table)


@app.command("rescue")
def rescue(media_id: int, config_path: str = "config.yaml", dry_run: bool = False):
    """
    Move a trashed item back into its library root.
    """
    library = _load_library(config_path, dry_run)
    try:
        view = library.trash_service.rescue(media_id)
    except LifecycleError as e:
        console.print(f"[red]Rescue failed ({e.kind}):[/red] {e}")
        raise typer.Exit(1)
    console.print(f"Rescued [green]{view.item.title}[/green] to {view.item.path}")


@app.command("add-user")
def add_user(username: str, config_path: str = "config.yaml", admin: bool = False):
    """
    Add a user. New users raise the quorum for every item.
    """
    library = _load_library(config_path)
    try:
        user = library.user_service.create_user(username, admin)
    except LifecycleError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"Created user [green]{user.username}[/green] (id {user.id})")


@app.command("delete-user")
def delete_user(user_id: int, config_path: str = "config.yaml", dry_run: bool = False):
    """
    Remove a user, restoring their permanent items and re-checking quorum.
    """
    library = _load_library(config_path, dry_run)
    try:
        result = library.user_service.delete_user(user_id)
    except LifecycleError as e:
        console.print(f"[red]Failed to delete user ({e.kind}):[/red] {e}")
        raise typer.Exit(1)
    console.print(
        f"Deleted user {user_id}: restored [bold]{len(result.restored)}[/bold] permanent item(s), "
        f"trashed [bold]{len(result.trashed)}[/bold] item(s) that reached quorum."
    )
