"""Command line interface for the vinyl catalog."""

import asyncio
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .application import CatalogService
from .application.commands.accounts import ChangeUsernameCommand, DeleteUserCommand, RegisterUserCommand
from .application.commands.catalog import (
    AddBookmarkCommand,
    AttachOwnershipCommand,
    CreateBookmarkTargetCommand,
    CreateRecordCommand,
    DeleteRecordCommand,
    DetachOwnershipCommand,
    PurgeOrphanRecordsCommand,
    RemoveBookmarkCommand,
    SetRatingCommand,
    SyncBookmarksCommand,
    UpdateRecordDetailsCommand,
)
from .application.queries.catalog import (
    GetCollectionStatisticsQuery,
    GetRecordQuery,
    ListBookmarksQuery,
    ListRecordsQuery,
)
from .domain.catalog.entities import Record
from .domain.catalog.statistics import CollectionStatistics
from .exceptions import CatalogError, Unauthorized
from .models.config import load_config

console = Console()

CONDITIONS = ["Mint", "Near Mint", "Very Good", "Good", "Fair", "Poor"]


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def _details(**fields: Any) -> Dict[str, Any]:
    """Descriptive fields given on the command line, as wire names."""
    names = {
        "product_code": "productCode",
        "release_date": "releaseDate",
        "pressing_type": "pressingType",
        "artwork": "artworkRef",
    }
    return {names.get(k, k): v for k, v in fields.items() if v is not None}


def _fail(kind: Optional[str], message: Optional[str]) -> None:
    console.print(f"[red]{kind or 'Error'}:[/red] {message or 'unknown error'}")
    sys.exit(1)


def _run(ctx: click.Context, action):
    """Run an async action against a freshly built service and close it afterwards."""
    async def runner():
        service = CatalogService.from_config(ctx.obj["config"])
        async with service:
            return await action(service)

    try:
        return asyncio.run(runner())
    except CatalogError as e:
        _fail(e.kind, e.message)


async def _identity(service: CatalogService, username: Optional[str]):
    """Resolve --user to a registered user."""
    if not username:
        raise Unauthorized("Pass --user to act as a registered user")
    user = await service.user_repo.find_by_username(username)
    if user is None:
        raise Unauthorized(f"No registered user named {username!r}")
    return user


async def _dispatch(service: CatalogService, command):
    result = await service.execute(command)
    if not result.success:
        _fail(result.error_kind, result.message or "; ".join(result.errors))
    return result


async def _fetch(service: CatalogService, query):
    result = await service.query(query)
    if not result.success:
        _fail(result.error_kind, result.message or "; ".join(result.errors))
    return result.data


def _print_record(record: Record) -> None:
    data = record.to_dict()
    lines = [f"[bold]{record.get_display_name()}[/bold]", f"id: {record.id}"]
    for key in ("productCode", "genre", "label", "country", "pressingType"):
        if data.get(key):
            lines.append(f"{key}: {data[key]}")
    lines.append(f"rating: {record.average_rating} ({record.rating_count} vote(s))")
    console.print(Panel("\n".join(lines), title="Record"))

    if record.owners:
        owners = Table(title="Owners")
        owners.add_column("User", style="cyan")
        owners.add_column("Added")
        owners.add_column("Condition")
        owners.add_column("Price", justify="right")
        for fact in record.owners:
            owners.add_row(
                fact.username or fact.user_id,
                fact.added_at.date().isoformat(),
                fact.condition.value if fact.condition else "-",
                f"{fact.purchase_price:.2f}" if fact.purchase_price is not None else "-",
            )
        console.print(owners)
    else:
        console.print("[dim]No owners; bookmark target only[/dim]")


def _records_table(records, title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Artist", style="cyan")
    table.add_column("Album")
    table.add_column("Owners", justify="right")
    table.add_column("Rating", justify="right")
    for record in records:
        table.add_row(
            record.id,
            record.artist,
            record.album,
            str(record.owner_count),
            f"{record.average_rating:.1f}" if record.rating_count else "-",
        )
    return table


@click.group()
@click.version_option(package_name="vinyl-catalog")
@click.option('--config', type=click.Path(exists=True, path_type=Path), help='Configuration file path')
@click.option('--data-dir', type=click.Path(path_type=Path), help='Directory for the file backend')
@click.option('--backend', type=click.Choice(["memory", "file", "redis"]), help='Storage backend')
@click.option('--verbose', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx: click.Context, config: Optional[Path], data_dir: Optional[Path], backend: Optional[str], verbose: bool):
    """Catalogue vinyl records shared between many collectors."""
    _setup_logging(verbose)
    try:
        cfg = load_config(config)
    except CatalogError as e:
        _fail(e.kind, e.message)
    if data_dir:
        cfg.storage.data_directory = data_dir
    if backend:
        cfg.storage.backend = backend
    ctx.obj = {"config": cfg}


def record_options(required: bool):
    """Descriptive metadata options shared by add, bookmark-target and update."""
    def decorator(func):
        options = [
            click.option('--artist', required=required, help='Artist name'),
            click.option('--album', required=required, help='Album title'),
            click.option('--product-code', help='Barcode (EAN/UPC)'),
            click.option('--release-date', help='Release date, e.g. 1978-05-12'),
            click.option('--genre'),
            click.option('--label'),
            click.option('--country'),
            click.option('--pressing-type', help='e.g. Original, Reissue'),
            click.option('--artwork', help='Cover art reference'),
            click.option('--notes', 'description', help='Public description'),
        ]
        for option in reversed(options):
            func = option(func)
        return func
    return decorator


def ownership_options(func):
    func = click.option('--price', type=float, help='What you paid')(func)
    func = click.option('--personal-notes', help='Private notes')(func)
    func = click.option('--condition', type=click.Choice(CONDITIONS, case_sensitive=False))(func)
    return func


def _record_fields(artist, album, product_code, release_date, genre, label, country, pressing_type, artwork, description):
    return _details(
        artist=artist, album=album, product_code=product_code, release_date=release_date,
        genre=genre, label=label, country=country, pressing_type=pressing_type,
        artwork=artwork, notes=description,
    )


@cli.command()
@click.option('--user', 'username', help='Act as this user')
@record_options(required=True)
@ownership_options
@click.pass_context
def add(ctx, username, condition, personal_notes, price, **fields):
    """Add a record to your collection (joins an existing one with the same barcode)."""
    async def action(service):
        user = await _identity(service, username)
        result = await _dispatch(service, CreateRecordCommand(
            user_id=user.id,
            username=user.username,
            details=_record_fields(**fields),
            condition=condition,
            notes=personal_notes,
            purchase_price=price,
        ))
        console.print(f"[green]{result.message}[/green]")
        _print_record(Record.from_dict(result.result_data["record"]))

    _run(ctx, action)


@cli.command("bookmark-target")
@click.option('--user', 'username', help='Act as this user')
@record_options(required=True)
@click.pass_context
def bookmark_target(ctx, username, **fields):
    """Create a record without owning it, so it can be bookmarked."""
    async def action(service):
        user = await _identity(service, username)
        result = await _dispatch(service, CreateBookmarkTargetCommand(user_id=user.id, details=_record_fields(**fields)))
        console.print(f"[green]{result.message}[/green] ({result.result_data['record']['id']})")

    _run(ctx, action)


@cli.command()
@click.argument('record_id')
@click.option('--user', 'username', help='Act as this user')
@ownership_options
@click.pass_context
def claim(ctx, record_id, username, condition, personal_notes, price):
    """Add RECORD_ID to your collection, or update your condition, notes and price."""
    async def action(service):
        user = await _identity(service, username)
        result = await _dispatch(service, AttachOwnershipCommand(
            record_id=record_id,
            user_id=user.id,
            username=user.username,
            condition=condition,
            notes=personal_notes,
            purchase_price=price,
        ))
        console.print(f"[green]{result.message}[/green]")

    _run(ctx, action)


@cli.command()
@click.argument('record_id')
@click.option('--user', 'username', help='Act as this user')
@click.pass_context
def release(ctx, record_id, username):
    """Remove RECORD_ID from your collection (the record stays in the catalogue)."""
    async def action(service):
        user = await _identity(service, username)
        result = await _dispatch(service, DetachOwnershipCommand(record_id=record_id, user_id=user.id))
        console.print(f"[green]{result.message}[/green]")

    _run(ctx, action)


@cli.command()
@click.argument('record_id')
@click.argument('stars', type=click.IntRange(0, 5))
@click.option('--user', 'username', help='Act as this user')
@click.pass_context
def rate(ctx, record_id, stars, username):
    """Rate RECORD_ID with 1-5 STARS; 0 clears your rating."""
    async def action(service):
        user = await _identity(service, username)
        result = await _dispatch(service, SetRatingCommand(
            record_id=record_id, user_id=user.id, username=user.username, rating=stars,
        ))
        data = result.result_data
        console.print(f"[green]{result.message}[/green]: average {data['averageRating']} from {data['ratingCount']}")

    _run(ctx, action)


@cli.command()
@click.argument('record_id')
@click.option('--user', 'username', help='Act as this user')
@record_options(required=False)
@click.pass_context
def update(ctx, record_id, username, **fields):
    """Edit descriptive metadata of RECORD_ID."""
    async def action(service):
        user = await _identity(service, username)
        result = await _dispatch(service, UpdateRecordDetailsCommand(
            record_id=record_id, user_id=user.id, changes=_record_fields(**fields),
        ))
        changed = result.result_data["changed"]
        console.print(f"[green]{result.message}[/green]: {', '.join(changed) or 'nothing changed'}")

    _run(ctx, action)


@cli.command()
@click.argument('record_id')
@click.option('--user', 'username', help='Act as this user')
@click.option('--force', is_flag=True, help='Delete even if other users own it')
@click.confirmation_option(prompt='Delete this record and every owner\'s data on it?')
@click.pass_context
def delete(ctx, record_id, username, force):
    """Delete RECORD_ID from the catalogue entirely."""
    async def action(service):
        user = await _identity(service, username)
        result = await _dispatch(service, DeleteRecordCommand(record_id=record_id, user_id=user.id, force=force))
        console.print(f"[green]{result.message}[/green]")

    _run(ctx, action)


@cli.command("purge-orphans")
@click.option('--user', 'username', help='Act as this user')
@click.option('--dry-run', is_flag=True, help='Only list what would be deleted')
@click.pass_context
def purge_orphans(ctx, username, dry_run):
    """Delete records with no owner and no bookmark."""
    async def action(service):
        user = await _identity(service, username)
        result = await _dispatch(service, PurgeOrphanRecordsCommand(user_id=user.id, dry_run=dry_run))
        console.print(f"[green]{result.message}[/green]")
        for record_id in result.result_data["record_ids"]:
            console.print(f"  {record_id}")

    _run(ctx, action)


@cli.command()
@click.argument('record_id')
@click.option('--json', 'as_json', is_flag=True, help='Print the wire representation')
@click.pass_context
def show(ctx, record_id, as_json):
    """Show one record with all of its owners."""
    async def action(service):
        record = await _fetch(service, GetRecordQuery(record_id=record_id))
        if as_json:
            click.echo(json.dumps(record.to_dict(), indent=2))
        else:
            _print_record(record)

    _run(ctx, action)


@cli.command("list")
@click.option('--owner', help='Only records owned by this username')
@click.option('--limit', type=int, help='Show at most this many records')
@click.pass_context
def list_records(ctx, owner, limit):
    """Browse the catalogue, newest first."""
    async def action(service):
        owner_id = None
        if owner:
            owner_id = (await _identity(service, owner)).id
        records = await _fetch(service, ListRecordsQuery(owner_id=owner_id, limit=limit))
        console.print(_records_table(records, f"{len(records)} record(s)"))

    _run(ctx, action)


@cli.group()
def bookmark():
    """Manage bookmarks of records you do not own."""
    pass


@bookmark.command("add")
@click.argument('record_id')
@click.option('--user', 'username', help='Act as this user')
@click.pass_context
def bookmark_add(ctx, record_id, username):
    """Bookmark RECORD_ID."""
    async def action(service):
        user = await _identity(service, username)
        result = await _dispatch(service, AddBookmarkCommand(user_id=user.id, record_id=record_id))
        console.print(f"[green]{result.message}[/green]")

    _run(ctx, action)


@bookmark.command("remove")
@click.argument('record_id')
@click.option('--user', 'username', help='Act as this user')
@click.pass_context
def bookmark_remove(ctx, record_id, username):
    """Remove your bookmark of RECORD_ID."""
    async def action(service):
        user = await _identity(service, username)
        result = await _dispatch(service, RemoveBookmarkCommand(user_id=user.id, record_id=record_id))
        console.print(f"[green]{result.message}[/green]")

    _run(ctx, action)


@bookmark.command("list")
@click.option('--user', 'username', help='Act as this user')
@click.pass_context
def bookmark_list(ctx, username):
    """List your bookmarks."""
    async def action(service):
        user = await _identity(service, username)
        entries = await _fetch(service, ListBookmarksQuery(user_id=user.id))
        console.print(_records_table([e.record for e in entries], f"{len(entries)} bookmark(s)"))

    _run(ctx, action)


@bookmark.command("sync")
@click.argument('record_ids', nargs=-1, required=True)
@click.option('--user', 'username', help='Act as this user')
@click.pass_context
def bookmark_sync(ctx, record_ids, username):
    """Bookmark several RECORD_IDS at once, reporting the ones that failed."""
    async def action(service):
        user = await _identity(service, username)
        result = await _dispatch(service, SyncBookmarksCommand(user_id=user.id, record_ids=tuple(record_ids)))
        console.print(f"[green]{result.message}[/green]")
        for failure in result.result_data["failed"]:
            console.print(f"  [yellow]{failure['recordId']}[/yellow]: {failure['reason']}")

    _run(ctx, action)


def _distribution_table(title: str, rows, key_header: str) -> Table:
    table = Table(title=title)
    table.add_column(key_header, style="cyan")
    table.add_column("Count", justify="right")
    for key, count in rows:
        table.add_row(str(key), str(count))
    return table


def _print_statistics(stats: CollectionStatistics) -> None:
    badges = stats.badges
    summary = "\n".join([
        f"Records: {stats.total_records}",
        f"Invested: {stats.total_invested:.2f}",
        f"Highest / lowest / average: {stats.highest_value:.2f} / {stats.lowest_value:.2f} / {stats.average_value:.2f}",
        f"Added this month: {stats.added_this_month}",
        f"Current streak: {stats.current_streak} day(s)",
        f"Weight: {stats.estimated_weight_kg} kg, stack: {stats.estimated_length_m} m",
        f"Rarest: {stats.rarest_record.artist} - {stats.rarest_record.album} "
        f"({stats.rarest_record.owner_count} owner(s))" if stats.rarest_record else "Rarest: -",
        f"Badges: {badges.collector.name}, {badges.treasure_hunter.name}, {badges.completionist.name}"
        f"{', Time Traveler' if badges.time_traveler else ''}",
    ])
    console.print(Panel(summary, title="Collection"))
    console.print(_distribution_table("Genres", stats.genre_distribution, "Genre"))
    console.print(_distribution_table("Decades", stats.decade_distribution, "Decade"))
    console.print(_distribution_table("Top artists", stats.top_artists, "Artist"))


@cli.command()
@click.option('--user', 'username', help='Act as this user')
@click.option('--today', type=click.DateTime(formats=["%Y-%m-%d"]), help='Compute as of this date')
@click.option('--json', 'as_json', is_flag=True, help='Print the full statistics as JSON')
@click.pass_context
def stats(ctx, username, today, as_json):
    """Show statistics for your collection."""
    async def action(service):
        user = await _identity(service, username)
        day: Optional[date] = today.date() if today else None
        statistics = await _fetch(service, GetCollectionStatisticsQuery(user_id=user.id, today=day))
        if as_json:
            click.echo(json.dumps(statistics.to_dict(), indent=2))
        else:
            _print_statistics(statistics)

    _run(ctx, action)


@cli.group()
def user():
    """Manage user accounts."""
    pass


@user.command("register")
@click.argument('username')
@click.argument('email')
@click.option('--credential-hash', default="", help='Pre-hashed credential from the auth provider')
@click.pass_context
def user_register(ctx, username, email, credential_hash):
    """Register USERNAME with EMAIL."""
    async def action(service):
        result = await _dispatch(service, RegisterUserCommand(
            email=email, username=username, credential_hash=credential_hash,
        ))
        console.print(f"[green]{result.message}[/green] ({result.result_data['user']['id']})")

    _run(ctx, action)


@user.command("rename")
@click.argument('new_username')
@click.option('--user', 'username', help='Act as this user')
@click.pass_context
def user_rename(ctx, new_username, username):
    """Change your username to NEW_USERNAME."""
    async def action(service):
        current = await _identity(service, username)
        result = await _dispatch(service, ChangeUsernameCommand(user_id=current.id, new_username=new_username))
        console.print(f"[green]{result.message}[/green]")

    _run(ctx, action)


@user.command("delete")
@click.option('--user', 'username', help='Act as this user')
@click.confirmation_option(prompt='Delete your account and remove your records, ratings and bookmarks?')
@click.pass_context
def user_delete(ctx, username):
    """Delete your account. Records stay for their other owners."""
    async def action(service):
        current = await _identity(service, username)
        result = await _dispatch(service, DeleteUserCommand(user_id=current.id))
        console.print(f"[green]{result.message}[/green]")

    _run(ctx, action)


def main():
    """Main entry point."""
    cli()


if __name__ == '__main__':
    main()
