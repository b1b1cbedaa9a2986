"""
CLI commands for viewing and editing single profiles.

Each command opens a profile session against the configured backend,
renders the resolved views with rich, and closes the session again.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Coroutine, List, Optional, Tuple

import click
import structlog
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from fmadmin.core.config import get_settings, validate_required_settings
from fmadmin.core.exceptions import ConfigurationError, FMAdminError
from fmadmin.core.logging import bind_profile
from fmadmin.core.models import Notification, ProfileType
from fmadmin.data.rest_backend import RestProfileBackend
from fmadmin.profiles.view_model import about_tags, has_about_content
from fmadmin.services.profile_session import ProfileSession

logger = structlog.get_logger(__name__)

console = Console()

PROFILE_TYPE = click.Choice([p.value for p in ProfileType])

_ABOUT_LABELS = {
    "bio": "Bio",
    "aboutUs": "About Us",
    "age": "Age",
    "height": "Height",
    "occupation": "Occupation",
    "education": "Education",
    "relationshipPreference": "Relationship",
    "religion": "Religion",
    "heritage": "Heritage",
    "amhStatus": "AMH Level",
    "opennessToSecondCycle": "Second Cycle",
    "familyLifestyle": "Family Lifestyle",
}


def _make_backend(dry_run: bool) -> RestProfileBackend:
    missing = validate_required_settings("sync")
    if missing:
        raise ConfigurationError(
            f"Missing required settings: {', '.join(missing)}", details={"missing": missing}
        )
    settings = get_settings()
    return RestProfileBackend(
        settings.backend, settings.feed, dry_run=dry_run or settings.dry_run
    )


def _print_notification(notification: Notification) -> None:
    color = "green" if notification.level == "success" else "red"
    console.print(f"[{color}]{notification.message}[/{color}]")


def render_profile(session: ProfileSession) -> None:
    """Print hero, about fields and tags of the session's current record."""
    header = session.header()
    view = session.about_view()
    tags = about_tags(view)

    meta = " | ".join(chip["value"] for chip in header.meta())
    lines = [f"[bold]{header.display_name}[/bold] ({header.initials})"]
    if meta:
        lines.append(meta)
    if header.experience:
        lines.append(header.experience)
    lines.append(
        f"Status: {header.status or '—'} | Profile: {header.profile_status} | "
        f"Form 2: {header.form2_status} | Updated: {header.updated}"
    )
    console.print(Panel("\n".join(lines), title=f"{header.profile_type.value} {session.entity_id}"))

    table = Table(title="About", show_lines=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, label in _ABOUT_LABELS.items():
        value = view.get(key)
        if value:
            table.add_row(label, value)
    if has_about_content(view):
        console.print(table)
    else:
        console.print("[dim]No About Info[/dim]")

    for name, values in tags.items():
        if values:
            console.print(f"{name.title()}: " + ", ".join(f"[blue]{v}[/blue]" for v in values))

    images = session.images()
    if images:
        console.print(f"Gallery: {len(images)} image(s)")


def _open_session(
    entity_id: str, profile_type: str, dry_run: bool, notifications: List[Notification]
) -> Tuple[RestProfileBackend, ProfileSession]:
    settings = get_settings()
    backend = _make_backend(dry_run)
    session = ProfileSession.from_settings(
        entity_id, profile_type, backend, settings, notify=notifications.append
    )
    return backend, session


def _run(ctx: click.Context, coro: Coroutine) -> Any:
    """Run a coroutine, turning fmadmin errors into a red message and exit code 1."""
    try:
        return asyncio.run(coro)
    except FMAdminError as e:
        logger.debug("Command failed", error=str(e), details=e.details)
        console.print(f"[red]Error:[/red] {e.message}")
        ctx.exit(1)


def _report(ctx: click.Context, notifications: List[Notification]) -> None:
    for notification in notifications:
        _print_notification(notification)
    if any(n.level == "error" for n in notifications):
        ctx.exit(1)


async def _show(entity_id: str, profile_type: str, dry_run: bool) -> None:
    backend, session = _open_session(entity_id, profile_type, dry_run, [])
    async with backend:
        async with session:
            render_profile(session)


async def _watch(entity_id: str, profile_type: str, dry_run: bool, duration: Optional[float]):
    backend, session = _open_session(entity_id, profile_type, dry_run, [])
    async with backend:
        async with session:
            render_profile(session)
            session.add_change_listener(lambda _record: render_profile(session))
            console.print("[dim]Watching for changes (Ctrl-C to stop)...[/dim]")
            if duration is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration)


async def _edit(
    entity_id: str, profile_type: str, dry_run: bool, field_name: str, value: Any
) -> List[Notification]:
    notifications: List[Notification] = []
    backend, session = _open_session(entity_id, profile_type, dry_run, notifications)
    async with backend:
        async with session:
            session.apply_edit(field_name, value)
            await session.drain()
            render_profile(session)
    return notifications


async def _status(
    entity_id: str, profile_type: str, dry_run: bool, new_status: str
) -> List[Notification]:
    notifications: List[Notification] = []
    backend, session = _open_session(entity_id, profile_type, dry_run, notifications)
    async with backend:
        async with session:
            session.change_status(new_status)
            await session.drain()
    return notifications


@click.command()
@click.argument("entity_id")
@click.option("--type", "profile_type", type=PROFILE_TYPE, default="parent", show_default=True)
@click.pass_context
def show(ctx, entity_id: str, profile_type: str):
    """Show the resolved profile view of ENTITY_ID."""
    with bind_profile(entity_id, profile_type):
        _run(ctx, _show(entity_id, profile_type, ctx.obj.get("dry_run", False)))


@click.command()
@click.argument("entity_id")
@click.option("--type", "profile_type", type=PROFILE_TYPE, default="parent", show_default=True)
@click.option("--duration", type=float, help="Stop after this many seconds")
@click.pass_context
def watch(ctx, entity_id: str, profile_type: str, duration: Optional[float]):
    """Show ENTITY_ID and re-render on every change."""
    try:
        with bind_profile(entity_id, profile_type):
            _run(ctx, _watch(entity_id, profile_type, ctx.obj.get("dry_run", False), duration))
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")


@click.command()
@click.argument("entity_id")
@click.argument("field_name")
@click.argument("value")
@click.option("--type", "profile_type", type=PROFILE_TYPE, default="parent", show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Parse VALUE as JSON")
@click.pass_context
def edit(ctx, entity_id: str, field_name: str, value: str, profile_type: str, as_json: bool):
    """Set FIELD_NAME (e.g. about or form2Data.fertility) of ENTITY_ID."""
    parsed: Any = value
    if as_json:
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"Invalid JSON: {e}", param_hint="VALUE")

    with bind_profile(entity_id, profile_type):
        notifications = _run(
            ctx, _edit(entity_id, profile_type, ctx.obj.get("dry_run", False), field_name, parsed)
        )
    _report(ctx, notifications)


@click.command()
@click.argument("entity_id")
@click.argument("new_status")
@click.option("--type", "profile_type", type=PROFILE_TYPE, default="parent", show_default=True)
@click.pass_context
def status(ctx, entity_id: str, new_status: str, profile_type: str):
    """Change the pipeline status of ENTITY_ID."""
    with bind_profile(entity_id, profile_type):
        notifications = _run(
            ctx, _status(entity_id, profile_type, ctx.obj.get("dry_run", False), new_status)
        )
    _report(ctx, notifications)
