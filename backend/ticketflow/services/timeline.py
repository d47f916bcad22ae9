"""Timeline projections over the activity log: full, reporter-visible and agent text."""

import uuid
from datetime import datetime
from typing import Iterable

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.models.activity import TicketActivity
from ticketflow.models.enums import Visibility
from ticketflow.models.ticket import Ticket
from ticketflow.services.tickets import get_owned_ticket, get_ticket


async def get_ticket_timeline(
    db: AsyncSession,
    ticket_id: uuid.UUID,
    visibility: str | None = None,
    activity_types: Iterable[str] | None = None,
    since: datetime | None = None,
    limit: int | None = None,
) -> list[TicketActivity]:
    """Full internal timeline, oldest first. ``since`` is exclusive, for polling."""
    query = select(TicketActivity).where(TicketActivity.ticket_id == ticket_id)
    if visibility:
        query = query.where(TicketActivity.visibility == visibility)
    activity_types = list(activity_types or [])
    if activity_types:
        query = query.where(TicketActivity.activity_type.in_(activity_types))
    if since is not None:
        query = query.where(TicketActivity.created_at > since)
    query = query.order_by(TicketActivity.created_at.asc(), TicketActivity.id.asc())
    if limit:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_ticket_timeline_for_user(
    db: AsyncSession,
    ticket_id: uuid.UUID,
    reporter_id: str | None,
) -> list[TicketActivity]:
    """Entries the reporter may see. Non-owners get NotFound, never Forbidden."""
    await get_owned_ticket(db, ticket_id, reporter_id)

    result = await db.execute(
        select(TicketActivity)
        .where(
            TicketActivity.ticket_id == ticket_id,
            TicketActivity.visibility == Visibility.USER_VISIBLE.value,
            or_(
                TicketActivity.requires_approval.is_(False),
                TicketActivity.approved_at.is_not(None),
            ),
        )
        .order_by(TicketActivity.created_at.asc(), TicketActivity.id.asc())
    )
    return list(result.scalars().all())


def _meta(entry: TicketActivity) -> dict:
    return entry.payload or {}


def _render_status_change(entry: TicketActivity) -> str:
    meta = _meta(entry)
    line = f"STATUS: {meta.get('from_status', '?')} -> {meta.get('to_status', '?')}"
    if meta.get("note"):
        line += f" ({meta['note']})"
    return line


def _render_decision(entry: TicketActivity) -> str:
    meta = _meta(entry)
    line = f"DECISION ({entry.author_name}): {meta.get('decision', '')}"
    if meta.get("decision") == "approved":
        if meta.get("work_priority") is not None:
            line += f" [work priority {meta['work_priority']}]"
        if meta.get("direction"):
            line += f" - {meta['direction']}"
    elif entry.content:
        line += f" - {entry.content}"
    return line


def _render_test_result(entry: TicketActivity) -> str:
    meta = _meta(entry)
    line = f"TEST: {meta.get('result', '?')}"
    if entry.content:
        line += f" - {entry.content}"
    if meta.get("testing_url"):
        line += f" ({meta['testing_url']})"
    return line


def _render_assignment(entry: TicketActivity) -> str:
    return f"ASSIGNED: {_meta(entry).get('to_assignee') or 'unassigned'}"


def _render_resolution(entry: TicketActivity) -> str:
    line = f"RESOLVED: {_meta(entry).get('resolution', '?')}"
    if entry.content:
        line += f" - {entry.content}"
    return line


def _render_system(entry: TicketActivity) -> str:
    return f"SYSTEM: {entry.content or _meta(entry).get('event', '')}"


def _render_field_change(entry: TicketActivity) -> str:
    changes = _meta(entry).get("changes", [])
    parts = [f"{c['field']}: {c.get('from_value')} -> {c.get('to_value')}" for c in changes]
    return f"CHANGED: {'; '.join(parts)}"


def _render_default(entry: TicketActivity) -> str:
    line = f"{entry.author_type.upper()} ({entry.author_name}): {entry.content or ''}"
    if entry.requires_approval and entry.approved_at is None:
        line += " [draft, awaiting approval]"
    return line


RENDERERS = {
    "status_change": _render_status_change,
    "decision": _render_decision,
    "test_result": _render_test_result,
    "assignment": _render_assignment,
    "resolution": _render_resolution,
    "system": _render_system,
    "field_change": _render_field_change,
}


def render_entry(entry: TicketActivity) -> str:
    stamp = entry.created_at.strftime("%Y-%m-%d %H:%M:%S")
    renderer = RENDERERS.get(entry.activity_type, _render_default)
    return f"[{stamp}] {renderer(entry)}"


def render_agent_timeline(ticket: Ticket, entries: list[TicketActivity]) -> str:
    """Flatten a ticket and its timeline into plain text for a language-model caller."""
    lines = [
        f'Ticket T-{ticket.ticket_number}: "{ticket.title}"',
        (
            f"Status: {ticket.status} | Resolution: {ticket.resolution or 'none'} | "
            f"Priority: {ticket.priority or 'unset'} | Type: {ticket.ticket_type}"
        ),
        f"Reporter: {ticket.reporter_name or ticket.reporter_id} | Assigned: {ticket.assignee or 'unassigned'}",
    ]
    if ticket.direction:
        lines.append(f"Direction: {ticket.direction}")
    lines.append("")
    lines.append("Timeline:")
    lines.extend(render_entry(entry) for entry in entries)
    return "\n".join(lines)


async def get_ticket_timeline_for_agent(db: AsyncSession, ticket_id: uuid.UUID) -> str:
    ticket = await get_ticket(db, ticket_id)
    entries = await get_ticket_timeline(db, ticket_id)
    return render_agent_timeline(ticket, entries)
