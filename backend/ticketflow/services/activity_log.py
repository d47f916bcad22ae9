"""Append-only activity log writer and reader."""

import uuid
from dataclasses import dataclass
from datetime import timedelta

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.database import utcnow
from ticketflow.models.activity import TicketActivity
from ticketflow.models.enums import ActivityType, AuthorType, Visibility
from ticketflow.models.ticket import Ticket
from ticketflow.schemas.activity import build_payload
from ticketflow.services.errors import NotFound, ValidationError

logger = structlog.get_logger()


@dataclass(frozen=True)
class Actor:
    """Who performed an operation."""

    type: AuthorType
    name: str


SYSTEM_ACTOR = Actor(type=AuthorType.SYSTEM, name="system")


async def append_activity(
    db: AsyncSession,
    ticket: Ticket,
    activity_type: ActivityType,
    actor: Actor,
    *,
    content: str | None = None,
    payload: dict | None = None,
    visibility: Visibility = Visibility.INTERNAL,
    requires_approval: bool = False,
) -> TicketActivity:
    """Stage one activity row and touch the ticket's audit fields.

    Flushes but does not commit; the caller commits the snapshot change and
    the row together.
    """
    try:
        metadata = build_payload(activity_type, **(payload or {}))
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {ActivityType(activity_type).value} metadata",
            errors=e.errors(include_url=False, include_context=False),
        )

    # Strictly increasing per ticket so timeline order matches append order
    created_at = utcnow()
    if ticket.updated_at is not None and created_at <= ticket.updated_at:
        created_at = ticket.updated_at + timedelta(microseconds=1)

    entry = TicketActivity(
        id=uuid.uuid4(),
        ticket_id=ticket.id,
        activity_type=ActivityType(activity_type).value,
        author_type=AuthorType(actor.type).value,
        author_name=actor.name,
        content=content,
        payload=metadata,
        visibility=Visibility(visibility).value,
        requires_approval=requires_approval,
        created_at=created_at,
    )
    db.add(entry)

    ticket.updated_at = entry.created_at
    ticket.updated_by = actor.name

    await db.flush()
    logger.info(
        "activity_appended",
        ticket_id=str(ticket.id),
        activity_id=str(entry.id),
        activity_type=entry.activity_type,
        author_type=entry.author_type,
        visibility=entry.visibility,
    )
    return entry


async def get_activity(db: AsyncSession, activity_id: uuid.UUID) -> TicketActivity | None:
    result = await db.execute(select(TicketActivity).where(TicketActivity.id == activity_id))
    return result.scalar_one_or_none()


async def count_activity(db: AsyncSession, ticket_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count()).select_from(TicketActivity).where(TicketActivity.ticket_id == ticket_id)
    )
    return result.scalar_one()


async def promote_to_user_visible(
    db: AsyncSession,
    ticket_id: uuid.UUID,
    activity_id: uuid.UUID,
    actor: Actor,
) -> TicketActivity:
    """Approve an internal entry for the reporter.

    The only mutation ever applied to an existing activity row.
    """
    entry = await get_activity(db, activity_id)
    if entry is None or entry.ticket_id != ticket_id:
        raise NotFound("Activity not found")
    if entry.visibility != Visibility.INTERNAL.value:
        raise NotFound("Activity not found or already visible")

    entry.visibility = Visibility.USER_VISIBLE.value
    entry.approved_by = actor.name
    entry.approved_at = utcnow()

    await db.commit()
    logger.info(
        "activity_promoted",
        ticket_id=str(ticket_id),
        activity_id=str(activity_id),
        approved_by=actor.name,
    )
    return entry
