"""Ticket snapshot store.

Every mutation here appends an activity row in the same transaction; the
snapshot is never written without one.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

import structlog
from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.config import settings
from ticketflow.database import utcnow
from ticketflow.models.enums import ActivityType, AuthorType, TicketSource, Visibility
from ticketflow.models.ticket import Ticket, TicketSequence
from ticketflow.schemas.ticket import TicketCreate, TicketUpdate
from ticketflow.services.activity_log import Actor, append_activity
from ticketflow.services.errors import NotFound, ValidationError

logger = structlog.get_logger()

SORT_COLUMNS = {
    "created_at": Ticket.created_at,
    "updated_at": Ticket.updated_at,
    "work_priority": Ticket.work_priority,
    "ticket_number": Ticket.ticket_number,
}

MAX_PAGE_SIZE = 100

# Columns PATCH may not null out
NON_NULLABLE_UPDATES = {"title", "description", "ticket_type", "needs_followup"}


@dataclass
class TicketFilters:
    project_id: str | None = None
    status: list[str] = field(default_factory=list)
    ticket_type: list[str] = field(default_factory=list)
    priority: list[str] = field(default_factory=list)
    assignee: str | None = None
    reporter_id: str | None = None
    needs_followup: bool | None = None
    search: str | None = None


def to_naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _plain(value):
    return value.value if isinstance(value, Enum) else value


def active_tickets() -> Select:
    """Base query excluding soft-deleted tickets."""
    return select(Ticket).where(Ticket.deleted_at.is_(None))


async def get_ticket(db: AsyncSession, ticket_id: uuid.UUID, include_deleted: bool = False) -> Ticket:
    query = select(Ticket).where(Ticket.id == ticket_id)
    if not include_deleted:
        query = query.where(Ticket.deleted_at.is_(None))
    result = await db.execute(query)
    ticket = result.scalar_one_or_none()
    if ticket is None:
        raise NotFound("Ticket not found")
    return ticket


async def get_ticket_by_number(db: AsyncSession, ticket_number: int) -> Ticket:
    result = await db.execute(active_tickets().where(Ticket.ticket_number == ticket_number))
    ticket = result.scalar_one_or_none()
    if ticket is None:
        raise NotFound(f"Ticket T-{ticket_number} not found")
    return ticket


async def get_owned_ticket(db: AsyncSession, ticket_id: uuid.UUID, reporter_id: str | None) -> Ticket:
    """Fetch a ticket on behalf of a reporter; non-owners get NotFound."""
    ticket = await get_ticket(db, ticket_id)
    if not reporter_id or ticket.reporter_id != reporter_id:
        raise NotFound("Ticket not found")
    return ticket


async def _find_by_reference(db: AsyncSession, project_id: str, client_reference_id: str) -> Ticket | None:
    result = await db.execute(
        select(Ticket).where(
            Ticket.project_id == project_id,
            Ticket.client_reference_id == client_reference_id,
        )
    )
    return result.scalar_one_or_none()


async def _check_parent(db: AsyncSession, parent_id: uuid.UUID | None) -> None:
    if parent_id is None:
        return
    result = await db.execute(select(Ticket.id).where(Ticket.id == parent_id))
    if result.scalar_one_or_none() is None:
        raise ValidationError(f"Parent ticket {parent_id} does not exist")


async def create_ticket(
    db: AsyncSession,
    data: TicketCreate,
    actor: Actor,
    default_source: TicketSource = TicketSource.API,
) -> tuple[Ticket, bool]:
    """Create a ticket, or return the existing one for a repeated idempotency key.

    Returns ``(ticket, created)``.
    """
    project_id = data.project_id or settings.default_project_id
    source = _plain(data.source or default_source)

    if data.client_reference_id:
        existing = await _find_by_reference(db, project_id, data.client_reference_id)
        if existing is not None:
            logger.info(
                "ticket_create_idempotent",
                ticket_id=str(existing.id),
                client_reference_id=data.client_reference_id,
            )
            return existing, False

    await _check_parent(db, data.parent_id)

    try:
        sequence = TicketSequence()
        db.add(sequence)
        await db.flush()

        now = utcnow()
        ticket = Ticket(
            id=uuid.uuid4(),
            ticket_number=sequence.id,
            project_id=project_id,
            source=source,
            ticket_type=_plain(data.ticket_type),
            title=data.title,
            description=data.description,
            status="new",
            priority=_plain(data.priority),
            tags=data.tags,
            route=data.route,
            environment=data.environment,
            browser_info=data.browser_info,
            os_info=data.os_info,
            reporter_id=data.reporter_id,
            reporter_name=data.reporter_name,
            reporter_email=data.reporter_email,
            parent_id=data.parent_id,
            client_reference_id=data.client_reference_id,
            needs_followup=False,
            created_at=now,
            updated_at=now,
            updated_by=actor.name,
        )
        db.add(ticket)
        await db.flush()

        await append_activity(
            db,
            ticket,
            ActivityType.SYSTEM,
            Actor(type=AuthorType.SYSTEM, name=actor.name),
            content=f"Ticket created via {source}",
            payload={"event": "created", "source": source},
            visibility=Visibility.USER_VISIBLE,
        )
        await db.commit()
    except IntegrityError:
        # Lost a race on (project_id, client_reference_id); return the winner
        await db.rollback()
        if not data.client_reference_id:
            raise
        existing = await _find_by_reference(db, project_id, data.client_reference_id)
        if existing is None:
            raise
        logger.info(
            "ticket_create_race_resolved",
            ticket_id=str(existing.id),
            client_reference_id=data.client_reference_id,
        )
        return existing, False

    logger.info(
        "ticket_created",
        ticket_id=str(ticket.id),
        ticket_number=ticket.ticket_number,
        project_id=project_id,
        source=source,
    )
    return ticket, True


async def update_ticket(db: AsyncSession, ticket_id: uuid.UUID, data: TicketUpdate, actor: Actor) -> Ticket:
    """Apply descriptive field changes and record them as one field_change entry."""
    ticket = await get_ticket(db, ticket_id)

    requested = data.model_dump(exclude_unset=True, exclude={"actor_type", "actor_name"})
    for name in NON_NULLABLE_UPDATES:
        if name in requested and requested[name] is None:
            raise ValidationError(f"'{name}' cannot be null")
    if requested.get("parent_id") is not None:
        if requested["parent_id"] == ticket.id:
            raise ValidationError("A ticket cannot be its own parent")
        await _check_parent(db, requested["parent_id"])

    changes = []
    for name, value in requested.items():
        value = _plain(value)
        if name == "followup_after":
            value = to_naive_utc(value)
        current = getattr(ticket, name)
        if current == value:
            continue
        changes.append({"field": name, "from_value": current, "to_value": value})
        setattr(ticket, name, value)

    if not changes:
        return ticket

    await append_activity(
        db,
        ticket,
        ActivityType.FIELD_CHANGE,
        actor,
        content=", ".join(c["field"] for c in changes),
        payload={"changes": changes},
    )
    await db.commit()

    logger.info("ticket_updated", ticket_id=str(ticket.id), fields=[c["field"] for c in changes])
    return ticket


async def soft_delete_ticket(db: AsyncSession, ticket_id: uuid.UUID, actor: Actor) -> bool:
    try:
        ticket = await get_ticket(db, ticket_id)
    except NotFound:
        return False

    ticket.deleted_at = utcnow()
    await append_activity(
        db,
        ticket,
        ActivityType.SYSTEM,
        actor,
        content="Ticket deleted",
        payload={"event": "deleted"},
    )
    await db.commit()

    logger.info("ticket_deleted", ticket_id=str(ticket.id), actor=actor.name)
    return True


def _apply_filters(query: Select, filters: TicketFilters) -> Select:
    if filters.project_id:
        query = query.where(Ticket.project_id == filters.project_id)
    if filters.status:
        query = query.where(Ticket.status.in_(filters.status))
    if filters.ticket_type:
        query = query.where(Ticket.ticket_type.in_(filters.ticket_type))
    if filters.priority:
        query = query.where(Ticket.priority.in_(filters.priority))
    if filters.assignee:
        query = query.where(Ticket.assignee == filters.assignee)
    if filters.reporter_id:
        query = query.where(Ticket.reporter_id == filters.reporter_id)
    if filters.needs_followup is not None:
        query = query.where(Ticket.needs_followup.is_(filters.needs_followup))
    if filters.search:
        query = query.where(
            Ticket.title.icontains(filters.search, autoescape=True)
            | Ticket.description.icontains(filters.search, autoescape=True)
        )
    return query


async def list_tickets(
    db: AsyncSession,
    filters: TicketFilters,
    sort: str = "created_at",
    order: str = "desc",
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Ticket], int]:
    if sort not in SORT_COLUMNS:
        raise ValidationError(f"Cannot sort by '{sort}'. Allowed: {', '.join(SORT_COLUMNS)}")
    if order not in ("asc", "desc"):
        raise ValidationError("order must be 'asc' or 'desc'")
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    page = max(page, 1)

    query = _apply_filters(active_tickets(), filters)

    total_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = total_result.scalar_one()

    column = SORT_COLUMNS[sort]
    ordering = column.asc() if order == "asc" else column.desc()
    query = (
        query.order_by(ordering.nulls_last(), Ticket.ticket_number.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all()), total
