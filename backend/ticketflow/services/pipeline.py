"""Derived read views over tickets: stage counts, queues and stats."""

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.config import settings
from ticketflow.database import utcnow
from ticketflow.models.enums import TicketStatus
from ticketflow.models.ticket import Ticket
from ticketflow.services.state_machine import OPEN_STATUSES, PIPELINE_STAGES
from ticketflow.services.tickets import active_tickets

REWORK_RESULTS = ("fail", "partial")
REWORK_STATUSES = (TicketStatus.IN_PROGRESS.value, TicketStatus.IN_REVIEW.value)


def _scoped(query: Select, project_id: str | None) -> Select:
    if project_id:
        query = query.where(Ticket.project_id == project_id)
    return query


def _followups_due(query: Select) -> Select:
    # No scheduled time means the follow-up is due now
    return query.where(
        Ticket.needs_followup.is_(True),
        or_(Ticket.followup_after.is_(None), Ticket.followup_after <= utcnow()),
    )


async def _count_by(db: AsyncSession, column, project_id: str | None) -> dict:
    query = select(column, func.count()).where(Ticket.deleted_at.is_(None)).group_by(column)
    result = await db.execute(_scoped(query, project_id))
    return {key: count for key, count in result.all()}


async def get_pipeline_counts(db: AsyncSession, project_id: str | None = None) -> dict[str, int]:
    by_status = await _count_by(db, Ticket.status, project_id)
    return {
        stage: sum(by_status.get(status.value, 0) for status in statuses)
        for stage, statuses in PIPELINE_STAGES.items()
    }


async def get_work_queue(
    db: AsyncSession, project_id: str | None = None, limit: int | None = None
) -> list[Ticket]:
    """Approved tickets, most urgent (lowest work priority) first."""
    query = (
        _scoped(active_tickets(), project_id)
        .where(Ticket.status == TicketStatus.APPROVED.value)
        .order_by(Ticket.work_priority.asc().nulls_last(), Ticket.created_at.asc())
        .limit(limit or settings.work_queue_limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_rework_items(db: AsyncSession, project_id: str | None = None) -> list[Ticket]:
    query = (
        _scoped(active_tickets(), project_id)
        .where(
            Ticket.testing_result.in_(REWORK_RESULTS),
            Ticket.status.in_(REWORK_STATUSES),
        )
        .order_by(Ticket.work_priority.asc().nulls_last(), Ticket.updated_at.asc())
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_follow_ups(db: AsyncSession, project_id: str | None = None) -> list[Ticket]:
    query = _followups_due(_scoped(active_tickets(), project_id)).order_by(
        Ticket.followup_after.asc().nulls_first(), Ticket.created_at.asc()
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_triage_batch(
    db: AsyncSession, project_id: str | None = None, batch_size: int | None = None
) -> list[Ticket]:
    """Oldest untriaged tickets."""
    query = (
        _scoped(active_tickets(), project_id)
        .where(Ticket.status == TicketStatus.NEW.value)
        .order_by(Ticket.created_at.asc(), Ticket.ticket_number.asc())
        .limit(batch_size or settings.triage_batch_size)
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def _count(db: AsyncSession, query: Select) -> int:
    result = await db.execute(select(func.count()).select_from(query.subquery()))
    return result.scalar_one()


async def get_ticket_stats(db: AsyncSession, project_id: str | None = None) -> dict:
    base = _scoped(active_tickets(), project_id)

    by_status = await _count_by(db, Ticket.status, project_id)
    by_type = await _count_by(db, Ticket.ticket_type, project_id)
    by_priority = {
        (priority or "unset"): count
        for priority, count in (await _count_by(db, Ticket.priority, project_id)).items()
    }

    resolved = await db.execute(
        _scoped(
            select(Ticket.created_at, Ticket.resolved_at).where(
                Ticket.resolved_at.is_not(None), Ticket.deleted_at.is_(None)
            ),
            project_id,
        )
    )
    durations = [
        (resolved_at - created_at).total_seconds() / 3600 for created_at, resolved_at in resolved.all()
    ]
    avg_resolution_hours = round(sum(durations) / len(durations), 2) if durations else None

    return {
        "total": sum(by_status.values()),
        "open": sum(count for status, count in by_status.items() if status in {s.value for s in OPEN_STATUSES}),
        "by_status": by_status,
        "by_type": by_type,
        "by_priority": by_priority,
        "needing_decision": by_status.get(TicketStatus.TRIAGED.value, 0),
        "needing_rework": await _count(
            db, base.where(Ticket.testing_result.in_(REWORK_RESULTS), Ticket.status.in_(REWORK_STATUSES))
        ),
        "followups_due": await _count(db, _followups_due(base)),
        "avg_resolution_hours": avg_resolution_hours,
    }
