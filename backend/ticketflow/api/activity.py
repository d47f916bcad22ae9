"""Activity append, promote and timeline endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.api.health import ACTIVITY_APPENDED
from ticketflow.database import get_db
from ticketflow.middleware.auth import AuthContext, authenticate, require_full_access
from ticketflow.models.activity import TicketActivity
from ticketflow.schemas.activity import ActivityResponse
from ticketflow.schemas.common import ActionResponse
from ticketflow.schemas.ticket import TicketResponse
from ticketflow.services.actions import dispatch_action
from ticketflow.services.activity_log import promote_to_user_visible
from ticketflow.services.errors import ValidationError
from ticketflow.services.tickets import get_ticket, to_naive_utc
from ticketflow.services.timeline import (
    get_ticket_timeline,
    get_ticket_timeline_for_agent,
    get_ticket_timeline_for_user,
)

router = APIRouter(prefix="/tickets", tags=["activity"])


def activity_to_response(entry: TicketActivity) -> ActivityResponse:
    return ActivityResponse(
        id=entry.id,
        ticket_id=entry.ticket_id,
        activity_type=entry.activity_type,
        author_type=entry.author_type,
        author_name=entry.author_name,
        content=entry.content,
        metadata=entry.payload,
        visibility=entry.visibility,
        requires_approval=entry.requires_approval,
        approved_by=entry.approved_by,
        approved_at=entry.approved_at,
        created_at=entry.created_at,
    )


@router.post("/{ticket_id}/activity", response_model=ActionResponse, status_code=201)
async def post_activity(
    ticket_id: UUID,
    body: dict = Body(...),
    auth: AuthContext = Depends(authenticate),
    db: AsyncSession = Depends(get_db),
):
    """Run one action (comment, message, approve, ...) against a ticket."""
    ticket, entry = await dispatch_action(db, ticket_id, body, auth)
    ACTIVITY_APPENDED.labels(activity_type=entry.activity_type).inc()
    return ActionResponse(activity=activity_to_response(entry), ticket=TicketResponse.model_validate(ticket))


@router.post("/{ticket_id}/activity/{activity_id}/promote", response_model=ActivityResponse)
async def promote(
    ticket_id: UUID,
    activity_id: UUID,
    auth: AuthContext = Depends(require_full_access),
    db: AsyncSession = Depends(get_db),
):
    """Make an internal entry visible to the reporter."""
    await get_ticket(db, ticket_id)
    entry = await promote_to_user_visible(db, ticket_id, activity_id, auth.actor())
    return activity_to_response(entry)


@router.get("/{ticket_id}/timeline")
async def timeline(
    ticket_id: UUID,
    format: str = Query("json", pattern="^(json|agent)$"),
    reporter_id: str | None = None,
    visibility: str | None = Query(None, pattern="^(internal|user_visible)$"),
    activity_type: list[str] = Query(default=[]),
    since: datetime | None = None,
    limit: int | None = Query(None, ge=1, le=1000),
    auth: AuthContext = Depends(authenticate),
    db: AsyncSession = Depends(get_db),
):
    """Ticket timeline. Reporters get their visible projection; ``format=agent`` returns plain text."""
    if auth.is_reporter:
        if format == "agent":
            raise ValidationError("The agent format is not available to reporters")
        entries = await get_ticket_timeline_for_user(db, ticket_id, reporter_id)
        return [activity_to_response(e) for e in entries]

    if format == "agent":
        return PlainTextResponse(await get_ticket_timeline_for_agent(db, ticket_id))

    await get_ticket(db, ticket_id)
    entries = await get_ticket_timeline(
        db,
        ticket_id,
        visibility=visibility,
        activity_types=activity_type,
        since=to_naive_utc(since),
        limit=limit,
    )
    return [activity_to_response(e) for e in entries]
