"""Activity action handlers and the dispatch table behind POST /tickets/{id}/activity.

Each handler mutates the ticket snapshot, appends exactly one activity row,
and leaves committing to ``dispatch_action`` so both land together.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.database import utcnow
from ticketflow.middleware.auth import AuthContext
from ticketflow.models.activity import TicketActivity
from ticketflow.models.enums import ActivityType, AuthorType, Resolution, TicketStatus, Visibility
from ticketflow.models.ticket import Ticket
from ticketflow.schemas.activity import (
    ActionRequest,
    ApproveAction,
    AssignAction,
    CommentAction,
    MessageAction,
    RejectAction,
    ResolveAction,
    StatusChangeAction,
    TestResultAction,
    TriageAction,
)
from ticketflow.services.activity_log import Actor, append_activity
from ticketflow.services.errors import AuthError, InvalidTransition, ValidationError
from ticketflow.services.state_machine import REJECT_RESOLUTIONS, allowed_next, validate_transition
from ticketflow.services.tickets import get_owned_ticket, get_ticket

logger = structlog.get_logger()

Handler = Callable[[AsyncSession, Ticket, Any, Actor], Awaitable[TicketActivity]]


@dataclass(frozen=True)
class ActionSpec:
    request_model: type[ActionRequest]
    handler: Handler
    reporter_allowed: bool = False


ACTIONS: dict[str, ActionSpec] = {}


def action(name: str, request_model: type[ActionRequest], reporter_allowed: bool = False):
    """Register a handler under an action name."""

    def decorator(fn: Handler) -> Handler:
        ACTIONS[name] = ActionSpec(request_model=request_model, handler=fn, reporter_allowed=reporter_allowed)
        return fn

    return decorator


def _move(ticket: Ticket, target: TicketStatus) -> str:
    """Validate and apply a status change. Returns the previous status."""
    validate_transition(ticket.status, target.value)
    previous = ticket.status
    ticket.status = target.value
    if target == TicketStatus.RESOLVED:
        ticket.resolution = Resolution.FIXED.value
        if ticket.resolved_at is None:
            ticket.resolved_at = utcnow()
    return previous


@action("comment", CommentAction)
async def add_comment(db: AsyncSession, ticket: Ticket, req: CommentAction, actor: Actor) -> TicketActivity:
    return await append_activity(db, ticket, ActivityType.COMMENT, actor, content=req.content)


@action("message", MessageAction, reporter_allowed=True)
async def send_message(db: AsyncSession, ticket: Ticket, req: MessageAction, actor: Actor) -> TicketActivity:
    # Agent drafts always wait for an admin; reporters speak directly
    if actor.type == AuthorType.USER:
        requires_approval = False
    else:
        requires_approval = req.requires_approval or actor.type == AuthorType.AGENT
    visibility = Visibility.INTERNAL if requires_approval else Visibility.USER_VISIBLE
    return await append_activity(
        db,
        ticket,
        ActivityType.MESSAGE,
        actor,
        content=req.content,
        visibility=visibility,
        requires_approval=requires_approval,
    )


@action("test_result", TestResultAction)
async def submit_test_result(db: AsyncSession, ticket: Ticket, req: TestResultAction, actor: Actor) -> TicketActivity:
    ticket.testing_result = req.result
    return await append_activity(
        db,
        ticket,
        ActivityType.TEST_RESULT,
        actor,
        content=req.details or f"Test result: {req.result}",
        payload={
            "result": req.result,
            "details": req.details,
            "testing_url": req.testing_url,
            "testing_instructions": req.testing_instructions,
        },
    )


@action("change_status", StatusChangeAction)
@action("status_change", StatusChangeAction)  # alias
async def change_status(db: AsyncSession, ticket: Ticket, req: StatusChangeAction, actor: Actor) -> TicketActivity:
    previous = _move(ticket, req.status)
    return await append_activity(
        db,
        ticket,
        ActivityType.STATUS_CHANGE,
        actor,
        content=req.note or f"Status changed from {previous} to {ticket.status}",
        payload={"from_status": previous, "to_status": ticket.status, "note": req.note},
        visibility=Visibility.USER_VISIBLE,
    )


async def _next_work_priority(db: AsyncSession) -> int:
    result = await db.execute(
        select(func.coalesce(func.max(Ticket.work_priority), 0)).where(
            Ticket.status == TicketStatus.APPROVED.value,
            Ticket.deleted_at.is_(None),
        )
    )
    return result.scalar_one() + 1


@action("approve", ApproveAction)
async def approve_ticket(db: AsyncSession, ticket: Ticket, req: ApproveAction, actor: Actor) -> TicketActivity:
    # Compute before the status change so this ticket is not counted
    work_priority = req.work_priority if req.work_priority is not None else await _next_work_priority(db)

    previous = _move(ticket, TicketStatus.APPROVED)
    if req.direction is not None:
        ticket.direction = req.direction
    ticket.work_priority = work_priority

    return await append_activity(
        db,
        ticket,
        ActivityType.DECISION,
        actor,
        content=req.direction or "Approved for work",
        payload={
            "decision": "approved",
            "direction": ticket.direction,
            "work_priority": work_priority,
            "from_status": previous,
            "to_status": ticket.status,
        },
    )


@action("reject", RejectAction)
async def reject_ticket(db: AsyncSession, ticket: Ticket, req: RejectAction, actor: Actor) -> TicketActivity:
    if req.resolution not in REJECT_RESOLUTIONS:
        allowed = ", ".join(sorted(r.value for r in REJECT_RESOLUTIONS))
        raise ValidationError(f"Rejection resolution must be one of: {allowed}")

    previous = _move(ticket, TicketStatus.CLOSED)
    ticket.resolution = req.resolution.value

    return await append_activity(
        db,
        ticket,
        ActivityType.RESOLUTION,
        actor,
        content=req.reason,
        payload={
            "resolution": req.resolution.value,
            "notes": req.reason,
            "from_status": previous,
            "to_status": ticket.status,
        },
        visibility=Visibility.USER_VISIBLE,
    )


@action("resolve", ResolveAction)
async def resolve_ticket(db: AsyncSession, ticket: Ticket, req: ResolveAction, actor: Actor) -> TicketActivity:
    previous = _move(ticket, TicketStatus.IN_REVIEW)
    ticket.testing_result = "pending"

    return await append_activity(
        db,
        ticket,
        ActivityType.TEST_RESULT,
        actor,
        content=req.resolution_notes or "Fix submitted for testing",
        payload={
            "result": "pending",
            "testing_instructions": req.testing_instructions,
            "testing_url": req.testing_url,
            "from_status": previous,
            "to_status": ticket.status,
        },
        visibility=Visibility.USER_VISIBLE,
    )


AI_FIELDS = (
    "ai_assessment",
    "ai_solution_proposal",
    "ai_suggested_priority",
    "ai_complexity",
    "ai_estimated_files",
    "autonomy_score",
)


@action("triage", TriageAction)
async def triage_ticket(db: AsyncSession, ticket: Ticket, req: TriageAction, actor: Actor) -> TicketActivity:
    if ticket.status != TicketStatus.NEW.value:
        raise InvalidTransition(ticket.status, TicketStatus.TRIAGED.value, allowed_next(ticket.status))
    previous = _move(ticket, TicketStatus.TRIAGED)

    ai_values = {name: getattr(req, name) for name in AI_FIELDS}
    for name, value in ai_values.items():
        if value is not None:
            setattr(ticket, name, value)
    if req.ai_suggested_priority in ("critical", "high", "medium", "low"):
        ticket.priority = req.ai_suggested_priority

    return await append_activity(
        db,
        ticket,
        ActivityType.DECISION,
        actor,
        content=req.ai_assessment or "Ticket triaged",
        payload={"decision": "triaged", "from_status": previous, "to_status": ticket.status, **ai_values},
    )


@action("assign", AssignAction)
async def assign_ticket(db: AsyncSession, ticket: Ticket, req: AssignAction, actor: Actor) -> TicketActivity:
    previous = ticket.assignee
    ticket.assignee = req.assignee
    return await append_activity(
        db,
        ticket,
        ActivityType.ASSIGNMENT,
        actor,
        content=f"Assigned to {req.assignee}" if req.assignee else "Unassigned",
        payload={"from_assignee": previous, "to_assignee": req.assignee},
    )


async def dispatch_action(
    db: AsyncSession,
    ticket_id: uuid.UUID,
    body: dict,
    auth: AuthContext,
) -> tuple[Ticket, TicketActivity]:
    """Validate, authorize and run one action in a single transaction."""
    name = body.get("action")
    if not name:
        raise ValidationError("'action' is required")
    spec = ACTIONS.get(name)
    if spec is None:
        raise ValidationError(f"Unknown action '{name}'. Allowed: {', '.join(sorted(ACTIONS))}")

    try:
        req = spec.request_model.model_validate(body)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid body for action '{name}'",
            errors=e.errors(include_url=False, include_context=False),
        )

    if auth.is_reporter:
        if not spec.reporter_allowed:
            raise AuthError(f"Reporter tokens cannot perform '{name}'", status_code=403)
        ticket = await get_owned_ticket(db, ticket_id, getattr(req, "reporter_id", None))
    else:
        ticket = await get_ticket(db, ticket_id)

    actor = auth.actor(
        actor_type=req.actor_type,
        actor_name=req.actor_name,
        reporter_id=getattr(req, "reporter_id", None),
        reporter_name=getattr(req, "reporter_name", None),
    )

    entry = await spec.handler(db, ticket, req, actor)
    await db.commit()

    logger.info(
        "action_applied",
        action=name,
        ticket_id=str(ticket.id),
        status=ticket.status,
        actor=actor.name,
        scope=auth.scope.value,
    )
    return ticket, entry
