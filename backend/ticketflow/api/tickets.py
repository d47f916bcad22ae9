"""Ticket CRUD, queue and stats endpoints."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.api.health import TICKETS_CREATED
from ticketflow.database import get_db
from ticketflow.middleware.auth import AuthContext, authenticate, require_full_access, require_reporter
from ticketflow.models.enums import TicketSource
from ticketflow.schemas.common import StatsResponse, TicketStats
from ticketflow.schemas.ticket import (
    TicketCreate,
    TicketListResponse,
    TicketResponse,
    TicketSubmitResponse,
    TicketUpdate,
)
from ticketflow.services import pipeline
from ticketflow.services.errors import NotFound, ValidationError
from ticketflow.services.tickets import (
    TicketFilters,
    create_ticket,
    get_owned_ticket,
    get_ticket,
    get_ticket_by_number,
    list_tickets as list_ticket_rows,
    soft_delete_ticket,
    update_ticket,
)

logger = structlog.get_logger()
router = APIRouter(prefix="/tickets", tags=["tickets"])


async def _create(db: AsyncSession, data: TicketCreate, auth: AuthContext, response: Response):
    actor = auth.actor(data.actor_type, data.actor_name, data.reporter_id, data.reporter_name)
    default_source = TicketSource.PORTAL if auth.is_reporter else TicketSource.API
    ticket, created = await create_ticket(db, data, actor, default_source=default_source)
    if created:
        TICKETS_CREATED.labels(source=ticket.source).inc()
    else:
        response.status_code = 200
    return ticket


@router.post("", response_model=TicketResponse, status_code=201)
async def create(
    data: TicketCreate,
    response: Response,
    auth: AuthContext = Depends(authenticate),
    db: AsyncSession = Depends(get_db),
):
    """Create a ticket. A repeated client_reference_id returns the existing ticket with 200."""
    ticket = await _create(db, data, auth, response)
    return TicketResponse.model_validate(ticket)


@router.post("/submit", response_model=TicketSubmitResponse, status_code=201)
async def submit(
    data: TicketCreate,
    response: Response,
    auth: AuthContext = Depends(require_reporter),
    db: AsyncSession = Depends(get_db),
):
    """Reporter-token submission returning only what the reporter needs to track the ticket."""
    if data.source is None:
        data = data.model_copy(update={"source": TicketSource.PORTAL})
    ticket = await _create(db, data, auth, response)
    return TicketSubmitResponse.model_validate(ticket)


@router.get("", response_model=TicketListResponse)
async def list_tickets(
    project_id: str | None = None,
    status: list[str] = Query(default=[]),
    ticket_type: list[str] = Query(default=[]),
    priority: list[str] = Query(default=[]),
    assignee: str | None = None,
    reporter_id: str | None = None,
    needs_followup: bool | None = None,
    search: str | None = None,
    sort: str = "created_at",
    order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    auth: AuthContext = Depends(authenticate),
    db: AsyncSession = Depends(get_db),
):
    """List tickets. Reporters must pass reporter_id and only see their own."""
    if auth.is_reporter and not reporter_id:
        raise ValidationError("reporter_id is required for reporter access")

    filters = TicketFilters(
        project_id=project_id,
        status=status,
        ticket_type=ticket_type,
        priority=priority,
        assignee=assignee,
        reporter_id=reporter_id,
        needs_followup=needs_followup,
        search=search,
    )
    items, total = await list_ticket_rows(db, filters, sort=sort, order=order, page=page, limit=limit)
    return TicketListResponse(
        items=[TicketResponse.model_validate(t) for t in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/work-queue", response_model=list[TicketResponse])
async def work_queue(
    project_id: str | None = None,
    limit: int | None = Query(None, ge=1, le=100),
    auth: AuthContext = Depends(require_full_access),
    db: AsyncSession = Depends(get_db),
):
    """Approved tickets ordered by work priority."""
    tickets = await pipeline.get_work_queue(db, project_id, limit=limit)
    return [TicketResponse.model_validate(t) for t in tickets]


@router.get("/rework", response_model=list[TicketResponse])
async def rework(
    project_id: str | None = None,
    auth: AuthContext = Depends(require_full_access),
    db: AsyncSession = Depends(get_db),
):
    """Tickets whose latest test failed or partially passed."""
    tickets = await pipeline.get_rework_items(db, project_id)
    return [TicketResponse.model_validate(t) for t in tickets]


@router.get("/followups", response_model=list[TicketResponse])
async def followups(
    project_id: str | None = None,
    auth: AuthContext = Depends(require_full_access),
    db: AsyncSession = Depends(get_db),
):
    tickets = await pipeline.get_follow_ups(db, project_id)
    return [TicketResponse.model_validate(t) for t in tickets]


@router.get("/triage-batch", response_model=list[TicketResponse])
async def triage_batch(
    project_id: str | None = None,
    batch_size: int | None = Query(None, ge=1, le=50),
    auth: AuthContext = Depends(require_full_access),
    db: AsyncSession = Depends(get_db),
):
    """Oldest untriaged tickets."""
    tickets = await pipeline.get_triage_batch(db, project_id, batch_size=batch_size)
    return [TicketResponse.model_validate(t) for t in tickets]


@router.get("/stats", response_model=StatsResponse)
async def stats(
    project_id: str | None = None,
    auth: AuthContext = Depends(require_full_access),
    db: AsyncSession = Depends(get_db),
):
    """Ticket stats and pipeline stage counts."""
    return StatsResponse(
        stats=TicketStats(**await pipeline.get_ticket_stats(db, project_id)),
        pipeline=await pipeline.get_pipeline_counts(db, project_id),
    )


@router.get("/number/{ticket_number}", response_model=TicketResponse)
async def get_by_number(
    ticket_number: int,
    auth: AuthContext = Depends(require_full_access),
    db: AsyncSession = Depends(get_db),
):
    ticket = await get_ticket_by_number(db, ticket_number)
    return TicketResponse.model_validate(ticket)


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_one(
    ticket_id: UUID,
    reporter_id: str | None = None,
    auth: AuthContext = Depends(authenticate),
    db: AsyncSession = Depends(get_db),
):
    """Get a single ticket. Reporters only see tickets they own."""
    if auth.is_reporter:
        ticket = await get_owned_ticket(db, ticket_id, reporter_id)
    else:
        ticket = await get_ticket(db, ticket_id)
    return TicketResponse.model_validate(ticket)


@router.patch("/{ticket_id}", response_model=TicketResponse)
async def update(
    ticket_id: UUID,
    data: TicketUpdate,
    auth: AuthContext = Depends(require_full_access),
    db: AsyncSession = Depends(get_db),
):
    """Update descriptive fields. Workflow fields change through activity actions."""
    ticket = await update_ticket(db, ticket_id, data, auth.actor(data.actor_type, data.actor_name))
    return TicketResponse.model_validate(ticket)


@router.delete("/{ticket_id}", status_code=204)
async def delete(
    ticket_id: UUID,
    auth: AuthContext = Depends(require_full_access),
    db: AsyncSession = Depends(get_db),
):
    """Soft-delete a ticket. Its activity history is kept."""
    if not await soft_delete_ticket(db, ticket_id, auth.actor()):
        raise NotFound("Ticket not found")
