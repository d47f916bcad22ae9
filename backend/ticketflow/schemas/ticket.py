"""Ticket schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ticketflow.models.enums import AuthorType, TicketPriority, TicketSource, TicketType


class TicketCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(..., min_length=1)
    ticket_type: TicketType
    reporter_id: str = Field(..., min_length=1, max_length=255)
    reporter_name: Optional[str] = Field(None, max_length=255)
    reporter_email: Optional[str] = Field(None, max_length=255)
    project_id: Optional[str] = Field(None, max_length=100)
    source: Optional[TicketSource] = None
    priority: Optional[TicketPriority] = None
    tags: Optional[list[str]] = None
    route: Optional[str] = Field(None, max_length=500)
    environment: Optional[str] = Field(None, max_length=50)
    browser_info: Optional[str] = Field(None, max_length=500)
    os_info: Optional[str] = Field(None, max_length=200)
    parent_id: Optional[uuid.UUID] = None
    client_reference_id: Optional[str] = Field(None, max_length=255)  # idempotency key
    actor_type: Optional[AuthorType] = None
    actor_name: Optional[str] = Field(None, max_length=255)


class TicketUpdate(BaseModel):
    """Descriptive fields only; status, resolution and testing result change through actions."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = Field(None, min_length=1)
    ticket_type: Optional[TicketType] = None
    priority: Optional[TicketPriority] = None
    tags: Optional[list[str]] = None
    route: Optional[str] = None
    environment: Optional[str] = None
    browser_info: Optional[str] = None
    os_info: Optional[str] = None
    assignee: Optional[str] = None
    direction: Optional[str] = None
    work_priority: Optional[int] = Field(None, ge=0)
    needs_followup: Optional[bool] = None
    followup_notes: Optional[str] = None
    followup_after: Optional[datetime] = None
    parent_id: Optional[uuid.UUID] = None
    actor_type: Optional[AuthorType] = None
    actor_name: Optional[str] = Field(None, max_length=255)


class TicketResponse(BaseModel):
    id: uuid.UUID
    ticket_number: int
    project_id: str
    source: str
    ticket_type: str
    title: str
    description: str
    status: str
    resolution: Optional[str]
    priority: Optional[str]
    work_priority: Optional[int]
    testing_result: Optional[str]
    tags: Optional[list]
    route: Optional[str]
    environment: Optional[str]
    browser_info: Optional[str]
    os_info: Optional[str]
    reporter_id: str
    reporter_name: Optional[str]
    reporter_email: Optional[str]
    assignee: Optional[str]
    direction: Optional[str]
    ai_assessment: Optional[str]
    ai_solution_proposal: Optional[str]
    ai_suggested_priority: Optional[str]
    ai_complexity: Optional[str]
    ai_estimated_files: Optional[list]
    autonomy_score: Optional[float]
    needs_followup: bool
    followup_notes: Optional[str]
    followup_after: Optional[datetime]
    parent_id: Optional[uuid.UUID]
    client_reference_id: Optional[str]
    resolved_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    updated_by: Optional[str]

    model_config = {"from_attributes": True}


class TicketSubmitResponse(BaseModel):
    """Reduced view returned to reporters submitting through the portal."""

    id: uuid.UUID
    ticket_number: int
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class TicketListResponse(BaseModel):
    items: list[TicketResponse]
    total: int
    page: int
    limit: int
