"""Common response schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ticketflow.schemas.activity import ActivityResponse
from ticketflow.schemas.ticket import TicketResponse


class ActionResponse(BaseModel):
    activity: ActivityResponse
    ticket: TicketResponse


class AttachmentResponse(BaseModel):
    id: uuid.UUID
    ticket_id: uuid.UUID
    filename: str
    original_name: str
    mime_type: str
    size_bytes: int
    uploaded_by: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class TicketStats(BaseModel):
    total: int
    open: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    by_priority: dict[str, int]
    needing_decision: int
    needing_rework: int
    followups_due: int
    avg_resolution_hours: Optional[float]


class StatsResponse(BaseModel):
    stats: TicketStats
    pipeline: dict[str, int]


class HealthResponse(BaseModel):
    status: str
    version: str = "1.0.0"
    db: str
