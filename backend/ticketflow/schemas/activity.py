"""Activity payload and action request schemas.

Each activity type has its own payload model; ``build_payload`` validates a
payload against the model for its type before it is stored as metadata.
"""

import uuid
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ticketflow.models.enums import ActivityType, AuthorType, Resolution, TicketStatus


# --- Metadata payloads, keyed by activity type ---


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CommentPayload(_Payload):
    pass


class MessagePayload(_Payload):
    pass


class StatusChangePayload(_Payload):
    from_status: TicketStatus
    to_status: TicketStatus
    note: Optional[str] = None


class FieldChange(_Payload):
    field: str
    from_value: Optional[Any] = None
    to_value: Optional[Any] = None


class FieldChangePayload(_Payload):
    changes: list[FieldChange] = Field(..., min_length=1)


class DecisionPayload(_Payload):
    decision: Literal["triaged", "approved"]
    from_status: TicketStatus
    to_status: TicketStatus
    direction: Optional[str] = None
    work_priority: Optional[int] = None
    ai_assessment: Optional[str] = None
    ai_solution_proposal: Optional[str] = None
    ai_suggested_priority: Optional[str] = None
    ai_complexity: Optional[str] = None
    ai_estimated_files: Optional[list[str]] = None
    autonomy_score: Optional[float] = None


class TestResultPayload(_Payload):
    result: Literal["pending", "pass", "fail", "partial"]
    details: Optional[str] = None
    testing_instructions: Optional[str] = None
    testing_url: Optional[str] = None
    from_status: Optional[TicketStatus] = None
    to_status: Optional[TicketStatus] = None


class AssignmentPayload(_Payload):
    from_assignee: Optional[str] = None
    to_assignee: Optional[str] = None


class ResolutionPayload(_Payload):
    resolution: Resolution
    notes: Optional[str] = None
    from_status: TicketStatus
    to_status: TicketStatus


class SystemPayload(_Payload):
    event: Literal["created", "deleted", "attachment_uploaded"]
    source: Optional[str] = None
    attachment_id: Optional[uuid.UUID] = None
    original_name: Optional[str] = None


PAYLOAD_MODELS: dict[ActivityType, type[_Payload]] = {
    ActivityType.COMMENT: CommentPayload,
    ActivityType.MESSAGE: MessagePayload,
    ActivityType.STATUS_CHANGE: StatusChangePayload,
    ActivityType.FIELD_CHANGE: FieldChangePayload,
    ActivityType.DECISION: DecisionPayload,
    ActivityType.TEST_RESULT: TestResultPayload,
    ActivityType.ASSIGNMENT: AssignmentPayload,
    ActivityType.RESOLUTION: ResolutionPayload,
    ActivityType.SYSTEM: SystemPayload,
}


def build_payload(activity_type: ActivityType, **fields) -> dict | None:
    """Validate ``fields`` against the payload model for ``activity_type``.

    Returns the JSON-ready dict, or None for an empty payload.
    Raises pydantic.ValidationError on a malformed payload.
    """
    model = PAYLOAD_MODELS[ActivityType(activity_type)]
    data = model(**fields).model_dump(mode="json", exclude_none=True)
    return data or None


# --- Action requests (POST /tickets/{id}/activity) ---


class ActionRequest(BaseModel):
    """Fields common to every action body."""

    model_config = ConfigDict(extra="ignore")

    action: str
    actor_type: Optional[AuthorType] = None
    actor_name: Optional[str] = Field(None, max_length=255)


class CommentAction(ActionRequest):
    content: str = Field(..., min_length=1)


class MessageAction(ActionRequest):
    content: str = Field(..., min_length=1)
    requires_approval: bool = False
    reporter_id: Optional[str] = None
    reporter_name: Optional[str] = None


class TestResultAction(ActionRequest):
    result: Literal["pass", "fail", "partial"]
    details: Optional[str] = Field(None, validation_alias=AliasChoices("details", "content"))
    testing_url: Optional[str] = None
    testing_instructions: Optional[str] = None


class StatusChangeAction(ActionRequest):
    status: TicketStatus
    note: Optional[str] = Field(None, validation_alias=AliasChoices("note", "content"))


class ApproveAction(ActionRequest):
    direction: Optional[str] = None
    work_priority: Optional[int] = Field(None, ge=0)


class RejectAction(ActionRequest):
    resolution: Resolution
    reason: str = Field(..., min_length=1)


class ResolveAction(ActionRequest):
    resolution_notes: Optional[str] = None
    testing_instructions: Optional[str] = None
    testing_url: Optional[str] = None


class TriageAction(ActionRequest):
    ai_assessment: Optional[str] = None
    ai_solution_proposal: Optional[str] = None
    ai_suggested_priority: Optional[str] = None
    ai_complexity: Optional[str] = None
    ai_estimated_files: Optional[list[str]] = None
    autonomy_score: Optional[float] = None


class AssignAction(ActionRequest):
    assignee: Optional[str] = Field(None, max_length=255)


# --- Responses ---


class ActivityResponse(BaseModel):
    id: uuid.UUID
    ticket_id: uuid.UUID
    activity_type: str
    author_type: str
    author_name: Optional[str]
    content: Optional[str]
    metadata: Optional[dict]
    visibility: str
    requires_approval: bool
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    created_at: datetime
