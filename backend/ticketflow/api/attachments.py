"""Ticket attachment upload and listing."""

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.api.health import ACTIVITY_APPENDED
from ticketflow.config import settings
from ticketflow.database import get_db
from ticketflow.middleware.auth import AuthContext, authenticate
from ticketflow.models.enums import ActivityType
from ticketflow.schemas.common import AttachmentResponse
from ticketflow.services.attachments import (
    LocalAttachmentStore,
    get_attachment_store,
    list_attachments,
    upload_attachment,
)
from ticketflow.services.errors import ValidationError
from ticketflow.services.tickets import get_owned_ticket, get_ticket

router = APIRouter(prefix="/tickets", tags=["attachments"])


@router.post("/{ticket_id}/attachments", response_model=AttachmentResponse, status_code=201)
async def upload(
    ticket_id: UUID,
    file: UploadFile = File(...),
    reporter_id: str | None = Form(None),
    reporter_name: str | None = Form(None),
    auth: AuthContext = Depends(authenticate),
    store: LocalAttachmentStore = Depends(get_attachment_store),
    db: AsyncSession = Depends(get_db),
):
    """Upload a file (multipart field ``file``)."""
    if auth.is_reporter:
        ticket = await get_owned_ticket(db, ticket_id, reporter_id)
    else:
        ticket = await get_ticket(db, ticket_id)

    # One byte past the limit is enough to detect an oversized file
    data = await file.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise ValidationError(f"File too large (max {settings.max_upload_bytes} bytes)")

    attachment = await upload_attachment(
        db,
        store,
        ticket,
        original_name=file.filename or "upload",
        mime_type=file.content_type,
        data=data,
        actor=auth.actor(reporter_id=reporter_id, reporter_name=reporter_name),
    )
    ACTIVITY_APPENDED.labels(activity_type=ActivityType.SYSTEM.value).inc()
    return AttachmentResponse.model_validate(attachment)


@router.get("/{ticket_id}/attachments", response_model=list[AttachmentResponse])
async def list_for_ticket(
    ticket_id: UUID,
    reporter_id: str | None = None,
    auth: AuthContext = Depends(authenticate),
    db: AsyncSession = Depends(get_db),
):
    if auth.is_reporter:
        await get_owned_ticket(db, ticket_id, reporter_id)
    else:
        await get_ticket(db, ticket_id)
    attachments = await list_attachments(db, ticket_id)
    return [AttachmentResponse.model_validate(a) for a in attachments]
