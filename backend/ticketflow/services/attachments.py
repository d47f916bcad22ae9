"""Attachment blobs on local disk plus their metadata rows."""

import asyncio
import re
import uuid
from pathlib import Path

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.config import settings
from ticketflow.models.attachment import TicketAttachment
from ticketflow.models.enums import ActivityType, Visibility
from ticketflow.models.ticket import Ticket
from ticketflow.services.activity_log import Actor, append_activity
from ticketflow.services.errors import Conflict, ValidationError

logger = structlog.get_logger()

_EXTENSION_RE = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


class LocalAttachmentStore:
    """Opaque blob store keyed by ticket id: ``<root>/<ticket_id>/<key>``."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def path_for(self, ticket_id: uuid.UUID, key: str) -> Path:
        return self.root / str(ticket_id) / key

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "xb") as f:
            f.write(data)

    async def save(self, ticket_id: uuid.UUID, data: bytes, original_name: str) -> str:
        suffix = Path(original_name).suffix
        key = uuid.uuid4().hex + (suffix.lower() if _EXTENSION_RE.match(suffix) else "")
        try:
            await asyncio.to_thread(self._write, self.path_for(ticket_id, key), data)
        except FileExistsError:
            raise Conflict(f"Storage key {key} already exists")
        return key

    async def delete(self, ticket_id: uuid.UUID, key: str) -> None:
        await asyncio.to_thread(self.path_for(ticket_id, key).unlink, True)


def get_attachment_store() -> LocalAttachmentStore:
    return LocalAttachmentStore(settings.upload_dir)


async def upload_attachment(
    db: AsyncSession,
    store: LocalAttachmentStore,
    ticket: Ticket,
    original_name: str,
    mime_type: str | None,
    data: bytes,
    actor: Actor,
) -> TicketAttachment:
    """Store the blob, then record metadata and a system activity in one transaction."""
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > settings.max_upload_bytes:
        raise ValidationError(
            f"File too large: {len(data)} bytes (max {settings.max_upload_bytes})"
        )
    original_name = (original_name or "upload").strip()[:255] or "upload"

    key = await store.save(ticket.id, data, original_name)
    try:
        attachment = TicketAttachment(
            id=uuid.uuid4(),
            ticket_id=ticket.id,
            filename=key,
            original_name=original_name,
            mime_type=mime_type or "application/octet-stream",
            size_bytes=len(data),
            uploaded_by=actor.name,
        )
        db.add(attachment)
        await append_activity(
            db,
            ticket,
            ActivityType.SYSTEM,
            actor,
            content=f"Attachment uploaded: {original_name}",
            payload={
                "event": "attachment_uploaded",
                "attachment_id": attachment.id,
                "original_name": original_name,
            },
            visibility=Visibility.USER_VISIBLE,
        )
        await db.commit()
    except Exception:
        await store.delete(ticket.id, key)
        raise

    logger.info(
        "attachment_uploaded",
        ticket_id=str(ticket.id),
        attachment_id=str(attachment.id),
        size_bytes=attachment.size_bytes,
    )
    return attachment


async def list_attachments(db: AsyncSession, ticket_id: uuid.UUID) -> list[TicketAttachment]:
    result = await db.execute(
        select(TicketAttachment)
        .where(TicketAttachment.ticket_id == ticket_id)
        .order_by(TicketAttachment.created_at.asc())
    )
    return list(result.scalars().all())
