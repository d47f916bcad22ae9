"""Append-only ticket activity log model."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ticketflow.database import Base, utcnow


class TicketActivity(Base):
    """One immutable event in a ticket's history.

    Only promote may change an existing row, and only ``visibility``,
    ``approved_by`` and ``approved_at``.
    """

    __tablename__ = "ticket_activity"
    __table_args__ = (
        Index("idx_activity_ticket_created", "ticket_id", "created_at"),
        Index("idx_activity_ticket_type", "ticket_id", "activity_type"),
        Index("idx_activity_ticket_visibility", "ticket_id", "visibility", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )

    activity_type: Mapped[str] = mapped_column(String(30), nullable=False)
    author_type: Mapped[str] = mapped_column(String(20), nullable=False)  # user, admin, agent, system
    author_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    payload: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    visibility: Mapped[str] = mapped_column(String(20), nullable=False, default="internal")
    requires_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
