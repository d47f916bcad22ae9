"""Ticket snapshot model."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from ticketflow.database import Base, utcnow


class TicketSequence(Base):
    """Counter table; each inserted id becomes a ticket number."""

    __tablename__ = "ticket_sequence"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Ticket(Base):
    __tablename__ = "tickets"
    __table_args__ = (
        Index(
            "idx_tickets_idempotent",
            "project_id",
            "client_reference_id",
            unique=True,
            postgresql_where=text("client_reference_id IS NOT NULL"),
            sqlite_where=text("client_reference_id IS NOT NULL"),
        ),
        Index("idx_tickets_project_status", "project_id", "status"),
        Index("idx_tickets_reporter", "reporter_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_number: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)

    # Classification
    project_id: Mapped[str] = mapped_column(String(100), nullable=False, default="default")
    source: Mapped[str] = mapped_column(String(20), nullable=False)  # sdk, portal, mcp, api, admin
    ticket_type: Mapped[str] = mapped_column(String(20), nullable=False)  # bug, feature, suggestion, task, enhancement
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Workflow
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="new")
    resolution: Mapped[str | None] = mapped_column(String(30), nullable=True)
    priority: Mapped[str | None] = mapped_column(String(20), nullable=True)  # critical, high, medium, low
    work_priority: Mapped[int | None] = mapped_column(Integer, nullable=True)  # lower = more urgent
    testing_result: Mapped[str | None] = mapped_column(String(20), nullable=True)  # pending, pass, fail, partial

    # Context
    tags: Mapped[list | None] = mapped_column(JSON, nullable=True)
    route: Mapped[str | None] = mapped_column(String(500), nullable=True)
    environment: Mapped[str | None] = mapped_column(String(50), nullable=True)
    browser_info: Mapped[str | None] = mapped_column(String(500), nullable=True)
    os_info: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # Reporter
    reporter_id: Mapped[str] = mapped_column(String(255), nullable=False)
    reporter_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reporter_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Assignment
    assignee: Mapped[str | None] = mapped_column(String(255), nullable=True)
    direction: Mapped[str | None] = mapped_column(Text, nullable=True)

    # AI triage (opaque, supplied by caller)
    ai_assessment: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_solution_proposal: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_suggested_priority: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ai_complexity: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ai_estimated_files: Mapped[list | None] = mapped_column(JSON, nullable=True)
    autonomy_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Follow-up
    needs_followup: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    followup_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    followup_after: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Weak parent reference; never used for lifecycle decisions
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True
    )

    client_reference_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Audit
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

