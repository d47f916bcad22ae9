"""Initial schema: tickets, activity log, attachments, API keys.

Revision ID: 001
Revises: None
Create Date: 2025-01-01
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Ticket number counter
    op.create_table(
        "ticket_sequence",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )

    # Tickets
    op.create_table(
        "tickets",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("ticket_number", sa.Integer, unique=True, nullable=False),
        sa.Column("project_id", sa.String(100), nullable=False, server_default="default"),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("ticket_type", sa.String(20), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="new"),
        sa.Column("resolution", sa.String(30), nullable=True),
        sa.Column("priority", sa.String(20), nullable=True),
        sa.Column("work_priority", sa.Integer, nullable=True),
        sa.Column("testing_result", sa.String(20), nullable=True),
        sa.Column("tags", sa.JSON, nullable=True),
        sa.Column("route", sa.String(500), nullable=True),
        sa.Column("environment", sa.String(50), nullable=True),
        sa.Column("browser_info", sa.String(500), nullable=True),
        sa.Column("os_info", sa.String(200), nullable=True),
        sa.Column("reporter_id", sa.String(255), nullable=False),
        sa.Column("reporter_name", sa.String(255), nullable=True),
        sa.Column("reporter_email", sa.String(255), nullable=True),
        sa.Column("assignee", sa.String(255), nullable=True),
        sa.Column("direction", sa.Text, nullable=True),
        sa.Column("ai_assessment", sa.Text, nullable=True),
        sa.Column("ai_solution_proposal", sa.Text, nullable=True),
        sa.Column("ai_suggested_priority", sa.String(20), nullable=True),
        sa.Column("ai_complexity", sa.String(20), nullable=True),
        sa.Column("ai_estimated_files", sa.JSON, nullable=True),
        sa.Column("autonomy_score", sa.Float, nullable=True),
        sa.Column("needs_followup", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("followup_notes", sa.Text, nullable=True),
        sa.Column("followup_after", sa.DateTime, nullable=True),
        sa.Column("parent_id", sa.Uuid, sa.ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True),
        sa.Column("client_reference_id", sa.String(255), nullable=True),
        sa.Column("resolved_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_by", sa.String(255), nullable=True),
        sa.Column("deleted_at", sa.DateTime, nullable=True),
    )
    op.create_index(
        "idx_tickets_idempotent",
        "tickets",
        ["project_id", "client_reference_id"],
        unique=True,
        postgresql_where=sa.text("client_reference_id IS NOT NULL"),
        sqlite_where=sa.text("client_reference_id IS NOT NULL"),
    )
    op.create_index("idx_tickets_project_status", "tickets", ["project_id", "status"])
    op.create_index("idx_tickets_reporter", "tickets", ["reporter_id"])

    # Activity log
    op.create_table(
        "ticket_activity",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("ticket_id", sa.Uuid, sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("activity_type", sa.String(30), nullable=False),
        sa.Column("author_type", sa.String(20), nullable=False),
        sa.Column("author_name", sa.String(255), nullable=True),
        sa.Column("content", sa.Text, nullable=True),
        sa.Column("metadata", sa.JSON, nullable=True),
        sa.Column("visibility", sa.String(20), nullable=False, server_default="internal"),
        sa.Column("requires_approval", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("approved_by", sa.String(255), nullable=True),
        sa.Column("approved_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_activity_ticket_created", "ticket_activity", ["ticket_id", "created_at"])
    op.create_index("idx_activity_ticket_type", "ticket_activity", ["ticket_id", "activity_type"])
    op.create_index(
        "idx_activity_ticket_visibility", "ticket_activity", ["ticket_id", "visibility", "created_at"]
    )

    # Attachments
    op.create_table(
        "ticket_attachments",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("ticket_id", sa.Uuid, sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("original_name", sa.String(255), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("size_bytes", sa.Integer, nullable=False),
        sa.Column("uploaded_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_attachments_ticket", "ticket_attachments", ["ticket_id"])

    # API keys
    op.create_table(
        "api_keys",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("key_hash", sa.String(64), unique=True, nullable=False),
        sa.Column("key_prefix", sa.String(12), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("last_used_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("api_keys")
    op.drop_table("ticket_attachments")
    op.drop_table("ticket_activity")
    op.drop_table("tickets")
    op.drop_table("ticket_sequence")
