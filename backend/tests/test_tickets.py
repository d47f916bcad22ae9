"""Tests for the ticket store: creation, idempotency, updates, soft delete and listing."""

import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from conftest import ADMIN, count_activity
from ticketflow.models.activity import TicketActivity
from ticketflow.models.ticket import Ticket
from ticketflow.schemas.ticket import TicketCreate, TicketUpdate
from ticketflow.services import tickets as ticket_store
from ticketflow.services.errors import NotFound, ValidationError
from ticketflow.services.tickets import (
    TicketFilters,
    create_ticket,
    get_owned_ticket,
    get_ticket,
    get_ticket_by_number,
    list_tickets,
    soft_delete_ticket,
    update_ticket,
)


def _create_input(**overrides):
    fields = {
        "title": "Crash on save",
        "description": "The editor crashes when saving a large file",
        "ticket_type": "bug",
        "reporter_id": "reporter-1",
    }
    fields.update(overrides)
    return TicketCreate(**fields)


async def _ticket_count(db) -> int:
    result = await db.execute(select(func.count()).select_from(Ticket))
    return result.scalar_one()


class TestCreate:
    async def test_defaults(self, db):
        ticket, created = await create_ticket(db, _create_input(), ADMIN)
        assert created
        assert ticket.status == "new"
        assert ticket.project_id == "default"
        assert ticket.source == "api"
        assert ticket.updated_by == "alice"

    async def test_ticket_numbers_increase(self, db):
        first, _ = await create_ticket(db, _create_input(), ADMIN)
        second, _ = await create_ticket(db, _create_input(), ADMIN)
        assert second.ticket_number > first.ticket_number

    async def test_creation_is_logged(self, db, session_factory):
        ticket, _ = await create_ticket(db, _create_input(source="sdk"), ADMIN)
        result = await db.execute(select(TicketActivity).where(TicketActivity.ticket_id == ticket.id))
        entries = result.scalars().all()
        assert len(entries) == 1
        assert entries[0].activity_type == "system"
        assert entries[0].content == "Ticket created via sdk"
        assert entries[0].visibility == "user_visible"
        assert entries[0].payload == {"event": "created", "source": "sdk"}

    async def test_idempotent_create_returns_existing(self, db):
        first, created_first = await create_ticket(db, _create_input(client_reference_id="cli-123"), ADMIN)
        second, created_second = await create_ticket(
            db, _create_input(client_reference_id="cli-123", title="Different title"), ADMIN
        )
        assert created_first and not created_second
        assert second.id == first.id
        assert second.title == "Crash on save"
        assert await _ticket_count(db) == 1

    async def test_same_key_in_another_project_is_distinct(self, db):
        a, _ = await create_ticket(db, _create_input(client_reference_id="cli-1", project_id="web"), ADMIN)
        b, _ = await create_ticket(db, _create_input(client_reference_id="cli-1", project_id="mobile"), ADMIN)
        assert a.id != b.id

    async def test_tickets_without_key_never_collide(self, db):
        await create_ticket(db, _create_input(), ADMIN)
        await create_ticket(db, _create_input(), ADMIN)
        assert await _ticket_count(db) == 2

    async def test_race_loser_returns_winner(self, db, monkeypatch):
        winner, _ = await create_ticket(db, _create_input(client_reference_id="cli-race"), ADMIN)
        winner_id = winner.id

        # Simulate the pre-check running before the winner committed
        real_lookup = ticket_store._find_by_reference
        calls = []

        async def stale_then_real(session, project_id, ref):
            calls.append(ref)
            if len(calls) == 1:
                return None
            return await real_lookup(session, project_id, ref)

        monkeypatch.setattr(ticket_store, "_find_by_reference", stale_then_real)

        loser, created = await create_ticket(db, _create_input(client_reference_id="cli-race"), ADMIN)
        assert not created
        assert loser.id == winner_id
        assert len(calls) == 2
        assert await _ticket_count(db) == 1

    async def test_unknown_parent_rejected(self, db):
        with pytest.raises(ValidationError):
            await create_ticket(db, _create_input(parent_id=uuid.uuid4()), ADMIN)

    async def test_sub_ticket(self, db):
        parent, _ = await create_ticket(db, _create_input(), ADMIN)
        child, _ = await create_ticket(db, _create_input(parent_id=parent.id), ADMIN)
        assert child.parent_id == parent.id


class TestGet:
    async def test_by_number(self, db, make_ticket):
        ticket = await make_ticket()
        found = await get_ticket_by_number(db, ticket.ticket_number)
        assert found.id == ticket.id

    async def test_owner_check_masks_existence(self, db, make_ticket):
        ticket = await make_ticket(reporter_id="reporter-1")
        assert (await get_owned_ticket(db, ticket.id, "reporter-1")).id == ticket.id
        with pytest.raises(NotFound):
            await get_owned_ticket(db, ticket.id, "someone-else")
        with pytest.raises(NotFound):
            await get_owned_ticket(db, ticket.id, None)


class TestUpdate:
    async def test_changes_recorded_as_one_entry(self, db, session_factory, make_ticket):
        ticket = await make_ticket()
        updated = await update_ticket(
            db, ticket.id, TicketUpdate(priority="high", assignee="bob", title=ticket.title), ADMIN
        )
        assert updated.priority == "high"
        assert updated.assignee == "bob"

        result = await db.execute(
            select(TicketActivity).where(
                TicketActivity.ticket_id == ticket.id, TicketActivity.activity_type == "field_change"
            )
        )
        entry = result.scalar_one()
        fields = {c["field"]: (c.get("from_value"), c["to_value"]) for c in entry.payload["changes"]}
        assert fields == {"priority": (None, "high"), "assignee": (None, "bob")}
        assert entry.visibility == "internal"

    async def test_noop_update_appends_nothing(self, db, session_factory, make_ticket):
        ticket = await make_ticket()
        before = await count_activity(session_factory, ticket.id)
        await update_ticket(db, ticket.id, TicketUpdate(title=ticket.title), ADMIN)
        assert await count_activity(session_factory, ticket.id) == before

    async def test_cannot_null_required_field(self, db, make_ticket):
        ticket = await make_ticket()
        with pytest.raises(ValidationError):
            await update_ticket(db, ticket.id, TicketUpdate(title=None), ADMIN)

    async def test_followup_after_stored_as_naive_utc(self, db, make_ticket):
        ticket = await make_ticket()
        aware = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
        updated = await update_ticket(
            db, ticket.id, TicketUpdate(needs_followup=True, followup_after=aware), ADMIN
        )
        assert updated.followup_after == datetime(2025, 6, 1, 12, 0)

    async def test_cannot_parent_itself(self, db, make_ticket):
        ticket = await make_ticket()
        with pytest.raises(ValidationError):
            await update_ticket(db, ticket.id, TicketUpdate(parent_id=ticket.id), ADMIN)

    async def test_missing_ticket(self, db):
        with pytest.raises(NotFound):
            await update_ticket(db, uuid.uuid4(), TicketUpdate(priority="low"), ADMIN)


class TestSoftDelete:
    async def test_hidden_but_history_kept(self, db, session_factory, make_ticket):
        ticket = await make_ticket()
        assert await soft_delete_ticket(db, ticket.id, ADMIN)

        with pytest.raises(NotFound):
            await get_ticket(db, ticket.id)
        kept = await get_ticket(db, ticket.id, include_deleted=True)
        assert kept.deleted_at is not None
        # creation + deletion entries
        assert await count_activity(session_factory, ticket.id) == 2

        items, total = await list_tickets(db, TicketFilters())
        assert total == 0 and items == []

    async def test_second_delete_returns_false(self, db, make_ticket):
        ticket = await make_ticket()
        assert await soft_delete_ticket(db, ticket.id, ADMIN)
        assert not await soft_delete_ticket(db, ticket.id, ADMIN)


class TestList:
    async def test_filters(self, db, make_ticket):
        await make_ticket(title="Dark mode", ticket_type="feature", reporter_id="r2", project_id="web")
        await make_ticket(title="Crash on save", ticket_type="bug", priority="high", project_id="web")
        await make_ticket(title="Typo in footer", ticket_type="bug", priority="low", project_id="docs")

        items, total = await list_tickets(db, TicketFilters(project_id="web"))
        assert total == 2

        items, total = await list_tickets(db, TicketFilters(ticket_type=["bug"], priority=["high", "low"]))
        assert total == 2

        items, total = await list_tickets(db, TicketFilters(reporter_id="r2"))
        assert [t.title for t in items] == ["Dark mode"]

        items, total = await list_tickets(db, TicketFilters(search="CRASH"))
        assert [t.title for t in items] == ["Crash on save"]

    async def test_search_treats_wildcards_literally(self, db, make_ticket):
        await make_ticket(title="100% CPU usage")
        await make_ticket(title="Slow page")
        items, _ = await list_tickets(db, TicketFilters(search="%"))
        assert [t.title for t in items] == ["100% CPU usage"]

    async def test_pagination_and_sort(self, db, make_ticket):
        created = [await make_ticket(title=f"Ticket {i}") for i in range(5)]

        page1, total = await list_tickets(db, TicketFilters(), sort="ticket_number", order="asc", page=1, limit=2)
        page3, _ = await list_tickets(db, TicketFilters(), sort="ticket_number", order="asc", page=3, limit=2)
        assert total == 5
        assert [t.id for t in page1] == [created[0].id, created[1].id]
        assert [t.id for t in page3] == [created[4].id]

    async def test_work_priority_sort_puts_nulls_last(self, db, make_ticket):
        a = await make_ticket(title="A")
        b = await make_ticket(title="B")
        c = await make_ticket(title="C")
        await update_ticket(db, a.id, TicketUpdate(work_priority=5), ADMIN)
        await update_ticket(db, c.id, TicketUpdate(work_priority=1), ADMIN)

        items, _ = await list_tickets(db, TicketFilters(), sort="work_priority", order="asc")
        assert [t.id for t in items] == [c.id, a.id, b.id]

    async def test_bad_sort_rejected(self, db):
        with pytest.raises(ValidationError):
            await list_tickets(db, TicketFilters(), sort="title")
