"""Tests for timeline projections backed by the database."""

import uuid
from datetime import datetime, timedelta

import pytest

from conftest import ADMIN, ADMIN_AUTH, API_AUTH
from ticketflow.database import utcnow
from ticketflow.services.actions import dispatch_action
from ticketflow.services.activity_log import promote_to_user_visible
from ticketflow.services.errors import NotFound
from ticketflow.services.timeline import (
    get_ticket_timeline,
    get_ticket_timeline_for_agent,
    get_ticket_timeline_for_user,
)


async def _act(db, ticket, auth=ADMIN_AUTH, **body):
    _, entry = await dispatch_action(db, ticket.id, body, auth)
    return entry


@pytest.fixture
async def busy_ticket(db, make_ticket):
    """A ticket with a mix of internal, visible and draft entries."""
    ticket = await make_ticket(reporter_id="reporter-1", reporter_name="Dana")
    await _act(db, ticket, action="comment", content="Internal note")
    await _act(db, ticket, action="message", content="Thanks, looking into it")
    await _act(db, ticket, auth=API_AUTH, action="message", content="Agent draft", actor_type="agent", actor_name="bot")
    await _act(db, ticket, action="triage", ai_assessment="Handler unbound")
    return ticket


class TestFullTimeline:
    async def test_returns_everything(self, db, busy_ticket):
        entries = await get_ticket_timeline(db, busy_ticket.id)
        assert len(entries) == 5
        assert entries[0].activity_type == "system"

    async def test_oldest_first(self, db, busy_ticket):
        entries = await get_ticket_timeline(db, busy_ticket.id)
        stamps = [e.created_at for e in entries]
        assert stamps == sorted(stamps)

    async def test_filter_by_type(self, db, busy_ticket):
        entries = await get_ticket_timeline(db, busy_ticket.id, activity_types=["message"])
        assert {e.content for e in entries} == {"Thanks, looking into it", "Agent draft"}

    async def test_filter_by_visibility(self, db, busy_ticket):
        entries = await get_ticket_timeline(db, busy_ticket.id, visibility="internal")
        assert {e.activity_type for e in entries} == {"comment", "message", "decision"}

    async def test_since_and_limit(self, db, busy_ticket):
        future = utcnow() + timedelta(hours=1)
        assert await get_ticket_timeline(db, busy_ticket.id, since=future) == []
        assert len(await get_ticket_timeline(db, busy_ticket.id, limit=2)) == 2

    async def test_since_is_exclusive(self, db, busy_ticket):
        entries = await get_ticket_timeline(db, busy_ticket.id)
        assert await get_ticket_timeline(db, busy_ticket.id, since=entries[-1].created_at) == []
        newer = await get_ticket_timeline(db, busy_ticket.id, since=entries[0].created_at)
        assert [e.id for e in newer] == [e.id for e in entries[1:]]

    async def test_same_clock_reading_keeps_append_order(self, db, make_ticket, monkeypatch):
        frozen = datetime(2025, 1, 1, 12, 0, 0)
        monkeypatch.setattr("ticketflow.services.activity_log.utcnow", lambda: frozen)
        ticket = await make_ticket()
        for text in ("first", "second", "third", "fourth"):
            await _act(db, ticket, action="comment", content=text)

        entries = await get_ticket_timeline(db, ticket.id, activity_types=["comment"])
        assert [e.content for e in entries] == ["first", "second", "third", "fourth"]
        stamps = [e.created_at for e in entries]
        assert all(a < b for a, b in zip(stamps, stamps[1:]))

    async def test_unknown_ticket_is_empty(self, db):
        assert await get_ticket_timeline(db, uuid.uuid4()) == []


class TestUserTimeline:
    async def test_only_visible_approved_entries(self, db, busy_ticket):
        entries = await get_ticket_timeline_for_user(db, busy_ticket.id, "reporter-1")
        assert {e.content for e in entries} == {"Ticket created via api", "Thanks, looking into it"}
        for entry in entries:
            assert entry.visibility == "user_visible"

    async def test_promoted_draft_becomes_visible(self, db, busy_ticket):
        drafts = [
            e
            for e in await get_ticket_timeline(db, busy_ticket.id, activity_types=["message"])
            if e.requires_approval
        ]
        await promote_to_user_visible(db, busy_ticket.id, drafts[0].id, ADMIN)

        entries = await get_ticket_timeline_for_user(db, busy_ticket.id, "reporter-1")
        assert "Agent draft" in {e.content for e in entries}

    async def test_non_owner_gets_not_found(self, db, busy_ticket):
        with pytest.raises(NotFound):
            await get_ticket_timeline_for_user(db, busy_ticket.id, "reporter-2")

    async def test_missing_reporter_id_gets_not_found(self, db, busy_ticket):
        with pytest.raises(NotFound):
            await get_ticket_timeline_for_user(db, busy_ticket.id, None)


class TestAgentTimeline:
    async def test_plain_text(self, db, busy_ticket):
        text = await get_ticket_timeline_for_agent(db, busy_ticket.id)
        lines = text.split("\n")
        assert lines[0] == f'Ticket T-{busy_ticket.ticket_number}: "Login button does nothing"'
        assert lines[1].startswith("Status: triaged | Resolution: none")
        assert lines[2] == "Reporter: Dana | Assigned: unassigned"
        assert "Timeline:" in lines
        assert any("SYSTEM: Ticket created via api" in line for line in lines)
        assert any("AGENT (bot): Agent draft [draft, awaiting approval]" in line for line in lines)
        assert any("DECISION (admin): triaged - Handler unbound" in line for line in lines)

    async def test_missing_ticket(self, db):
        with pytest.raises(NotFound):
            await get_ticket_timeline_for_agent(db, uuid.uuid4())
