"""Tests for pipeline counts, work queues and ticket stats."""

from datetime import timedelta

from conftest import ADMIN, ADMIN_AUTH
from ticketflow.database import utcnow
from ticketflow.schemas.ticket import TicketUpdate
from ticketflow.services.actions import dispatch_action
from ticketflow.services.pipeline import (
    get_follow_ups,
    get_pipeline_counts,
    get_rework_items,
    get_ticket_stats,
    get_triage_batch,
    get_work_queue,
)
from ticketflow.services.tickets import soft_delete_ticket, update_ticket

TRIAGE = {"action": "triage"}
APPROVE = {"action": "approve"}
RESOLVE = {"action": "resolve"}


async def _advance(db, ticket, *steps):
    for step in steps:
        ticket, _ = await dispatch_action(db, ticket.id, step, ADMIN_AUTH)
    return ticket


class TestPipelineCounts:
    async def test_counts_partition_tickets(self, db, make_ticket):
        await make_ticket()
        await _advance(db, await make_ticket(), TRIAGE)
        await _advance(db, await make_ticket(), TRIAGE, APPROVE)
        await _advance(db, await make_ticket(), TRIAGE, APPROVE, RESOLVE)
        await _advance(db, await make_ticket(), {"action": "reject", "resolution": "invalid", "reason": "spam"})

        counts = await get_pipeline_counts(db)
        assert counts == {
            "untriaged": 1,
            "yourDecision": 1,
            "agentWorking": 1,
            "testing": 1,
            "userReview": 0,
            "done": 1,
        }
        assert sum(counts.values()) == 5

    async def test_deleted_tickets_excluded(self, db, make_ticket):
        ticket = await make_ticket()
        await soft_delete_ticket(db, ticket.id, ADMIN)
        assert sum((await get_pipeline_counts(db)).values()) == 0

    async def test_scoped_by_project(self, db, make_ticket):
        await make_ticket(project_id="web")
        await make_ticket(project_id="docs")
        counts = await get_pipeline_counts(db, project_id="web")
        assert counts["untriaged"] == 1


class TestWorkQueue:
    async def test_ordered_by_work_priority(self, db, make_ticket):
        low = await _advance(db, await make_ticket(title="Low"), TRIAGE, {"action": "approve", "work_priority": 9})
        high = await _advance(db, await make_ticket(title="High"), TRIAGE, {"action": "approve", "work_priority": 1})
        await _advance(db, await make_ticket(title="Triaged only"), TRIAGE)

        queue = await get_work_queue(db)
        assert [t.id for t in queue] == [high.id, low.id]

    async def test_limit(self, db, make_ticket):
        for _ in range(3):
            await _advance(db, await make_ticket(), TRIAGE, APPROVE)
        assert len(await get_work_queue(db, limit=2)) == 2


class TestRework:
    async def test_failed_tests_need_rework(self, db, make_ticket):
        failed = await _advance(
            db, await make_ticket(), TRIAGE, APPROVE, RESOLVE, {"action": "test_result", "result": "fail"}
        )
        await _advance(db, await make_ticket(), TRIAGE, APPROVE, RESOLVE, {"action": "test_result", "result": "pass"})
        await _advance(db, await make_ticket(), TRIAGE, APPROVE, RESOLVE)

        assert [t.id for t in await get_rework_items(db)] == [failed.id]

    async def test_closed_ticket_is_not_rework(self, db, make_ticket):
        await _advance(
            db,
            await make_ticket(),
            TRIAGE,
            APPROVE,
            RESOLVE,
            {"action": "test_result", "result": "partial"},
            {"action": "status_change", "status": "closed"},
        )
        assert await get_rework_items(db) == []


class TestFollowUps:
    async def test_due_and_unscheduled_followups(self, db, make_ticket):
        due = await make_ticket(title="Due")
        unscheduled = await make_ticket(title="Unscheduled")
        later = await make_ticket(title="Later")
        await make_ticket(title="No follow-up")

        await update_ticket(
            db, due.id, TicketUpdate(needs_followup=True, followup_after=utcnow() - timedelta(hours=1)), ADMIN
        )
        await update_ticket(db, unscheduled.id, TicketUpdate(needs_followup=True), ADMIN)
        await update_ticket(
            db, later.id, TicketUpdate(needs_followup=True, followup_after=utcnow() + timedelta(days=1)), ADMIN
        )

        found = await get_follow_ups(db)
        assert {t.id for t in found} == {due.id, unscheduled.id}


class TestTriageBatch:
    async def test_oldest_new_tickets_first(self, db, make_ticket):
        created = [await make_ticket(title=f"T{i}") for i in range(5)]
        await _advance(db, created[0], TRIAGE)

        batch = await get_triage_batch(db)
        assert [t.id for t in batch] == [t.id for t in created[1:4]]

    async def test_explicit_batch_size(self, db, make_ticket):
        for i in range(3):
            await make_ticket(title=f"T{i}")
        assert len(await get_triage_batch(db, batch_size=1)) == 1


class TestStats:
    async def test_stats(self, db, make_ticket):
        await make_ticket(ticket_type="feature", priority="low")
        await _advance(db, await make_ticket(), TRIAGE)
        await _advance(
            db, await make_ticket(), TRIAGE, APPROVE, RESOLVE, {"action": "test_result", "result": "fail"}
        )
        await _advance(
            db,
            await make_ticket(),
            TRIAGE,
            APPROVE,
            RESOLVE,
            {"action": "status_change", "status": "user_review"},
            {"action": "status_change", "status": "resolved"},
        )

        stats = await get_ticket_stats(db)
        assert stats["total"] == 4
        assert stats["open"] == 3
        assert stats["by_status"] == {"new": 1, "triaged": 1, "in_review": 1, "resolved": 1}
        assert stats["by_type"] == {"feature": 1, "bug": 3}
        assert stats["by_priority"] == {"low": 1, "unset": 3}
        assert stats["needing_decision"] == 1
        assert stats["needing_rework"] == 1
        assert stats["followups_due"] == 0
        assert stats["avg_resolution_hours"] is not None
        assert stats["avg_resolution_hours"] >= 0

    async def test_empty(self, db):
        stats = await get_ticket_stats(db)
        assert stats["total"] == 0
        assert stats["avg_resolution_hours"] is None
