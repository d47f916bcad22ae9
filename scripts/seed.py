#!/usr/bin/env python3
"""Seed the database with a development API key and a few demo tickets."""

import asyncio
import os
import secrets
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from sqlalchemy import select

from ticketflow.database import async_session
from ticketflow.middleware.auth import AuthContext, AuthScope
from ticketflow.models.api_key import ApiKey, hash_key
from ticketflow.models.enums import AuthorType
from ticketflow.schemas.ticket import TicketCreate
from ticketflow.services.actions import dispatch_action
from ticketflow.services.activity_log import Actor
from ticketflow.services.tickets import create_ticket

DEV_KEY_NAME = "dev-seed"
SEED_ACTOR = Actor(type=AuthorType.ADMIN, name="seed")

DEMO_TICKETS = [
    {
        "title": "Login button does nothing on Safari",
        "description": "Clicking login has no effect in Safari 17.",
        "ticket_type": "bug",
        "reporter_id": "demo-reporter",
        "reporter_name": "Demo Reporter",
        "client_reference_id": "seed-1",
    },
    {
        "title": "Add dark mode",
        "description": "The dashboard is hard to read at night.",
        "ticket_type": "feature",
        "reporter_id": "demo-reporter",
        "client_reference_id": "seed-2",
    },
    {
        "title": "Typo on pricing page",
        "description": "'Montly' should be 'Monthly'.",
        "ticket_type": "bug",
        "reporter_id": "demo-reporter",
        "client_reference_id": "seed-3",
    },
]


async def seed():
    async with async_session() as session:
        result = await session.execute(select(ApiKey).where(ApiKey.name == DEV_KEY_NAME))
        if result.scalar_one_or_none() is None:
            raw = f"tf_{secrets.token_urlsafe(24)}"
            session.add(ApiKey(name=DEV_KEY_NAME, key_hash=hash_key(raw), key_prefix=raw[:8]))
            await session.commit()
            # Only the hash is stored; this is the one chance to copy the key
            print(f"Created API key '{DEV_KEY_NAME}': {raw}")
        else:
            print(f"API key '{DEV_KEY_NAME}' already exists")

        tickets = []
        for data in DEMO_TICKETS:
            ticket, created = await create_ticket(session, TicketCreate(**data), SEED_ACTOR)
            tickets.append(ticket)
            print(f"{'Created' if created else 'Found'} T-{ticket.ticket_number}: {ticket.title}")

        # Move the first ticket into the work queue so every stage has something to show
        first = tickets[0]
        if first.status == "new":
            auth = AuthContext(scope=AuthScope.ADMIN_UI, key_name="seed")
            await dispatch_action(session, first.id, {"action": "triage", "ai_suggested_priority": "high"}, auth)
            await dispatch_action(session, first.id, {"action": "approve", "direction": "Check the click handler"}, auth)
            print(f"Approved T-{first.ticket_number}")


if __name__ == "__main__":
    asyncio.run(seed())
