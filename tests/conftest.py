import json
import os
import sys
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

# Project root: main, database, config and planner import from here
_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _root not in sys.path:
    sys.path.insert(0, _root)

from config import Settings
from database import SessionLocal, Trip, User, init_db


class FakeLLMClient:
    """Stands in for LLMClient: hands out queued replies and records every call.

    A queued Exception instance is raised instead of returned.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def queue(self, *replies):
        self.replies.extend(replies)

    def complete(self, system_prompt, user_prompt, *, max_tokens=1000, temperature=0.3):
        self.calls.append({
            "system": system_prompt,
            "user": user_prompt,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        if not self.replies:
            raise AssertionError("FakeLLMClient ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_day(day_number, *items):
    return {"dayNumber": day_number, "date": None, "theme": f"Area {day_number}", "items": list(items)}


def make_item(title, price=None, **extra):
    item = {"time": "10:00", "type": "activity", "title": title,
            "description": f"About {title}", "location": "Somewhere", "duration": 90,
            "bookingRequired": False}
    if price is not None:
        item["price"] = price
    item.update(extra)
    return item


def itinerary_reply(*days, prose=True):
    """An LLM-style reply: fenced JSON with chatter around it."""
    body = json.dumps({"days": list(days)}, indent=2)
    if not prose:
        return body
    return f"Here is your itinerary!\n```json\n{body}\n```\nEnjoy your trip."


def lisbon_days():
    return [
        make_day(1, make_item("Visit Jerónimos Monastery", 20), make_item("Lunch at Pastéis de Belém", 30)),
        make_day(2, make_item("Explore Alfama", 15), make_item("Dinner at Taberna da Rua das Flores")),
    ]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        llm_api_key="test-key",
        jwt_secret="test-secret",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        environment="test",
        generation_workers=1,
    )


@pytest.fixture
def db_session(settings):
    init_db(settings.database_url)
    db = SessionLocal()
    yield db
    db.close()


@pytest.fixture
def user(db_session):
    u = User(email="ana@example.com", full_name="Ana", password_hash="x")
    db_session.add(u)
    db_session.commit()
    return u


@pytest.fixture
def lisbon_trip(db_session, user):
    trip = Trip(
        user_id=user.id,
        title="Lisbon Trip",
        original_request="2 days in Lisbon for 3 people",
        duration_days=2,
        travelers_count=3,
        destinations=["Lisbon"],
        preferences={"interests": ["food"], "accommodationType": "mid-range", "travelStyle": "moderate"},
    )
    db_session.add(trip)
    db_session.commit()
    return trip


@pytest.fixture
def fake_llm():
    return FakeLLMClient()


@pytest.fixture
def api(settings, fake_llm):
    """TestClient over the real app with a fake LLM and a recording generation queue."""
    from fastapi.testclient import TestClient
    from main import create_app

    queue = MagicMock()
    app = create_app(settings, llm_client=fake_llm, generation_queue=queue)
    with TestClient(app) as client:
        yield SimpleNamespace(client=client, llm=fake_llm, queue=queue, app=app)


@pytest.fixture
def auth_headers(api):
    resp = api.client.post("/api/auth/register", json={
        "email": "traveler@example.com", "password": "s3cret-pass", "fullName": "Test Traveler",
    })
    assert resp.status_code == 201
    return {"Authorization": f"Bearer {resp.json()['token']}"}
