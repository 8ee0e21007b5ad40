"""
Shared test fixtures.
"""

import uuid
from datetime import datetime, timezone

import pytest

from app.clock import FixedClock
from app.config import LifecycleConfig
from app.lifecycle.coordinator import LifecycleCoordinator
from app.models.enums import Category, LocationType, ReportStatus, Role
from app.notifications.sinks import NotificationSink
from app.schemas.reports import Identity, ReportRecord
from app.store.memory import InMemoryReportStore

NOW = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


class CollectingSink(NotificationSink):
    """Keeps published events in memory."""

    def __init__(self):
        self.events = []

    async def publish(self, event):
        self.events.append(event)

    @property
    def types(self):
        return [e.type for e in self.events]


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def config():
    return LifecycleConfig()


@pytest.fixture
def store():
    return InMemoryReportStore()


@pytest.fixture
def sink():
    return CollectingSink()


@pytest.fixture
def lifecycle(store, sink, clock, config):
    return LifecycleCoordinator(store, sink, clock=clock, config=config)


@pytest.fixture
def reporter():
    return Identity(id="reporter-1", role=Role.REPORTER)


@pytest.fixture
def other_reporter():
    return Identity(id="reporter-2", role=Role.REPORTER)


@pytest.fixture
def coordinator():
    return Identity(id="coord-1", role=Role.COORDINATOR)


@pytest.fixture
def electrician():
    return Identity(id="fixer-e1", role=Role.ELECTRICAL_FIXER)


@pytest.fixture
def mechanic():
    return Identity(id="fixer-m1", role=Role.MECHANICAL_FIXER)


@pytest.fixture
def admin():
    return Identity(id="admin-1", role=Role.ADMIN)


@pytest.fixture
def make_report():
    """Build a ReportRecord snapshot with sensible defaults."""
    counter = {"n": 0}

    def _make(**overrides) -> ReportRecord:
        counter["n"] += 1
        values = {
            "id": uuid.uuid4(),
            "ticket_id": f"AASTU-FIX-20250115-{counter['n']:04d}",
            "category": Category.ELECTRICAL,
            "location_type": LocationType.SPECIFIC,
            "block_id": 5,
            "room_number": "101",
            "equipment_description": "Ceiling light",
            "problem_description": "Light flickering constantly in the room",
            "status": ReportStatus.SUBMITTED,
            "submitted_by": "reporter-1",
            "created_at": NOW,
            "updated_at": NOW,
        }
        values.update(overrides)
        if values.get("block_id") is None and "location_type" not in overrides:
            values["location_type"] = LocationType.GENERAL
        return ReportRecord(**values)

    return _make


@pytest.fixture
def seed(store, make_report):
    """Put a report straight into the in-memory store."""

    def _seed(**overrides) -> ReportRecord:
        report = make_report(**overrides)
        store.reports[report.id] = report
        return report

    return _seed
