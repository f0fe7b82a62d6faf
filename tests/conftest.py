"""Shared fixtures for the workflow engine tests."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from marketplace_platform.config import PlatformSettings
from marketplace_platform.models import Task, TaskCategory, TaskStatus, User, UserRole
from marketplace_platform.storage import Stores
from marketplace_platform.workflows.side_effects import EffectDispatcher, RecordingSink
from marketplace_platform.workflows.orchestrator import WorkflowOrchestrator

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock; call it to read the current time."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stores():
    return Stores.in_memory()


@pytest.fixture
def settings():
    return PlatformSettings()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def orchestrator(stores, settings, sink, clock):
    return WorkflowOrchestrator(
        stores,
        settings=settings,
        dispatcher=EffectDispatcher(sink, sink, sink),
        clock=clock,
    )


@pytest.fixture
def admin(stores):
    return stores.users.create(User(id="admin-1", name="Ada Admin", role=UserRole.ADMIN))


@pytest.fixture
def client(stores):
    return stores.users.create(User(id="client-1", name="Carl Client", role=UserRole.CLIENT))


@pytest.fixture
def make_freelancer(stores, clock):
    """Factory storing a freelancer profile."""
    def _make(user_id: str, **overrides) -> User:
        fields = {
            "id": user_id,
            "name": user_id.title(),
            "role": UserRole.FREELANCER,
            "skills": {"web-development"},
            "performance_score": 80.0,
            "on_time_completion_rate": 90.0,
            "created_at": clock(),
        }
        fields.update(overrides)
        return stores.users.create(User(**fields))
    return _make


@pytest.fixture
def freelancer(make_freelancer):
    return make_freelancer("freelancer-1")


@pytest.fixture
def make_task(stores, client, clock):
    """Factory storing a task; defaults to an open web-development task."""
    def _make(**overrides) -> Task:
        fields = {
            "title": "Landing page",
            "description": "Build a responsive landing page",
            "category": TaskCategory.WEB_DEVELOPMENT,
            "status": TaskStatus.UNDER_REVIEW,
            "client_id": client.id,
            "budget": Decimal("100.00"),
            "deadline": clock() + timedelta(days=7),
            "created_at": clock(),
            "updated_at": clock(),
        }
        fields.update(overrides)
        return stores.tasks.create(Task(**fields))
    return _make


@pytest.fixture
def task_payload(clock):
    return {
        "title": "Promo video",
        "description": "Cut a 30 second promo from raw footage",
        "category": "video-editing",
        "budget": "250.00",
        "deadline": (clock() + timedelta(days=5)).isoformat(),
        "priority": "urgent",
    }
