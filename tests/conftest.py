"""
Pytest Configuration and Fixtures

Shared fixtures: an in-memory store, a frozen clock, sequential ids and a
system seeded with three departments and a three-step default workflow.
"""
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio

from ticketflow.config.settings import Settings
from ticketflow.container import build_system
from ticketflow.domain.models import Ticket
from ticketflow.repositories.memory_store import InMemoryRecordStore

# 2024-01-01 is a Monday
MONDAY = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
FRIDAY = datetime(2024, 1, 5, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when told to"""

    def __init__(self, now: datetime = MONDAY):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class SequentialIds:
    """Deterministic id factory: TKT-0001, TKT-0002, ..."""

    def __init__(self):
        self.counters = defaultdict(int)

    def __call__(self, prefix: Optional[str] = None) -> str:
        key = prefix or "ID"
        self.counters[key] += 1
        return f"{key}-{self.counters[key]:04d}"


def make_ticket(**overrides) -> Ticket:
    """Ticket with sensible defaults for pure unit tests"""
    fields = {
        "ticket_id": "TKT-TEST",
        "department": "Maintenance",
        "ticket_type": "Repair",
        "client_name": "Jane Client",
        "created_at": MONDAY,
        "updated_at": MONDAY,
    }
    fields.update(overrides)
    return Ticket(**fields)


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file"""
    return Settings(_env_file=None, log_level="DEBUG")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest_asyncio.fixture
async def system(store, settings, clock, ids):
    """Wired system over the in-memory store, no seed data"""
    ticketing = await build_system(store=store, settings=settings, clock=clock, id_factory=ids)
    yield ticketing
    await ticketing.close()


@pytest_asyncio.fixture
async def seeded(system):
    """
    Three departments and a default three-step workflow

    Maintenance (2 days) -> Finance (1 day) -> Legal (1 day). Maintenance
    owns the "Repair" ticket type with a 5 working day SLA.
    """
    maintenance = await system.departments.create_department("Maintenance", ["Plumbing"])
    await system.departments.create_department("Finance")
    await system.departments.create_department("Legal")
    await system.departments.add_ticket_type(maintenance.department_id, "Repair", default_working_days=5)

    await system.workflows.create_workflow(
        name="Standard",
        steps=[
            {"department_name": "Maintenance", "estimated_duration": 2},
            {"department_name": "Finance", "estimated_duration": 1},
            {"department_name": "Legal", "estimated_duration": 1},
        ],
        is_default=True,
    )
    return system
