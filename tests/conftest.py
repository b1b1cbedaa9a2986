"""Configure pytest fixtures and environment for fmadmin tests."""

import asyncio
import copy
from typing import Any, Dict, List, Optional, Tuple

import pytest
from dotenv import load_dotenv

from fmadmin.core.config import reset_settings
from fmadmin.core.exceptions import RecordNotFoundError
from fmadmin.core.models import ChangeEvent, ChangeEventType

_END = object()

_ENV_KEYS = (
    "BACKEND_URL",
    "BACKEND_API_KEY",
    "PROFILES_TABLE",
    "BACKEND_SCHEMA",
    "BACKEND_MAX_ATTEMPTS",
    "REQUEST_TIMEOUT",
    "FEED_POLL_INTERVAL",
    "FEED_MAX_RECONNECT_ATTEMPTS",
    "FEED_RECONNECT_BACKOFF_MAX",
    "SYNC_ROLLBACK_ON_WRITE_FAILURE",
    "DRY_RUN",
    "DEBUG",
    "ENVIRONMENT",
)


def pytest_sessionstart(session):
    """Load environment variables from a local .env file, if any."""
    load_dotenv()


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch, tmp_path):
    """Every test starts from an empty backend configuration."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_settings()
    yield
    reset_settings()


class QueueSubscription:
    """Subscription fed by the test through ``InMemoryBackend.push``."""

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            item = await self.queue.get()
            if item is _END:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True
        self.queue.put_nowait(_END)


class InMemoryBackend:
    """Profile backend double with failure injection and recorded writes."""

    def __init__(self, records: Optional[Dict[str, Dict[str, Any]]] = None):
        self.records = copy.deepcopy(records or {})
        self.updates: List[Tuple[str, Dict[str, Any]]] = []
        self.subscriptions: List[QueueSubscription] = []
        self.subscribe_calls = 0
        self.subscribe_failures: List[Exception] = []
        self.update_error: Optional[Exception] = None
        self.update_gate: Optional[asyncio.Event] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def fetch(self, entity_id: str):
        record = self.records.get(entity_id)
        return copy.deepcopy(record) if record is not None else None

    async def update(self, entity_id: str, partial: Dict[str, Any]) -> None:
        self.updates.append((entity_id, copy.deepcopy(partial)))
        if self.update_gate is not None:
            await self.update_gate.wait()
        if self.update_error is not None:
            raise self.update_error
        if entity_id not in self.records:
            raise RecordNotFoundError(entity_id)
        self.records[entity_id].update(copy.deepcopy(partial))

    async def subscribe(self, entity_id: str) -> QueueSubscription:
        self.subscribe_calls += 1
        if self.subscribe_failures:
            raise self.subscribe_failures.pop(0)
        subscription = QueueSubscription(entity_id)
        self.subscriptions.append(subscription)
        return subscription

    def push(
        self,
        entity_id: str,
        record: Dict[str, Any],
        event_type: ChangeEventType = ChangeEventType.UPDATE,
    ) -> ChangeEvent:
        event = ChangeEvent(entity_id=entity_id, event_type=event_type, new_record=record)
        for subscription in self.subscriptions:
            if subscription.entity_id == entity_id and not subscription.closed:
                subscription.queue.put_nowait(event)
        return event

    def fail_stream(self, error: Exception) -> None:
        for subscription in self.subscriptions:
            if not subscription.closed:
                subscription.queue.put_nowait(error)

    def end_stream(self) -> None:
        for subscription in self.subscriptions:
            if not subscription.closed:
                subscription.queue.put_nowait(_END)


async def settle(rounds: int = 20) -> None:
    """Let background tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def parent_record() -> Dict[str, Any]:
    return {
        "id": "p-1",
        "role": "parent",
        "email": "jane@example.com",
        "status": "New Inquiry",
        "profileCompleted": True,
        "form2Completed": False,
        "createdAt": "2024-03-05T14:30:00Z",
        "about": {},
        "formData": {
            "firstName": "Janet",
            "lastName": "Doe",
            "city": "Austin",
            "state": "TX",
            "whenToStart": "ASAP",
        },
        "parent1": {"name": "Jane Doe", "age": 38},
        "parent2": {"name": "John Doe", "age": "40"},
        "form2Data": {
            "parent1": {
                "occupation": "Engineer",
                "education": "MSc",
                "hobbiesInterests": "Hiking & Cooking",
                "aboutYourself": "I love the outdoors.",
            },
            "parent2": {
                "occupation": "Teacher",
                "hobbiesInterests": "Reading",
                "aboutYourself": "",
            },
            "fertility": {"clinic": "X"},
            "embryoRecords": {"count": 2},
        },
        "documents": [
            {"url": "https://files.example/a.png", "name": "a.png", "type": "image/png"},
            {"url": "https://files.example/b.pdf", "name": "b.pdf", "type": "application/pdf"},
        ],
    }


@pytest.fixture
def surrogate_record() -> Dict[str, Any]:
    return {
        "id": "s-1",
        "role": "surrogate",
        "email": "sam@example.com",
        "status": "Pre-Screen",
        "profileCompleted": True,
        "form2Completed": True,
        "formData": {
            "firstName": "Sam",
            "lastName": "Rivera",
            "city": "Denver",
            "state": "CO",
            "dateOfBirth": "1994-02-10",
            "Education Level": "Bachelor's",
            "ethnicity": "Irish",
            "form2": {"height": "5'6\"", "hobbies": "Swimming"},
        },
        "form2": {
            "availability": "Immediately",
            "pregnancyHistory": {"total": 2},
        },
        "about": {
            "bioFatherHeritage": "Mexican",
            "favoriteQuote": "Be kind",
            "hobbies": "Yoga, Baking",
        },
    }


@pytest.fixture
def backend(parent_record, surrogate_record) -> InMemoryBackend:
    return InMemoryBackend({"p-1": parent_record, "s-1": surrogate_record})
