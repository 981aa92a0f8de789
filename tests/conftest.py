"""Pytest configuration and fixtures."""

import os

# Set test environment variables BEFORE any app imports
os.environ["STORE_BACKEND"] = "memory"
os.environ["EVENT_BACKEND"] = "memory"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Generator, Optional

import pytest
from fastapi.testclient import TestClient

from constants import AUTH_COOKIE_NAME
from events import EventChannel
from lifecycle import RoomLifecycle
from memory_backend import MemoryBackend
from message_store import MessageStore
from registry import RoomRegistry
from tokens import AccessTokenIssuer


class FakeClock:
    """Monotonic clock the tests move forward by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# --- Engine Fixtures ---


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend(clock) -> MemoryBackend:
    return MemoryBackend(clock=clock)


@pytest.fixture
def registry(backend) -> RoomRegistry:
    return RoomRegistry(backend, room_ttl_seconds=600)


@pytest.fixture
def issuer(backend) -> AccessTokenIssuer:
    return AccessTokenIssuer(backend, max_members=2)


@pytest.fixture
def message_store(backend) -> MessageStore:
    return MessageStore(backend)


@pytest.fixture
def events() -> EventChannel:
    return EventChannel(queue_size=10)


@pytest.fixture
def lifecycle(registry, issuer, message_store, events) -> RoomLifecycle:
    return RoomLifecycle(
        registry=registry,
        issuer=issuer,
        messages=message_store,
        events=events,
        max_sender_length=100,
        max_text_length=1000,
    )


# --- HTTP Fixtures ---


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Test client running the app lifespan against the in-memory store."""
    from app import app

    with TestClient(app) as test_client:
        yield test_client


def auth_headers(token: Optional[str]) -> dict:
    if not token:
        return {}
    return {"Cookie": f"{AUTH_COOKIE_NAME}={token}"}


def join(client: TestClient, room_id: str, token: Optional[str] = None):
    """Join a room as a distinct participant.

    The client's cookie jar is cleared afterwards so each call site chooses
    its identity explicitly through ``auth_headers``.
    """
    response = client.post(f"/rooms/{room_id}/join", headers=auth_headers(token))
    issued = response.cookies.get(AUTH_COOKIE_NAME)
    client.cookies.clear()
    return response, issued
