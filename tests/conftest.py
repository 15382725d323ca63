"""Pytest configuration and shared fixtures for all tests."""

import os

# Collaborators that need no running services; set before the app is imported
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("TASK_QUEUE_BACKEND", "memory")
os.environ.setdefault("MAIL_PROVIDER", "simulation")

import pytest
from fastapi.testclient import TestClient

from brocast.app.broadcasts.mailer import SimulatedMailGateway, get_mail_gateway
from brocast.app.broadcasts.store import InMemoryBroadcastStore, get_broadcast_store
from brocast.app.core.config import settings
from brocast.app.main import app
from brocast.app.tasks.queue import InMemoryTaskQueue, get_task_queue

ALICE = "alice@example.com"


@pytest.fixture
def store() -> InMemoryBroadcastStore:
    return InMemoryBroadcastStore()


@pytest.fixture
def queue() -> InMemoryTaskQueue:
    return InMemoryTaskQueue()


@pytest.fixture
def mailer() -> SimulatedMailGateway:
    return SimulatedMailGateway()


@pytest.fixture
def client(store, queue, mailer):
    """TestClient wired to in-memory collaborators."""
    app.dependency_overrides[get_broadcast_store] = lambda: store
    app.dependency_overrides[get_task_queue] = lambda: queue
    app.dependency_overrides[get_mail_gateway] = lambda: mailer
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {settings.AUTH_USER_HEADER: ALICE}
