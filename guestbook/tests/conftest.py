"""Shared fixtures for guestbook tests."""

import pytest
from fastapi.testclient import TestClient

from guestbook.api.main import app
from guestbook.internal_core.access import AccessGate
from guestbook.internal_core.memory_store import InMemorySubmissionStore
from guestbook.internal_core.service import SubmissionService

OPERATOR_USER = "operator"
OPERATOR_PASS = "s3cret"

_STATE_KEYS = ("submission_service", "access_gate")


def _clear_injected_state() -> None:
    for key in _STATE_KEYS:
        if hasattr(app.state, key):
            delattr(app.state, key)


@pytest.fixture
def store() -> InMemorySubmissionStore:
    return InMemorySubmissionStore()


@pytest.fixture
def service(store) -> SubmissionService:
    return SubmissionService(store)


@pytest.fixture
def open_client(service):
    """Client against an app whose operator gate is open."""
    app.state.submission_service = service
    app.state.access_gate = AccessGate.open()
    try:
        yield TestClient(app)
    finally:
        _clear_injected_state()


@pytest.fixture
def protected_client(service):
    """Client against an app that requires the operator credential."""
    app.state.submission_service = service
    app.state.access_gate = AccessGate.protected(OPERATOR_USER, OPERATOR_PASS)
    try:
        yield TestClient(app)
    finally:
        _clear_injected_state()


@pytest.fixture
def operator_auth():
    return (OPERATOR_USER, OPERATOR_PASS)
