"""Shared fixtures for the Streakly test-suite."""

import os

# Keep the app module from creating a session database on import
os.environ.setdefault("PERSIST_SESSION", "false")

import pytest

from fakes import REDIRECT, FakeGateway, make_session
from streakly.auth.session import SessionManager
from streakly.gateway.models import AuthEvent
from streakly.habits.store import HabitStore


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def sessions(gateway: FakeGateway) -> SessionManager:
    manager = SessionManager(gateway, REDIRECT)
    gateway.on_auth_state_change(manager.on_change)
    return manager


@pytest.fixture
def store(gateway: FakeGateway, sessions: SessionManager) -> HabitStore:
    return HabitStore(gateway, sessions)


@pytest.fixture
def signed_in(sessions: SessionManager):
    session = make_session()
    sessions.on_change(AuthEvent.SIGNED_IN, session)
    return session
