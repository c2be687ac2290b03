# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from task_dashboard.sync.mutations import MutationCoordinator
from task_dashboard.sync.queries import QueryCoordinator
from task_dashboard.sync.session import SessionGate

from .fakes import FakeBackend


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the developer's .env.
    """
    return SimpleNamespace(
        app_name="task-dashboard-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        backend_url="",
        backend_anon_key=None,
        backend_configured=False,
        http_connect_timeout=1.0,
        http_read_timeout=1.0,
    )


@pytest.fixture()
def backend() -> FakeBackend:
    """Fake backend that already holds an active session for user u1."""
    return FakeBackend(
        session={"access_token": "token-u1", "user": {"id": "u1", "email": "u1@example.com"}}
    )


@pytest.fixture()
def gate(backend: FakeBackend) -> SessionGate:
    return SessionGate(backend)


@pytest.fixture()
def queries(backend: FakeBackend, gate: SessionGate) -> QueryCoordinator:
    return QueryCoordinator(backend, gate)


@pytest.fixture()
def mutations(backend: FakeBackend, queries: QueryCoordinator, gate: SessionGate) -> MutationCoordinator:
    return MutationCoordinator(backend, queries, gate)
