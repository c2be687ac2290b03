# tests/test_session_gate.py

from __future__ import annotations

import pytest

from task_dashboard.core.models import SessionContext, SessionStatus
from task_dashboard.sync.session import SessionGate

from .fakes import FakeBackend


@pytest.mark.asyncio
async def test_start_consults_provider_once_and_follows_events() -> None:
    backend = FakeBackend(session=None)
    gate = SessionGate(backend)
    assert gate.get_session().status == SessionStatus.LOADING
    assert not gate.is_active

    ctx = await gate.start()
    assert ctx.status == SessionStatus.SIGNED_OUT
    assert backend.get_session_calls == 1

    backend.sign_in_as("alice")
    assert gate.is_active
    assert gate.get_session().user_id == "alice"
    assert gate.get_session().token == "token-alice"

    backend.sign_out_now()
    assert gate.get_session().status == SessionStatus.SIGNED_OUT
    assert backend.get_session_calls == 1


@pytest.mark.asyncio
async def test_existing_session_is_active_after_start(backend: FakeBackend, gate: SessionGate) -> None:
    await gate.start()
    assert gate.is_active
    assert gate.get_session().email == "u1@example.com"


@pytest.mark.asyncio
async def test_listener_fires_on_every_event_until_detached() -> None:
    backend = FakeBackend(session=None)
    gate = SessionGate(backend)
    await gate.start()

    seen: list[SessionContext] = []
    handle = gate.on_auth_change(seen.append)

    backend.sign_in_as("alice")
    backend.sign_out_now()
    assert [c.status for c in seen] == [SessionStatus.ACTIVE, SessionStatus.SIGNED_OUT]

    handle.detach()
    handle.detach()  # idempotent
    assert not handle.attached

    backend.sign_in_as("bob")
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_others() -> None:
    backend = FakeBackend(session=None)
    gate = SessionGate(backend)
    await gate.start()

    def broken(_ctx: SessionContext) -> None:
        raise RuntimeError("listener bug")

    seen: list[SessionContext] = []
    gate.on_auth_change(broken)
    gate.on_auth_change(seen.append)

    backend.sign_in_as("alice")
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_epoch_changes_with_identity_but_not_on_token_refresh() -> None:
    backend = FakeBackend(session=None)
    gate = SessionGate(backend)
    await gate.start()
    e0 = gate.epoch

    backend.sign_in_as("alice", token="t1")
    e1 = gate.epoch
    assert e1 == e0 + 1

    # Same user, new token (refresh): still the same session identity.
    backend.sign_in_as("alice", token="t2")
    assert gate.epoch == e1
    assert gate.get_session().token == "t2"

    backend.sign_in_as("bob")
    assert gate.epoch == e1 + 1

    backend.sign_out_now()
    assert gate.epoch == e1 + 2


@pytest.mark.asyncio
async def test_close_detaches_from_provider() -> None:
    backend = FakeBackend(session=None)
    gate = SessionGate(backend)
    await gate.start()
    assert len(backend.listeners) == 1

    gate.close()
    assert backend.listeners == []

    backend.sign_in_as("alice")
    assert not gate.is_active
