# tests/test_query_coordinator.py

from __future__ import annotations

import asyncio

import pytest

from task_dashboard.core.errors import RemoteReadError
from task_dashboard.core.models import Collection, QueryStatus
from task_dashboard.sync.queries import QueryCoordinator
from task_dashboard.sync.session import SessionGate

from .fakes import FakeBackend


async def _started(gate: SessionGate, queries: QueryCoordinator) -> None:
    """Start the gate and let the reads triggered by the initial session finish."""
    await gate.start()
    await queries.drain()


@pytest.mark.asyncio
async def test_session_start_issues_gated_reads(backend: FakeBackend, gate, queries) -> None:
    backend.seed("projects", {"id": "p1", "name": "Alpha"})
    await _started(gate, queries)

    assert backend.count("select", "projects") == 1
    assert backend.count("select", "tasks") == 1
    entry = queries.peek("projects")
    assert entry.status == QueryStatus.SUCCESS
    assert [p.name for p in entry.data] == ["Alpha"]


@pytest.mark.asyncio
async def test_concurrent_fetches_share_one_remote_read(backend: FakeBackend, gate, queries) -> None:
    await _started(gate, queries)
    backend.seed("tasks", {"id": "t1", "name": "One", "project_id": "p1"})
    queries.invalidate("tasks")
    before = backend.count("select", "tasks")

    release = backend.hold_next("tasks")
    callers = [asyncio.create_task(queries.fetch("tasks")) for _ in range(5)]
    await asyncio.sleep(0)
    assert queries.peek("tasks").status == QueryStatus.LOADING

    release.set()
    results = await asyncio.gather(*callers)

    assert backend.count("select", "tasks") == before + 1
    assert all(r.status == QueryStatus.SUCCESS for r in results)
    assert all([t.id for t in r.data] == ["t1"] for r in results)
    assert queries.stats()["joins"] >= 4


@pytest.mark.asyncio
async def test_fresh_entry_is_served_without_remote_call(backend: FakeBackend, gate, queries) -> None:
    await _started(gate, queries)
    before = backend.count("select")

    entry = await queries.fetch(Collection.PROJECTS)
    assert entry.is_fresh
    assert backend.count("select") == before


@pytest.mark.asyncio
async def test_invalidate_forces_a_new_read_for_that_identity_only(backend: FakeBackend, gate, queries) -> None:
    await _started(gate, queries)
    backend.seed("tasks", {"id": "t1", "name": "New", "project_id": "p1"})

    queries.invalidate("tasks")
    assert queries.peek("tasks").stale is True
    assert queries.peek("projects").stale is False

    tasks = await queries.fetch("tasks")
    projects = await queries.fetch("projects")

    assert backend.count("select", "tasks") == 2
    assert backend.count("select", "projects") == 1
    assert [t.name for t in tasks.data] == ["New"]
    assert tasks.is_fresh
    assert projects.is_fresh


@pytest.mark.asyncio
async def test_fetch_without_session_returns_idle_and_never_calls_store() -> None:
    backend = FakeBackend(session=None)
    gate = SessionGate(backend)
    queries = QueryCoordinator(backend, gate)
    await gate.start()

    entry = await queries.fetch("tasks")
    assert entry.status == QueryStatus.IDLE
    assert entry.data == ()
    assert backend.calls == []
    assert queries.stats()["gated"] == 1


@pytest.mark.asyncio
async def test_read_failure_sets_error_status_and_next_fetch_retries(backend: FakeBackend, gate, queries) -> None:
    await _started(gate, queries)
    queries.invalidate("projects")
    backend.fail_next("select", "projects", "connection reset")

    entry = await queries.fetch("projects")
    assert entry.status == QueryStatus.ERROR
    assert "connection reset" in (entry.error or "")
    with pytest.raises(RemoteReadError):
        entry.raise_for_error()

    # No automatic retry; the next fetch (user retry) reads again.
    assert backend.count("select", "projects") == 2
    entry2 = await queries.fetch("projects")
    assert entry2.status == QueryStatus.SUCCESS
    assert backend.count("select", "projects") == 3


@pytest.mark.asyncio
async def test_sign_out_during_read_discards_the_result(backend: FakeBackend, gate, queries) -> None:
    backend.seed("tasks", {"id": "t1", "name": "Secret", "project_id": "p1"})
    await _started(gate, queries)
    queries.invalidate("tasks")

    release = backend.hold_next("tasks")
    pending = asyncio.create_task(queries.fetch("tasks"))
    await asyncio.sleep(0)

    backend.sign_out_now()
    release.set()
    entry = await pending

    assert entry.status == QueryStatus.IDLE
    assert entry.data == ()
    assert queries.peek("tasks").data == ()
    assert queries.cache.get(Collection.TASKS).data == ()
    assert queries.stats()["discarded"] >= 1


@pytest.mark.asyncio
async def test_waiter_on_discarded_read_gets_new_session_data_after_quick_sign_in(backend: FakeBackend) -> None:
    # No gated reads: nothing re-issues the read on sign-in except the waiting caller.
    gate = SessionGate(backend)
    queries = QueryCoordinator(backend, gate, gated_reads=())
    await gate.start()
    backend.seed("tasks", {"id": "t1", "name": "Mine", "project_id": "p1"})

    release = backend.hold_next("tasks")
    pending = asyncio.create_task(queries.fetch("tasks"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    backend.sign_out_now()
    backend.sign_in_as("u1", token="token-u1-new")
    release.set()
    entry = await pending

    assert entry.status == QueryStatus.SUCCESS
    assert [t.name for t in entry.data] == ["Mine"]
    assert backend.count("select", "tasks") == 2
    assert backend.calls[-1] == ("select", "tasks", "token-u1-new")
    assert queries.stats()["discarded"] == 1


@pytest.mark.asyncio
async def test_late_superseded_read_never_overwrites_newer_data(backend: FakeBackend, gate, queries) -> None:
    backend.seed("tasks", {"id": "t1", "name": "Old", "project_id": "p1"})
    await _started(gate, queries)
    queries.invalidate("tasks")

    # First read starts (snapshotting "Old") and stalls.
    slow_release = backend.hold_next("tasks")
    slow = asyncio.create_task(queries.fetch("tasks"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    # A mutation lands and invalidates while the slow read is in flight.
    backend.rows["tasks"][0]["name"] = "New"
    queries.invalidate("tasks")
    fast = await queries.fetch("tasks")
    assert [t.name for t in fast.data] == ["New"]

    slow_release.set()
    slow_result = await slow

    assert [t.name for t in queries.peek("tasks").data] == ["New"]
    assert [t.name for t in slow_result.data] == ["New"]
    assert queries.peek("tasks").is_fresh


@pytest.mark.asyncio
async def test_invalidation_during_read_leaves_entry_stale(backend: FakeBackend, gate, queries) -> None:
    await _started(gate, queries)
    queries.invalidate("tasks")

    release = backend.hold_next("tasks")
    pending = asyncio.create_task(queries.fetch("tasks"))
    await asyncio.sleep(0)

    queries.invalidate("tasks")
    release.set()
    entry = await pending

    assert entry.status == QueryStatus.SUCCESS
    assert entry.stale is True

    before = backend.count("select", "tasks")
    await queries.fetch("tasks")
    assert backend.count("select", "tasks") == before + 1


@pytest.mark.asyncio
async def test_sign_in_later_issues_reads_and_switching_user_drops_old_data() -> None:
    backend = FakeBackend(session=None)
    gate = SessionGate(backend)
    queries = QueryCoordinator(backend, gate)
    await gate.start()
    assert backend.calls == []

    backend.seed("projects", {"id": "p1", "name": "Alpha"})
    backend.sign_in_as("alice")
    await queries.drain()
    assert backend.count("select", "projects") == 1
    assert backend.count("select", "tasks") == 1
    assert [p.name for p in queries.peek("projects").data] == ["Alpha"]

    backend.sign_out_now()
    assert queries.peek("projects").data == ()

    backend.sign_in_as("bob")
    await queries.drain()
    assert backend.count("select", "projects") == 2
    assert {token for _, _, token in backend.calls[-2:]} == {"token-bob"}


@pytest.mark.asyncio
async def test_close_stops_following_the_session(backend: FakeBackend, gate, queries) -> None:
    await _started(gate, queries)
    queries.close()

    backend.sign_out_now()
    backend.sign_in_as("bob")
    await queries.drain()
    # No auth-triggered reads after close.
    assert backend.count("select", "projects") == 1
