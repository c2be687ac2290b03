# tests/test_entity_cache.py

from __future__ import annotations

from task_dashboard.core.models import Collection, Project, QueryStatus
from task_dashboard.sync.cache import EntityCache


def test_unknown_identity_is_idle_and_empty() -> None:
    cache = EntityCache()
    entry = cache.get(Collection.TASKS)
    assert entry.status == QueryStatus.IDLE
    assert entry.data == ()
    assert entry.stale is False
    assert not entry.is_fresh


def test_staleness_is_independent_of_status() -> None:
    cache = EntityCache()
    data = (Project(id="p1", name="Alpha"),)
    cache.set_success(Collection.PROJECTS, data)
    assert cache.get(Collection.PROJECTS).is_fresh

    v0 = cache.version(Collection.PROJECTS)
    cache.mark_stale(Collection.PROJECTS)
    entry = cache.get(Collection.PROJECTS)
    assert entry.status == QueryStatus.SUCCESS
    assert entry.stale is True
    assert entry.data == data
    assert cache.version(Collection.PROJECTS) == v0 + 1

    # Other identities are untouched.
    assert cache.get(Collection.TASKS).stale is False


def test_loading_keeps_previous_data_and_error_keeps_it_too() -> None:
    cache = EntityCache()
    data = (Project(id="p1", name="Alpha"),)
    cache.set_success(Collection.PROJECTS, data)

    cache.set_loading(Collection.PROJECTS)
    assert cache.get(Collection.PROJECTS).status == QueryStatus.LOADING
    assert cache.get(Collection.PROJECTS).data == data

    cache.set_error(Collection.PROJECTS, "network down")
    entry = cache.get(Collection.PROJECTS)
    assert entry.status == QueryStatus.ERROR
    assert entry.error == "network down"
    assert entry.data == data


def test_reset_drops_data_but_versions_keep_counting() -> None:
    cache = EntityCache()
    cache.set_success(Collection.PROJECTS, (Project(id="p1", name="Alpha"),))
    cache.mark_stale(Collection.PROJECTS)
    v = cache.version(Collection.PROJECTS)

    cache.reset()
    entry = cache.get(Collection.PROJECTS)
    assert entry.status == QueryStatus.IDLE
    assert entry.data == ()
    assert entry.stale is False
    assert cache.version(Collection.PROJECTS) == v
