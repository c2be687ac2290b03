# src/task_dashboard/sync/cache.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from ..core.models import CacheEntry, Collection, Entity, QueryStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Slot:
    status: QueryStatus = QueryStatus.IDLE
    data: tuple[Entity, ...] = field(default_factory=tuple)
    error: str | None = None
    stale: bool = False
    updated_at: float | None = None
    # Bumped on every mark_stale(); lets a finishing read tell whether it was
    # invalidated while in flight.
    version: int = 0


class EntityCache:
    """
    In-memory store: query identity -> cache entry.

    No logic beyond storage and staleness bookkeeping. Writers:
    - QueryCoordinator (fetch transitions, reset)
    - QueryCoordinator.invalidate, on behalf of the MutationCoordinator (mark_stale)

    Readers get immutable CacheEntry snapshots; the stored tuples are never handed out
    as something a caller could mutate.
    """

    def __init__(self) -> None:
        self._slots: dict[Collection, _Slot] = {}

    def _slot(self, identity: Collection) -> _Slot:
        slot = self._slots.get(identity)
        if slot is None:
            slot = _Slot()
            self._slots[identity] = slot
        return slot

    def identities(self) -> list[Collection]:
        return list(self._slots)

    def get(self, identity: Collection) -> CacheEntry:
        slot = self._slots.get(identity)
        if slot is None:
            return CacheEntry(identity=identity)
        return CacheEntry(
            identity=identity,
            status=slot.status,
            data=slot.data,
            error=slot.error,
            stale=slot.stale,
            updated_at=slot.updated_at,
        )

    def version(self, identity: Collection) -> int:
        return self._slot(identity).version

    def set_loading(self, identity: Collection) -> None:
        # Previous data stays visible while re-fetching.
        self._slot(identity).status = QueryStatus.LOADING

    def set_success(self, identity: Collection, data: tuple[Entity, ...], *, stale: bool = False) -> None:
        slot = self._slot(identity)
        slot.status = QueryStatus.SUCCESS
        slot.data = tuple(data)
        slot.error = None
        slot.stale = stale
        slot.updated_at = time.time()
        logger.debug("cache %s <- %d rows (stale=%s)", identity.value, len(slot.data), stale)

    def set_error(self, identity: Collection, message: str) -> None:
        slot = self._slot(identity)
        slot.status = QueryStatus.ERROR
        slot.error = message
        slot.updated_at = time.time()

    def mark_stale(self, identity: Collection) -> None:
        slot = self._slot(identity)
        slot.stale = True
        slot.version += 1

    def reset(self, identity: Collection | None = None) -> None:
        """Drop data (one identity or all); staleness versions keep counting."""
        targets = [identity] if identity is not None else list(self._slots)
        for ident in targets:
            slot = self._slot(ident)
            slot.status = QueryStatus.IDLE
            slot.data = ()
            slot.error = None
            slot.stale = False
            slot.updated_at = None
