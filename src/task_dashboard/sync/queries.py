# src/task_dashboard/sync/queries.py

from __future__ import annotations

"""
Query coordinator.

Issues collection reads keyed by query identity and keeps their results in the EntityCache:
- fresh success entries are served without a remote call,
- concurrent fetches of the same identity join one in-flight read,
- invalidate() marks one identity stale so the next fetch re-reads it,
- reads are gated on an active session, before issue and again after completion.

Each issued read carries a per-identity generation number. Only the latest generation may
write the cache; an older read that completes late is discarded and its waiters are handed
the newer read's outcome.
"""

import asyncio
import logging
from collections.abc import Coroutine, Iterable
from dataclasses import dataclass, field
from typing import Any

from ..core.models import CacheEntry, Collection, SessionContext, entities_from_records
from ..core.ports import RemoteStore
from .cache import EntityCache
from .session import SessionGate

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Flight:
    generation: int
    version: int  # cache staleness version at issue time
    epoch: int  # session epoch at issue time
    token: str
    task: asyncio.Task[CacheEntry] | None = field(default=None, repr=False)


class QueryCoordinator:
    def __init__(
        self,
        store: RemoteStore,
        gate: SessionGate,
        *,
        cache: EntityCache | None = None,
        gated_reads: Iterable[Collection] = tuple(Collection),
    ) -> None:
        self._store = store
        self._gate = gate
        self._cache = cache if cache is not None else EntityCache()
        self._gated_reads = tuple(gated_reads)

        self._inflight: dict[Collection, _Flight] = {}
        self._generation: dict[Collection, int] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._seen_epoch = gate.epoch
        self._stats: dict[str, int] = {
            "hits": 0,
            "reads": 0,
            "joins": 0,
            "discarded": 0,
            "gated": 0,
            "errors": 0,
        }

        self._auth_handle = gate.on_auth_change(self._on_auth_change)

    @property
    def cache(self) -> EntityCache:
        return self._cache

    def close(self) -> None:
        self._auth_handle.detach()

    def stats(self) -> dict[str, int]:
        return dict(self._stats)

    def peek(self, identity: Collection | str) -> CacheEntry:
        """Latest known entry without issuing anything; empty while logged out."""
        ident = Collection.parse(identity)
        if not self._gate.is_active:
            return CacheEntry(identity=ident)
        return self._cache.get(ident)

    # ---- public API ----

    async def fetch(self, identity: Collection | str) -> CacheEntry:
        ident = Collection.parse(identity)

        if not self._gate.is_active:
            self._stats["gated"] += 1
            return CacheEntry(identity=ident)

        entry = self._cache.get(ident)
        if entry.is_fresh:
            self._stats["hits"] += 1
            return entry

        flight = self._inflight.get(ident)
        if flight is not None and flight.version == self._cache.version(ident):
            self._stats["joins"] += 1
            logger.debug("fetch %s: joining in-flight read gen=%d", ident.value, flight.generation)
            return await self._await(flight)

        return await self._await(self._issue(ident, self._gate.get_session()))

    def invalidate(self, identity: Collection | str) -> None:
        ident = Collection.parse(identity)
        self._cache.mark_stale(ident)
        logger.debug("invalidated %s", ident.value)

    async def refetch_active(self) -> list[CacheEntry]:
        return list(await asyncio.gather(*(self.fetch(i) for i in self._gated_reads)))

    def reset(self) -> None:
        """Drop all cached data; results of reads still in flight will be discarded."""
        for ident in list(self._inflight):
            self._generation[ident] = self._generation.get(ident, 0) + 1
        self._inflight.clear()
        self._cache.reset()

    async def drain(self) -> None:
        """Wait until no read and no auth-triggered refresh is pending."""
        while True:
            pending = list(self._background) + [
                f.task for f in self._inflight.values() if f.task is not None
            ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ---- internals ----

    @staticmethod
    async def _await(flight: _Flight) -> CacheEntry:
        if flight.task is None:
            raise RuntimeError("read was not started")
        # One caller giving up must not cancel the read for everybody else.
        return await asyncio.shield(flight.task)

    def _issue(self, ident: Collection, session: SessionContext) -> _Flight:
        gen = self._generation.get(ident, 0) + 1
        self._generation[ident] = gen

        flight = _Flight(
            generation=gen,
            version=self._cache.version(ident),
            epoch=self._gate.epoch,
            token=str(session.token),
        )
        self._inflight[ident] = flight
        self._cache.set_loading(ident)
        self._stats["reads"] += 1
        logger.debug("fetch %s: issuing remote read gen=%d", ident.value, gen)

        flight.task = asyncio.get_running_loop().create_task(self._run(ident, flight))
        return flight

    def _may_apply(self, ident: Collection, flight: _Flight) -> bool:
        return (
            self._generation.get(ident) == flight.generation
            and self._gate.is_active
            and self._gate.epoch == flight.epoch
        )

    async def _run(self, ident: Collection, flight: _Flight) -> CacheEntry:
        error: str | None = None
        data: tuple[Any, ...] = ()
        try:
            rows = await self._store.select(ident.value, token=flight.token)
            data = entities_from_records(ident, list(rows))
        except Exception as e:
            error = str(e) or e.__class__.__name__
        finally:
            if self._inflight.get(ident) is flight:
                del self._inflight[ident]

        if not self._may_apply(ident, flight):
            self._stats["discarded"] += 1
            logger.debug("fetch %s: discarding result of gen=%d", ident.value, flight.generation)
            newer = self._inflight.get(ident)
            if newer is not None:
                return await self._await(newer)
            if self._gate.is_active:
                # Signed back in before the new session's reads were issued.
                return await self.fetch(ident)
            return self.peek(ident)

        if error is not None:
            self._stats["errors"] += 1
            logger.warning("read %s failed: %s", ident.value, error)
            self._cache.set_error(ident, error)
        else:
            still_stale = self._cache.version(ident) != flight.version
            self._cache.set_success(ident, data, stale=still_stale)

        return self._cache.get(ident)

    def _on_auth_change(self, context: SessionContext) -> None:
        epoch = self._gate.epoch
        if epoch == self._seen_epoch:
            # Same identity (e.g. token refresh): cached data stays valid.
            return
        self._seen_epoch = epoch

        self.reset()
        if context.is_active:
            logger.info("Session active, issuing gated reads: %s", ", ".join(i.value for i in self._gated_reads))
            self._spawn(self.refetch_active())
        else:
            logger.info("Session ended, cached data dropped")

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (sync caller): reads are issued by the next fetch instead.
            coro.close()
            return
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
