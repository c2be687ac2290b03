# src/task_dashboard/sync/mutations.py

from __future__ import annotations

"""
Mutation coordinator.

create/update/delete go straight to the remote store. Nothing is patched into the cache
before the store confirms; on success the owning collection is invalidated and re-read,
on failure the error goes back to the caller and the cache keeps its last-known-good view.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from ..core.errors import AuthError, RemoteWriteError, ValidationError
from ..core.forms import validate_changes, validate_record
from ..core.models import Collection, SessionContext
from ..core.ports import RemoteStore
from .queries import QueryCoordinator
from .session import SessionGate

logger = logging.getLogger(__name__)

OnSuccess = Callable[[], Any]


class MutationCoordinator:
    def __init__(self, store: RemoteStore, queries: QueryCoordinator, gate: SessionGate) -> None:
        self._store = store
        self._queries = queries
        self._gate = gate

    async def create(
        self,
        collection: Collection | str,
        record: Mapping[str, Any],
        *,
        on_success: OnSuccess | None = None,
    ) -> None:
        coll = Collection.parse(collection)
        clean = validate_record(coll, record)
        session = self._require_session()

        await self._execute(
            coll,
            "create",
            lambda: self._store.insert(coll.value, clean, token=str(session.token)),
            on_success,
        )

    async def update(
        self,
        collection: Collection | str,
        record_id: str,
        changes: Mapping[str, Any],
        *,
        on_success: OnSuccess | None = None,
    ) -> None:
        coll = Collection.parse(collection)
        rid = self._require_id(record_id)
        fields = validate_changes(coll, changes)
        session = self._require_session()

        await self._execute(
            coll,
            "update",
            lambda: self._store.update(coll.value, rid, fields, token=str(session.token)),
            on_success,
        )

    async def delete(
        self,
        collection: Collection | str,
        record_id: str,
        *,
        on_success: OnSuccess | None = None,
    ) -> None:
        coll = Collection.parse(collection)
        rid = self._require_id(record_id)
        session = self._require_session()

        await self._execute(
            coll,
            "delete",
            lambda: self._store.delete(coll.value, rid, token=str(session.token)),
            on_success,
        )

    # ---- internals ----

    def _require_session(self) -> SessionContext:
        session = self._gate.get_session()
        if not session.is_active:
            raise AuthError("Not logged in")
        return session

    @staticmethod
    def _require_id(record_id: str) -> str:
        rid = "" if record_id is None else str(record_id).strip()
        if not rid:
            raise ValidationError({"id": "Record id is required"})
        return rid

    async def _execute(
        self,
        coll: Collection,
        operation: str,
        call: Callable[[], Awaitable[None]],
        on_success: OnSuccess | None,
    ) -> None:
        try:
            await call()
        except Exception as e:
            logger.warning("%s on %s failed: %s", operation, coll.value, e)
            raise RemoteWriteError(coll.value, operation, str(e) or e.__class__.__name__) from e

        logger.info("%s on %s confirmed", operation, coll.value)
        self._queries.invalidate(coll)

        if on_success is not None:
            try:
                result = on_success()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("on_success continuation failed after %s on %s", operation, coll.value)

        # Read failures land on the cache entry (status=error), not on the mutation.
        await self._queries.fetch(coll)
