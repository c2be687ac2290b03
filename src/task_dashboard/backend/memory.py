# src/task_dashboard/backend/memory.py

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from ..core.errors import AuthError, StoreError
from ..core.ports import AuthStateListener, BackendSession, Record

logger = logging.getLogger(__name__)

_COLLECTIONS = ("projects", "tasks")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class _ListenerSubscription:
    def __init__(self, listeners: list[AuthStateListener], listener: AuthStateListener) -> None:
        self._listeners = listeners
        self._listener = listener

    def unsubscribe(self) -> None:
        if self._listener in self._listeners:
            self._listeners.remove(self._listener)


class InMemoryBackend:
    """
    Offline backend used for demos when no hosted backend is configured.

    Behaves like the hosted one where the dashboard can tell:
    - store-assigned ids (uuid4) and created_at timestamps
    - tasks.project_id must reference an existing project
    - update/delete of an unknown id is a silent no-op (like a filtered PATCH/DELETE)
    - sign-up does not start a session (email confirmation flow); sign-in does
    """

    def __init__(self) -> None:
        self._rows: dict[str, list[Record]] = {name: [] for name in _COLLECTIONS}
        self._accounts: dict[str, dict[str, str]] = {}
        self._tokens: dict[str, str] = {}  # token -> user id
        self._session: BackendSession | None = None
        self._listeners: list[AuthStateListener] = []

    # ---- IdentityProvider ----

    async def get_session(self) -> BackendSession | None:
        return self._session

    def on_auth_state_change(self, listener: AuthStateListener) -> _ListenerSubscription:
        self._listeners.append(listener)
        return _ListenerSubscription(self._listeners, listener)

    def _emit(self, event: str, session: BackendSession | None) -> None:
        for cb in list(self._listeners):
            try:
                cb(event, session)
            except Exception:
                logger.exception("auth listener failed event=%s", event)

    async def sign_up(self, email: str, password: str) -> BackendSession | None:
        key = email.strip().lower()
        if key in self._accounts:
            raise AuthError("User already registered")
        self._accounts[key] = {"id": str(uuid.uuid4()), "email": key, "password": password}
        logger.debug("account created email=%s", key)
        return None

    async def sign_in_with_password(self, email: str, password: str) -> BackendSession:
        account = self._accounts.get(email.strip().lower())
        if account is None or account["password"] != password:
            raise AuthError("Invalid login credentials")

        token = uuid.uuid4().hex
        self._tokens[token] = account["id"]
        self._session = {
            "access_token": token,
            "user": {"id": account["id"], "email": account["email"]},
        }
        self._emit("SIGNED_IN", self._session)
        return self._session

    async def sign_out(self) -> None:
        if self._session is not None:
            self._tokens.pop(str(self._session.get("access_token")), None)
        self._session = None
        self._emit("SIGNED_OUT", None)

    # ---- RemoteStore ----

    def _check(self, collection: str, token: str) -> list[Record]:
        if token not in self._tokens:
            raise StoreError("JWT expired or invalid", status_code=401)
        rows = self._rows.get(collection)
        if rows is None:
            raise StoreError(f'relation "{collection}" does not exist', status_code=404)
        return rows

    def _check_project_ref(self, fields: Record) -> None:
        if "project_id" not in fields:
            return
        if not any(p["id"] == fields["project_id"] for p in self._rows["projects"]):
            raise StoreError(
                'insert or update on table "tasks" violates foreign key constraint "tasks_project_id_fkey"',
                status_code=409,
            )

    async def select(self, collection: str, *, token: str) -> list[Record]:
        rows = self._check(collection, token)
        return [dict(r) for r in rows]

    async def insert(self, collection: str, record: Record, *, token: str) -> None:
        rows = self._check(collection, token)
        if collection == "tasks":
            self._check_project_ref(record)

        row: dict[str, Any] = dict(record)
        row["id"] = str(uuid.uuid4())
        row["created_at"] = _now_iso()
        if collection == "tasks":
            row.setdefault("completed", False)
        rows.append(row)
        logger.debug("insert %s id=%s", collection, row["id"])

    async def update(self, collection: str, record_id: str, fields: Record, *, token: str) -> None:
        rows = self._check(collection, token)
        if collection == "tasks":
            self._check_project_ref(fields)
        for row in rows:
            if row["id"] == record_id:
                row.update({k: v for k, v in fields.items() if k not in ("id", "created_at")})

    async def delete(self, collection: str, record_id: str, *, token: str) -> None:
        rows = self._check(collection, token)
        self._rows[collection] = [r for r in rows if r["id"] != record_id]
