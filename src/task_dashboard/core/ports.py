# src/task_dashboard/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the sync layer.

The core depends on Protocols instead of concrete backends.
This keeps the hosted REST backend and the in-memory backend swappable and makes testing easier.
"""

from collections.abc import Callable
from typing import Any, Protocol

Record = dict[str, Any]
# Raw row as returned by the store: {"id": "...", "name": "...", ...}.

BackendSession = dict[str, Any]
# {"access_token": "...", "user": {"id": "...", "email": "..."}}.

AuthStateListener = Callable[[str, BackendSession | None], None]
# Called with ("SIGNED_IN" | "SIGNED_OUT" | ..., session or None).


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class IdentityProvider(Protocol):
    """
    Managed auth of the hosted backend.

    Failures (bad credentials, weak password, email conflict) raise AuthError
    with a human-readable message.
    """

    async def get_session(self) -> BackendSession | None: ...

    def on_auth_state_change(self, listener: AuthStateListener) -> Subscription: ...

    async def sign_up(self, email: str, password: str) -> BackendSession | None: ...

    async def sign_in_with_password(self, email: str, password: str) -> BackendSession: ...

    async def sign_out(self) -> None: ...


class RemoteStore(Protocol):
    """
    Row-accessible data store. Access control is enforced remotely from the token.

    Failures raise StoreError; the coordinators wrap them as RemoteReadError/RemoteWriteError.
    """

    async def select(self, collection: str, *, token: str) -> list[Record]: ...

    async def insert(self, collection: str, record: Record, *, token: str) -> None: ...

    async def update(self, collection: str, record_id: str, fields: Record, *, token: str) -> None: ...

    async def delete(self, collection: str, record_id: str, *, token: str) -> None: ...
