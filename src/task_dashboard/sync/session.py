# src/task_dashboard/sync/session.py

from __future__ import annotations

import logging
from collections.abc import Callable

from ..core.models import SessionContext, SessionStatus
from ..core.ports import BackendSession, IdentityProvider, Subscription

logger = logging.getLogger(__name__)

AuthChangeCallback = Callable[[SessionContext], None]


class AuthChangeHandle:
    """Detachable listener registration returned by SessionGate.on_auth_change()."""

    def __init__(self, gate: SessionGate, callback: AuthChangeCallback) -> None:
        self._gate = gate
        self._callback = callback
        self._attached = True

    @property
    def attached(self) -> bool:
        return self._attached

    def detach(self) -> None:
        if not self._attached:
            return
        self._attached = False
        self._gate._remove_listener(self._callback)


class SessionGate:
    """
    Tracks whether the caller is authenticated and gates remote reads.

    - start(): asks the identity provider once, then follows its auth-state-change events
    - get_session(): current explicit SessionContext
    - epoch: bumped whenever the identity behind the session changes (sign-in, sign-out,
      different user); a read issued under one epoch must not be shown under another

    Listeners run synchronously inside the provider callback; they must not block.
    """

    def __init__(self, identity: IdentityProvider) -> None:
        self._identity = identity
        self._context = SessionContext.loading()
        self._epoch = 0
        self._listeners: list[AuthChangeCallback] = []
        self._subscription: Subscription | None = None

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def is_active(self) -> bool:
        return self._context.is_active

    def get_session(self) -> SessionContext:
        return self._context

    async def start(self) -> SessionContext:
        if self._subscription is None:
            self._subscription = self._identity.on_auth_state_change(self._on_provider_event)

        session = await self._identity.get_session()
        # An auth event may already have arrived while get_session() was pending; it wins.
        if self._context.status == SessionStatus.LOADING:
            self._apply(SessionContext.from_backend(session), event="INITIAL_SESSION")
        logger.info("Session gate started status=%s", self._context.status.value)
        return self._context

    def close(self) -> None:
        """Detach from the identity provider (teardown)."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
            logger.debug("Session gate detached from identity provider")

    def on_auth_change(self, callback: AuthChangeCallback) -> AuthChangeHandle:
        self._listeners.append(callback)
        return AuthChangeHandle(self, callback)

    def _remove_listener(self, callback: AuthChangeCallback) -> None:
        self._listeners = [cb for cb in self._listeners if cb is not callback]

    def _on_provider_event(self, event: str, session: BackendSession | None) -> None:
        self._apply(SessionContext.from_backend(session), event=event)

    def _apply(self, context: SessionContext, *, event: str) -> None:
        prev = self._context
        self._context = context

        same_identity = (
            prev.is_active
            and context.is_active
            and prev.user_id is not None
            and prev.user_id == context.user_id
        )
        if not same_identity and (prev.is_active or context.is_active):
            self._epoch += 1

        logger.info(
            "Auth event %s: %s -> %s (epoch=%d)",
            event,
            prev.status.value,
            context.status.value,
            self._epoch,
        )

        for cb in list(self._listeners):
            try:
                cb(context)
            except Exception:
                logger.exception("auth change listener failed event=%s", event)
