# src/task_dashboard/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- picks the backend (hosted REST backend, or the offline in-memory one),
- wires the session gate and the query/mutation coordinators into AppState,
- tears everything down again on exit.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Any

from ..backend.memory import InMemoryBackend
from ..backend.rest import RestBackend, make_timeout
from ..config import get_settings
from ..core.state import AppState
from ..sync.auth import AuthService
from ..sync.mutations import MutationCoordinator
from ..sync.queries import QueryCoordinator
from ..sync.session import SessionGate

logger = logging.getLogger(__name__)


def build_backend(settings) -> Any:
    if not getattr(settings, "backend_configured", False):
        logger.info("No backend URL configured; using the offline in-memory backend.")
        return InMemoryBackend()
    try:
        return RestBackend(
            settings.backend_url,
            settings.backend_anon_key,
            timeout=make_timeout(settings.http_connect_timeout, settings.http_read_timeout),
        )
    except RuntimeError as e:
        # Fallback for demos / local runs without a complete backend config.
        logger.warning("%s Falling back to the offline in-memory backend.", e)
        return InMemoryBackend()


def create_initial_state(*, settings=None, backend=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings and backend injectable makes the app easier to test and avoids hidden
    global config reads. If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()
    if backend is None:
        backend = build_backend(settings)

    gate = SessionGate(backend)
    queries = QueryCoordinator(backend, gate)
    mutations = MutationCoordinator(backend, queries, gate)

    return AppState(
        settings=settings,
        backend=backend,
        gate=gate,
        queries=queries,
        mutations=mutations,
        auth=AuthService(backend),
    )


async def shutdown_state(state: AppState) -> None:
    """Best-effort teardown (no exceptions should escape)."""
    with contextlib.suppress(Exception):
        state.queries.close()
    with contextlib.suppress(Exception):
        state.gate.close()

    aclose = getattr(state.backend, "aclose", None)
    if aclose is not None:
        try:
            await aclose()
        except Exception:
            logger.debug("Backend close failed.", exc_info=True)
