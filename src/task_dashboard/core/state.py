# src/task_dashboard/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..sync.auth import AuthService
from ..sync.mutations import MutationCoordinator
from ..sync.queries import QueryCoordinator
from ..sync.session import SessionGate


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    # Concrete backend (IdentityProvider + RemoteStore); kept for shutdown.
    backend: Any

    gate: SessionGate
    queries: QueryCoordinator
    mutations: MutationCoordinator
    auth: AuthService

    # UI state: task currently open in the edit form (None -> create mode).
    editing_task_id: str | None = None
