# src/task_dashboard/core/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .errors import RemoteReadError


class Collection(StrEnum):
    """
    Remote collections, also used as query identities.

    The whole collection is always fetched and cached as one unit, so one collection
    maps to exactly one cache entry.
    """

    PROJECTS = "projects"
    TASKS = "tasks"

    @classmethod
    def parse(cls, raw: str | Collection) -> Collection:
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown collection: {raw!r}") from None


class QueryStatus(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class SessionStatus(StrEnum):
    LOADING = "loading"  # identity provider not consulted yet
    ACTIVE = "active"
    SIGNED_OUT = "signed_out"


@dataclass(slots=True, frozen=True)
class Project:
    id: str
    name: str
    team_id: str | None = None
    created_at: str | None = None

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> Project:
        return cls(
            id=str(row["id"]),
            name=str(row.get("name") or ""),
            team_id=row.get("team_id"),
            created_at=row.get("created_at"),
        )


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    name: str
    project_id: str
    description: str | None = None
    assigned_to: str | None = None
    completed: bool = False
    created_at: str | None = None

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> Task:
        return cls(
            id=str(row["id"]),
            name=str(row.get("name") or ""),
            project_id=str(row.get("project_id") or ""),
            description=row.get("description"),
            assigned_to=row.get("assigned_to"),
            completed=bool(row.get("completed", False)),
            created_at=row.get("created_at"),
        )


Entity = Project | Task

_ENTITY_TYPES: dict[Collection, type[Project] | type[Task]] = {
    Collection.PROJECTS: Project,
    Collection.TASKS: Task,
}

# Fields the update path may send; everything else is store-owned or not editable here.
MUTABLE_FIELDS: dict[Collection, frozenset[str]] = {
    Collection.PROJECTS: frozenset(),
    Collection.TASKS: frozenset({"name", "description", "project_id"}),
}

# Fields a client may supply on insert (ids and timestamps are store-assigned).
INSERTABLE_FIELDS: dict[Collection, frozenset[str]] = {
    Collection.PROJECTS: frozenset({"name", "team_id"}),
    Collection.TASKS: frozenset({"name", "description", "project_id", "assigned_to", "completed"}),
}


def entities_from_records(collection: Collection, rows: list[dict[str, Any]]) -> tuple[Entity, ...]:
    factory = _ENTITY_TYPES[collection]
    return tuple(factory.from_record(r) for r in rows)


@dataclass(slots=True, frozen=True)
class SessionContext:
    """
    Explicit session passed to the coordinators (never read from a global).

    token is the backend access token; user_id/email are informational.
    """

    status: SessionStatus
    token: str | None = None
    user_id: str | None = None
    email: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE and bool(self.token)

    @classmethod
    def loading(cls) -> SessionContext:
        return cls(status=SessionStatus.LOADING)

    @classmethod
    def signed_out(cls) -> SessionContext:
        return cls(status=SessionStatus.SIGNED_OUT)

    @classmethod
    def from_backend(cls, session: dict[str, Any] | None) -> SessionContext:
        if not session or not session.get("access_token"):
            return cls.signed_out()
        user = session.get("user") or {}
        return cls(
            status=SessionStatus.ACTIVE,
            token=str(session["access_token"]),
            user_id=user.get("id"),
            email=user.get("email"),
        )


@dataclass(slots=True, frozen=True)
class CacheEntry:
    """Read-only snapshot of one query identity's cache state."""

    identity: Collection
    status: QueryStatus = QueryStatus.IDLE
    data: tuple[Entity, ...] = field(default_factory=tuple)
    error: str | None = None
    stale: bool = False
    updated_at: float | None = None

    @property
    def is_fresh(self) -> bool:
        return self.status == QueryStatus.SUCCESS and not self.stale

    def raise_for_error(self) -> None:
        if self.status == QueryStatus.ERROR:
            raise RemoteReadError(self.identity.value, self.error or "read failed")
