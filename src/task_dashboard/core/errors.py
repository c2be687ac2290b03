# src/task_dashboard/core/errors.py

"""Error taxonomy shared by the sync layer, backends and the console UI."""

from __future__ import annotations


class DashboardError(Exception):
    """Base exception for all task_dashboard errors."""


class AuthError(DashboardError):
    """Invalid credentials, weak password, email conflict or missing session."""


class ValidationError(DashboardError):
    """
    One or more form fields are missing or malformed.

    Raised before any remote call; field_errors maps a field name to a user-facing message.
    """

    def __init__(self, field_errors: dict[str, str]):
        self.field_errors = dict(field_errors)
        joined = "; ".join(f"{k}: {v}" for k, v in self.field_errors.items())
        super().__init__(joined or "Invalid input")


class StoreError(DashboardError):
    """Raised by backend adapters when the remote store rejects or fails a request."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class RemoteError(DashboardError):
    """A remote store operation failed (network or store-side failure)."""

    def __init__(self, collection: str, message: str):
        self.collection = collection
        super().__init__(message)


class RemoteReadError(RemoteError):
    """A collection read failed; recorded on the cache entry, never retried automatically."""


class RemoteWriteError(RemoteError):
    """A create/update/delete failed; the cache is left untouched."""

    def __init__(self, collection: str, operation: str, message: str):
        self.operation = operation
        super().__init__(collection, f"{operation} on {collection} failed: {message}")
