# src/task_dashboard/core/forms.py

"""
Form validation for the project, task and auth forms.

Runs before any remote call. All problems of one form are reported together
in a single ValidationError(field_errors=...).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from .errors import ValidationError
from .models import INSERTABLE_FIELDS, MUTABLE_FIELDS, Collection

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6

_REQUIRED: dict[Collection, dict[str, str]] = {
    Collection.PROJECTS: {"name": "Project name is required"},
    Collection.TASKS: {
        "name": "Task name is required",
        "project_id": "Project is required",
    },
}


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def validate_record(collection: Collection, values: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a create form; returns the record to insert (no id, no timestamps)."""
    errors: dict[str, str] = {}
    for name, message in _REQUIRED[collection].items():
        if not _text(values.get(name)):
            errors[name] = message
    if errors:
        raise ValidationError(errors)

    record: dict[str, Any] = {}
    for key, value in values.items():
        if key not in INSERTABLE_FIELDS[collection]:
            logger.debug("create %s: dropping non-insertable field %s", collection.value, key)
            continue
        record[key] = value.strip() if isinstance(value, str) else value

    if collection == Collection.TASKS:
        record.setdefault("description", "")
        record.setdefault("completed", False)
    return record


def validate_changes(collection: Collection, values: Mapping[str, Any]) -> dict[str, Any]:
    """
    Validate an edit form; returns only the fields the update path may send.

    Fields outside the editable set (e.g. Task.completed, Task.assigned_to) are dropped.
    Required fields that are present must still be non-empty.
    """
    allowed = MUTABLE_FIELDS[collection]
    if not allowed:
        raise ValidationError({"_": f"{collection.value} cannot be edited"})

    changes: dict[str, Any] = {}
    errors: dict[str, str] = {}
    for key, value in values.items():
        if key not in allowed:
            logger.debug("update %s: dropping non-editable field %s", collection.value, key)
            continue
        message = _REQUIRED[collection].get(key)
        if message is not None and not _text(value):
            errors[key] = message
            continue
        changes[key] = value.strip() if isinstance(value, str) else value

    if errors:
        raise ValidationError(errors)
    if not changes:
        raise ValidationError({"_": "Nothing to update"})
    return changes


def validate_credentials(email: str | None, password: str | None) -> tuple[str, str]:
    errors: dict[str, str] = {}
    email_s = _text(email)
    if not EMAIL_RE.match(email_s):
        errors["email"] = "Invalid email address"
    if len(password or "") < MIN_PASSWORD_LENGTH:
        errors["password"] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    if errors:
        raise ValidationError(errors)
    return email_s, str(password)
