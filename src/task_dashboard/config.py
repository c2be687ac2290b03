# src/task_dashboard/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time (no backend URL -> offline in-memory backend).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKDASH"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv() -> None:
    """Load a local .env (if present) without overriding the real environment."""
    load_dotenv(override=False)


_load_dotenv()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Hosted backend ----
    backend_url: str
    backend_anon_key: str | None

    # ---- HTTP ----
    http_connect_timeout: float
    http_read_timeout: float

    @property
    def backend_configured(self) -> bool:
        return bool(self.backend_url.strip())

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "task-dashboard") or "task-dashboard"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/task_dashboard"))

        # Accept the hosted provider's conventional names as a fallback.
        backend_url = (_first_env(_k("BACKEND_URL"), "SUPABASE_URL", default="") or "").strip()
        backend_anon_key = _first_env(_k("BACKEND_ANON_KEY"), "SUPABASE_ANON_KEY", default=None)

        connect_timeout = _env_float(_k("HTTP_CONNECT_TIMEOUT_SECONDS"), 5.0)
        read_timeout = _env_float(_k("HTTP_READ_TIMEOUT_SECONDS"), 15.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            backend_url=backend_url.rstrip("/"),
            backend_anon_key=backend_anon_key,
            http_connect_timeout=max(0.5, connect_timeout),
            http_read_timeout=max(connect_timeout, read_timeout),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
