# src/task_dashboard/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.models import SessionContext
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[str | None]) -> threading.Thread:
    """
    Read stdin lines in a daemon thread and hand them to the event loop.

    A daemon thread (instead of the default executor) lets the process exit while
    a readline() is still blocked. None marks EOF.
    """

    def _reader() -> None:
        while True:
            try:
                line = sys.stdin.readline()
            except Exception:
                logger.debug("stdin read failed", exc_info=True)
                line = ""
            if not line:
                loop.call_soon_threadsafe(queue.put_nowait, None)
                return
            loop.call_soon_threadsafe(queue.put_nowait, line)

    t = threading.Thread(target=_reader, name="stdin-reader", daemon=True)
    t.start()
    return t


async def run_console_loop(state: AppState) -> None:
    logger.info("Console dashboard started (backend=%s).", state.backend.__class__.__name__)
    app_name = str(getattr(getattr(state, "settings", None), "app_name", "task-dashboard"))
    _print_ts(f"[{app_name}] Use /help for commands. Use /exit to quit.\n")

    def on_auth(context: SessionContext) -> None:
        if context.is_active:
            _print_ts(f"[auth] Logged in as {context.email or context.user_id}.")
        else:
            _print_ts("[auth] Logged out.")

    # The view subscribes for as long as it runs and detaches on teardown.
    auth_handle = state.gate.on_auth_change(on_auth)

    queue: asyncio.Queue[str | None] = asyncio.Queue()
    _start_stdin_reader(asyncio.get_running_loop(), queue)

    try:
        while True:
            print(">>> ", end="", flush=True)
            raw = await queue.get()
            if raw is None:
                logger.info("Console EOF received, exiting.")
                print()
                break

            user_input = raw.strip()
            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            try:
                reply = await command_registry.handle(state, user_input, emit=_print_ts)
            except Exception:
                logger.exception("Command handler crashed.")
                reply = "Internal error while handling a command."

            if reply is None:
                reply = "Commands start with '/'. Use /help to list available commands."
            _print_ts(reply)
    finally:
        auth_handle.detach()

    logger.info("Console dashboard finished.")
