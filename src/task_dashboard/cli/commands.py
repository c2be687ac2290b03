# src/task_dashboard/cli/commands.py

from __future__ import annotations

import logging
import shlex
from collections.abc import Awaitable, Callable

from ..core.errors import AuthError, DashboardError, RemoteWriteError, ValidationError
from ..core.forms import validate_record
from ..core.models import CacheEntry, Collection, Project, QueryStatus, SessionStatus, Task
from ..core.state import AppState

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Slash-command registry used by the console dashboard (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Dashboard errors (validation, auth, remote write) become the reply text.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError as e:
            return f"Could not parse command: {e}"
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return await handler(state, args, emit)
        except DashboardError as e:
            logger.debug("command /%s rejected: %s", name, e)
            return format_error(e)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def format_error(err: DashboardError) -> str:
    if isinstance(err, ValidationError):
        lines = ["Invalid input:"]
        for name, message in err.field_errors.items():
            lines.append(f"  {name}: {message}" if name != "_" else f"  {message}")
        return "\n".join(lines)
    if isinstance(err, AuthError):
        return f"Auth error: {err}"
    if isinstance(err, RemoteWriteError):
        return f"Save failed: {err}"
    return f"Error: {err}"


# ---- rendering ----


def _session_banner(state: AppState) -> str | None:
    session = state.gate.get_session()
    if session.status == SessionStatus.LOADING:
        return "Loading session..."
    if not session.is_active:
        return "Not logged in. Use /login <email> <password> or /signup <email> <password>."
    return None


def _read_failed(entry: CacheEntry) -> str:
    return f"Failed to load {entry.identity.value}: {entry.error}. Use /refresh to retry."


def render_projects(entry: CacheEntry) -> str:
    if entry.status == QueryStatus.ERROR:
        return _read_failed(entry)
    projects = [p for p in entry.data if isinstance(p, Project)]
    if not projects:
        return "No projects found."
    lines = ["Your Projects:"]
    for i, p in enumerate(projects, start=1):
        lines.append(f"  {i}. {p.name} ({p.id})")
    return "\n".join(lines)


def render_tasks(tasks_entry: CacheEntry, projects_entry: CacheEntry) -> str:
    if tasks_entry.status == QueryStatus.ERROR:
        return _read_failed(tasks_entry)
    tasks = [t for t in tasks_entry.data if isinstance(t, Task)]
    if not tasks:
        return "No tasks found."

    names = {p.id: p.name for p in projects_entry.data if isinstance(p, Project)}
    lines = ["Your Tasks:"]
    for i, t in enumerate(tasks, start=1):
        done = "x" if t.completed else " "
        lines.append(f"  {i}. [{done}] {t.name} ({t.id})")
        if t.description:
            lines.append(f"       {t.description}")
        project_name = names.get(t.project_id)
        if project_name:
            lines.append(f"       Project: {project_name}")
    return "\n".join(lines)


# ---- lookups ----


async def _resolve_project_id(state: AppState, ref: str) -> str:
    """Accept a project id, a list number (as shown by /projects) or an exact name."""
    entry = await state.queries.fetch(Collection.PROJECTS)
    projects = [p for p in entry.data if isinstance(p, Project)]
    if ref.isdigit() and 1 <= int(ref) <= len(projects):
        return projects[int(ref) - 1].id
    for p in projects:
        if p.id == ref or p.name.lower() == ref.lower():
            return p.id
    # Unknown locally: let the store enforce the reference.
    return ref


async def _resolve_task(state: AppState, ref: str) -> Task | None:
    entry = await state.queries.fetch(Collection.TASKS)
    tasks = [t for t in entry.data if isinstance(t, Task)]
    if ref.isdigit() and 1 <= int(ref) <= len(tasks):
        return tasks[int(ref) - 1]
    for t in tasks:
        if t.id == ref:
            return t
    return None


def _parse_assignments(args: list[str]) -> dict[str, str]:
    """name=... description=... project=... -> field dict."""
    out: dict[str, str] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        if not sep:
            raise ValidationError({"_": f"Expected field=value, got {arg!r}"})
        key = key.strip().lower()
        out["project_id" if key == "project" else key] = value
    return out


# ---- handlers ----


async def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    session = state.gate.get_session()
    who = session.email or session.user_id or "-"
    lines = [
        "Status:",
        f"  Backend: {state.backend.__class__.__name__}",
        f"  Session: {session.status.value} (user: {who})",
    ]
    for ident in Collection:
        entry = state.queries.peek(ident)
        stale = ", stale" if entry.stale else ""
        lines.append(f"  {ident.value}: {entry.status.value}{stale}, {len(entry.data)} rows")
    stats = state.queries.stats()
    lines.append("  Reads: " + ", ".join(f"{k}={v}" for k, v in stats.items()))
    return "\n".join(lines)


async def cmd_signup(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) != 2:
        return "Usage: /signup <email> <password>"
    return await state.auth.sign_up(args[0], args[1])


async def cmd_login(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) != 2:
        return "Usage: /login <email> <password>"
    message = await state.auth.sign_in(args[0], args[1])
    if emit is not None:
        emit(f"{message} Loading projects and tasks...")
    await state.queries.drain()
    return message


async def cmd_logout(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    state.editing_task_id = None
    return await state.auth.sign_out()


async def cmd_projects(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    banner = _session_banner(state)
    if banner:
        return banner
    return render_projects(await state.queries.fetch(Collection.PROJECTS))


async def cmd_tasks(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    banner = _session_banner(state)
    if banner:
        return banner
    projects = await state.queries.fetch(Collection.PROJECTS)
    tasks = await state.queries.fetch(Collection.TASKS)
    return render_tasks(tasks, projects)


async def cmd_add_project(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/add-project <name>"""
    name = " ".join(args)
    await state.mutations.create(Collection.PROJECTS, {"name": name})
    return render_projects(state.queries.peek(Collection.PROJECTS))


async def cmd_add_task(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/add-task <name> <project> [description]"""
    name = args[0] if len(args) > 0 else ""
    project_ref = args[1] if len(args) > 1 else ""
    description = " ".join(args[2:])

    # Fail on empty fields before any lookup touches the backend.
    validate_record(Collection.TASKS, {"name": name, "project_id": project_ref})
    project_id = await _resolve_project_id(state, project_ref)
    await state.mutations.create(
        Collection.TASKS,
        {"name": name, "description": description, "project_id": project_id},
    )
    return render_tasks(state.queries.peek(Collection.TASKS), state.queries.peek(Collection.PROJECTS))


async def cmd_edit_task(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /edit-task <task> field=value ...   -> update name/description/project
    /edit-task <task>                   -> open the task in the edit form (shows current values)
    /edit-task field=value ...          -> submit the form of the task currently open
    /edit-task cancel                   -> leave edit mode
    """
    if not args:
        return "Usage: /edit-task <task #|id> [name=...] [description=...] [project=...] | /edit-task cancel"

    if args[0].lower() == "cancel":
        state.editing_task_id = None
        return "Edit cancelled."

    if "=" in args[0]:
        # No task reference: submit against the open edit form.
        if state.editing_task_id is None:
            return "No task is open for editing. Use /edit-task <task #|id> first."
        ref, assignments = state.editing_task_id, args
    else:
        ref, assignments = args[0], args[1:]

    task = await _resolve_task(state, ref)
    if task is None:
        if ref == state.editing_task_id:
            state.editing_task_id = None
        return f"Task not found: {ref}"

    if not assignments:
        state.editing_task_id = task.id
        return (
            f"Editing task {task.id}:\n"
            f"  name={task.name}\n"
            f"  description={task.description or ''}\n"
            f"  project={task.project_id}\n"
            "Submit with /edit-task field=value ... or /edit-task cancel."
        )

    changes = _parse_assignments(assignments)
    if "project_id" in changes and changes["project_id"]:
        changes["project_id"] = await _resolve_project_id(state, changes["project_id"])

    def _leave_edit_mode() -> None:
        state.editing_task_id = None

    await state.mutations.update(Collection.TASKS, task.id, changes, on_success=_leave_edit_mode)
    return render_tasks(state.queries.peek(Collection.TASKS), state.queries.peek(Collection.PROJECTS))


async def cmd_delete_task(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) != 1:
        return "Usage: /delete-task <task #|id>"
    task = await _resolve_task(state, args[0])
    if task is None:
        return f"Task not found: {args[0]}"
    await state.mutations.delete(Collection.TASKS, task.id)
    if state.editing_task_id == task.id:
        state.editing_task_id = None
    return render_tasks(state.queries.peek(Collection.TASKS), state.queries.peek(Collection.PROJECTS))


async def cmd_refresh(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    banner = _session_banner(state)
    if banner:
        return banner
    try:
        targets = [Collection.parse(a) for a in args] if args else list(Collection)
    except ValueError as e:
        return f"{e}. Usage: /refresh [projects|tasks]"
    lines: list[str] = []
    for ident in targets:
        if emit is not None:
            emit(f"Refreshing {ident.value}...")
        state.queries.invalidate(ident)
        entry = await state.queries.fetch(ident)
        if entry.status == QueryStatus.ERROR:
            lines.append(_read_failed(entry))
        else:
            lines.append(f"Refreshed {ident.value}: {len(entry.data)} rows.")
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show backend, session and cache status.")
registry.register("signup", cmd_signup, help_text="Create an account: /signup <email> <password>.")
registry.register("login", cmd_login, help_text="Log in: /login <email> <password>.")
registry.register("logout", cmd_logout, help_text="Log out.")
registry.register("projects", cmd_projects, help_text="List projects.")
registry.register("tasks", cmd_tasks, help_text="List tasks with their project.")
registry.register("add-project", cmd_add_project, help_text="Create a project: /add-project <name>.")
registry.register(
    "add-task",
    cmd_add_task,
    help_text='Create a task: /add-task "<name>" <project #|id|name> [description].',
)
registry.register(
    "edit-task",
    cmd_edit_task,
    help_text="Edit a task: /edit-task <task #|id> name=... description=... project=...",
)
registry.register("delete-task", cmd_delete_task, help_text="Delete a task: /delete-task <task #|id>.")
registry.register(
    "refresh", cmd_refresh, help_text="Re-read from the backend: /refresh [projects|tasks]."
)
