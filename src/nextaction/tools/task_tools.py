"""
Task tool handlers.

The handle_* coroutines hold the logic and return plain dicts (or lists of
dicts). Both the MCP tools registered below and the REST routes in
api/task_routes.py call them, so the two surfaces always agree.

A handler reports a failure by returning {"error": "..."} rather than
raising; the REST layer turns that into an HTTP error and the MCP layer
passes it through as JSON.
"""

import json
import logging
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from nextaction.engine.task import Task
from nextaction.engine.tasks import Tasks
from nextaction.models.task import TaskType

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _task_to_dict(task: Task, include_children: bool = False) -> dict:
    d = task.data.to_dict()
    d["markdown"] = task.generate_markdown_task()
    if include_children:
        d["children"] = [_task_to_dict(child) for child in task.descendants]
        d["ancestors"] = [ancestor.id for ancestor in task.ancestors]
    return d


def _parse_type(value: Optional[str]) -> Optional[TaskType]:
    """Accept a type by value ("next-action") or by name ("NEXT_ACTION")."""
    if not value:
        return None
    for task_type in TaskType:
        if value in (task_type.value, task_type.name, task_type.name.lower()):
            return task_type
    raise ValueError(f"Unknown task type: {value!r}. Expected one of {[t.value for t in TaskType]}")


def _not_found(task_id: int) -> dict:
    return {"error": f"Task {task_id} not found"}


def _get_open_task(tasks: Tasks, task_id: int) -> Optional[Task]:
    task = tasks.get_task_by_id(task_id)
    if not task.valid() or task.data.orphaned:
        return None
    return task


def _require_master(tasks: Tasks) -> Optional[dict]:
    if tasks.replica.is_master():
        return None
    return {
        "error": f"Replica {tasks.replica.device_id} is not the master ({tasks.replica.master_id})",
        "not_master": True,
    }


# ---------------------------------------------------------------------------
# Handler functions
# ---------------------------------------------------------------------------


async def handle_task_list(tasks: Tasks, task_type: Optional[str] = None, limit: int = 200) -> List[dict]:
    parsed = _parse_type(task_type)
    return [_task_to_dict(task) for task in tasks.get_tasks(parsed)[:limit]]


async def handle_tasklist(tasks: Tasks, limit: int = 200) -> List[dict]:
    return [_task_to_dict(task) for task in tasks.get_tasklist()[:limit]]


async def handle_task_get(tasks: Tasks, task_id: int) -> dict:
    task = tasks.get_task_by_id(task_id)
    if not task.valid():
        return _not_found(task_id)
    return _task_to_dict(task, include_children=True)


async def handle_quick_capture(tasks: Tasks, text: str) -> dict:
    """Append a new task built from free text to the default note."""
    error = _require_master(tasks)
    if error:
        return error
    task = await tasks.quick_capture(text)
    if task is None:
        return {"error": "Task text is empty"}
    return _task_to_dict(task)


async def handle_task_toggle(tasks: Tasks, task_id: int) -> dict:
    error = _require_master(tasks)
    if error:
        return error
    task = _get_open_task(tasks, task_id)
    if task is None:
        return _not_found(task_id)
    task.toggle()
    return _task_to_dict(task)


async def handle_task_set_type(tasks: Tasks, task_id: int, task_type: str) -> dict:
    error = _require_master(tasks)
    if error:
        return error
    parsed = _parse_type(task_type)
    if parsed is None:
        raise ValueError("A task type is required")
    task = _get_open_task(tasks, task_id)
    if task is None:
        return _not_found(task_id)
    task.set_as(parsed)
    return _task_to_dict(task)


async def handle_task_move(
    tasks: Tasks,
    task_id: int,
    to_path: str,
    before_task: Optional[int] = None,
    after_task: Optional[int] = None,
) -> dict:
    error = _require_master(tasks)
    if error:
        return error
    task = _get_open_task(tasks, task_id)
    if task is None:
        return _not_found(task_id)
    if not await task.move(to_path, before_task=before_task, after_task=after_task):
        return {"error": f"Unable to move task {task_id} to {to_path}: note not found"}
    return _task_to_dict(task)


async def handle_task_add_subtask(tasks: Tasks, task_id: int, text: str) -> dict:
    error = _require_master(tasks)
    if error:
        return error
    task = _get_open_task(tasks, task_id)
    if task is None:
        return _not_found(task_id)
    subtask = await task.add_subtask(text)
    if subtask is None:
        return {"error": f"Unable to add a subtask to task {task_id}"}
    return _task_to_dict(subtask)


async def handle_archive_completed(tasks: Tasks, path: str) -> dict:
    error = _require_master(tasks)
    if error:
        return error
    if not await tasks.store.exists(path):
        return {"error": f"Note {path} not found"}
    archived = await tasks.archive_completed(path)
    return {"path": path, "archive_note": tasks.settings.archive_note, "archived": archived}


async def handle_claim_master(tasks: Tasks) -> dict:
    tasks.replica.claim()
    return _replica_status(tasks)


async def handle_release_master(tasks: Tasks) -> dict:
    tasks.replica.release()
    return _replica_status(tasks)


def _replica_status(tasks: Tasks) -> dict:
    return {
        "device_id": tasks.replica.device_id,
        "master_id": tasks.replica.master_id,
        "is_master": tasks.replica.is_master(),
    }


async def handle_set_active_note(tasks: Tasks, path: Optional[str] = None) -> dict:
    """Record user activity, optionally in the note being edited."""
    tasks.activity.touch(path)
    return {"active": tasks.activity.is_active(), "active_note": tasks.activity.active_note}


async def handle_request_view(tasks: Tasks) -> dict:
    tasks.request_view()
    return {"requested": True}


async def handle_status(tasks: Tasks) -> dict:
    return tasks.status()


# ---------------------------------------------------------------------------
# MCP tool registration (thin wrappers)
# ---------------------------------------------------------------------------


def register_task_tools(mcp: FastMCP, tasks: Tasks) -> None:
    """Register all task-related MCP tools onto the FastMCP instance."""

    @mcp.tool()
    async def task_list(task_type: Optional[str] = None, limit: int = 200) -> str:
        """
        List open tasks that live in a note, oldest first.

        Args:
            task_type: Only tasks of this type: "inbox", "next-action", "project",
                       "waiting-on", "someday" or "dependent". Omit for all.
            limit: Maximum number of results (default 200)

        Returns:
            JSON array of task objects
        """
        try:
            return json.dumps(await handle_task_list(tasks, task_type=task_type, limit=limit), indent=2)
        except ValueError as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    async def tasklist(limit: int = 200) -> str:
        """
        The aggregated next-actions list.

        Due and overdue tasks come first, then inbox items, projects with no
        open subtask, next actions, and waiting-on tasks. Tasks scheduled after
        today are left out.

        Returns:
            JSON array of task objects
        """
        return json.dumps(await handle_tasklist(tasks, limit=limit), indent=2)

    @mcp.tool()
    async def task_get(task_id: int) -> str:
        """
        Get a single task by ID, with its subtasks and ancestor ids.

        Args:
            task_id: The numeric task id (the digits of its ^na123 block anchor)
        """
        return json.dumps(await handle_task_get(tasks, task_id=task_id), indent=2)

    @mcp.tool()
    async def task_capture(text: str) -> str:
        """
        Quick-capture a task into the default note.

        Type signifiers (e.g. ➡️ or #next-action) and dates (📅 2026-03-01,
        $tomorrow, $friday) in the text are recognised.

        Args:
            text: Task text
        """
        return json.dumps(await handle_quick_capture(tasks, text=text), indent=2)

    @mcp.tool()
    async def task_toggle(task_id: int) -> str:
        """Toggle a task between open and completed."""
        return json.dumps(await handle_task_toggle(tasks, task_id=task_id), indent=2)

    @mcp.tool()
    async def task_set_type(task_id: int, task_type: str) -> str:
        """
        Change the type of a task.

        Args:
            task_id: The numeric task id
            task_type: "inbox", "next-action", "project", "waiting-on", "someday" or "dependent"
        """
        try:
            return json.dumps(await handle_task_set_type(tasks, task_id=task_id, task_type=task_type), indent=2)
        except ValueError as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    async def task_move(
        task_id: int,
        to_path: str,
        before_task: Optional[int] = None,
        after_task: Optional[int] = None,
    ) -> str:
        """
        Move a task line to another note.

        Args:
            task_id: The task to move
            to_path: Vault-relative path of the target note (must exist)
            before_task: Place the line immediately before this task
            after_task: Place the line immediately after this task
        """
        return json.dumps(
            await handle_task_move(tasks, task_id=task_id, to_path=to_path, before_task=before_task, after_task=after_task),
            indent=2,
        )

    @mcp.tool()
    async def task_add_subtask(task_id: int, text: str) -> str:
        """Add a subtask after the last existing subtask of a task."""
        return json.dumps(await handle_task_add_subtask(tasks, task_id=task_id, text=text), indent=2)

    @mcp.tool()
    async def archive_completed(path: str) -> str:
        """Move every completed task line of a note to the archive note."""
        return json.dumps(await handle_archive_completed(tasks, path=path), indent=2)

    @mcp.tool()
    async def replica_claim() -> str:
        """Elect this replica as the single writer."""
        return json.dumps(await handle_claim_master(tasks), indent=2)

    @mcp.tool()
    async def replica_release() -> str:
        """Give up mastership held by this replica."""
        return json.dumps(await handle_release_master(tasks), indent=2)

    @mcp.tool()
    async def set_active_note(path: Optional[str] = None) -> str:
        """
        Record user activity on this replica.

        While a note is active, reconciliation and write-back leave it alone.

        Args:
            path: Vault-relative path of the note being edited; "" clears it
        """
        return json.dumps(await handle_set_active_note(tasks, path=path), indent=2)

    @mcp.tool()
    async def request_view() -> str:
        """Ask connected clients to show the task list."""
        return json.dumps(await handle_request_view(tasks), indent=2)

    @mcp.tool()
    async def status() -> str:
        """
        Show engine statistics.

        Returns:
            JSON with task counts, pending work, and replica state
        """
        return json.dumps(await handle_status(tasks), indent=2)
