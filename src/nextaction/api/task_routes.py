"""REST API routes for task operations."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from nextaction.tools.task_tools import (
    handle_archive_completed,
    handle_claim_master,
    handle_quick_capture,
    handle_release_master,
    handle_request_view,
    handle_set_active_note,
    handle_status,
    handle_task_add_subtask,
    handle_task_get,
    handle_task_list,
    handle_task_move,
    handle_task_set_type,
    handle_task_toggle,
    handle_tasklist,
)


class TaskCaptureBody(BaseModel):
    text: str


class TaskUpdateBody(BaseModel):
    type: str


class TaskMoveBody(BaseModel):
    to_path: str
    before_task: Optional[int] = None
    after_task: Optional[int] = None


class SubtaskBody(BaseModel):
    text: str


class ArchiveBody(BaseModel):
    path: str


class ActivityBody(BaseModel):
    path: Optional[str] = None


def _raise_on_error(result: dict, status_code: int = 404) -> dict:
    if result.get("not_master"):
        raise HTTPException(status_code=409, detail=result["error"])
    if "error" in result:
        raise HTTPException(status_code=status_code, detail=result["error"])
    return result


def register_task_routes(app_router: APIRouter, tasks) -> None:
    """Attach task REST routes that use the shared engine."""

    @app_router.get("/tasks")
    async def list_tasks(type: Optional[str] = Query(None), limit: int = Query(200)):
        try:
            return await handle_task_list(tasks, task_type=type, limit=limit)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.get("/tasklist")
    async def get_tasklist(limit: int = Query(200)):
        return await handle_tasklist(tasks, limit=limit)

    @app_router.get("/tasks/{task_id}")
    async def get_task(task_id: int):
        return _raise_on_error(await handle_task_get(tasks, task_id=task_id))

    @app_router.post("/tasks", status_code=201)
    async def capture_task(body: TaskCaptureBody):
        return _raise_on_error(await handle_quick_capture(tasks, text=body.text), 400)

    @app_router.post("/tasks/{task_id}/toggle")
    async def toggle_task(task_id: int):
        return _raise_on_error(await handle_task_toggle(tasks, task_id=task_id))

    @app_router.patch("/tasks/{task_id}")
    async def update_task(task_id: int, body: TaskUpdateBody):
        try:
            result = await handle_task_set_type(tasks, task_id=task_id, task_type=body.type)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _raise_on_error(result)

    @app_router.post("/tasks/{task_id}/move")
    async def move_task(task_id: int, body: TaskMoveBody):
        return _raise_on_error(await handle_task_move(tasks, task_id=task_id, **body.model_dump()))

    @app_router.post("/tasks/{task_id}/subtasks", status_code=201)
    async def add_subtask(task_id: int, body: SubtaskBody):
        return _raise_on_error(await handle_task_add_subtask(tasks, task_id=task_id, text=body.text))

    @app_router.post("/notes/archive")
    async def archive_completed(body: ArchiveBody):
        return _raise_on_error(await handle_archive_completed(tasks, path=body.path))

    @app_router.put("/activity")
    async def set_activity(body: ActivityBody):
        return await handle_set_active_note(tasks, path=body.path)

    @app_router.post("/replica/claim")
    async def claim_master():
        return await handle_claim_master(tasks)

    @app_router.post("/replica/release")
    async def release_master():
        return await handle_release_master(tasks)

    @app_router.post("/view")
    async def request_view():
        return await handle_request_view(tasks)

    @app_router.get("/status")
    async def get_status():
        return await handle_status(tasks)
