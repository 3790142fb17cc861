"""FastAPI application factory for the task REST API."""

from fastapi import APIRouter, FastAPI

from nextaction.api.task_routes import register_task_routes


def create_app(tasks) -> FastAPI:
    """Build and return a FastAPI app wired to the given Tasks engine."""
    app = FastAPI(title="nextaction", docs_url="/api/docs", openapi_url="/api/openapi.json")

    api = APIRouter(prefix="/api")
    register_task_routes(api, tasks)
    app.include_router(api)

    return app
