"""
nextaction server entry point.

Startup sequence:
1. Read configuration from the environment and the vault settings file
2. Load the task database
3. Reconcile every note in the vault
4. Start the write-back queue timer and the note watcher
5. Register all MCP tools
6. Serve the REST API (if API_ENABLED) and the MCP server (stdio transport)

Everything runs on a single asyncio event loop.
"""

import asyncio
import logging
import os
import sys

from mcp.server.fastmcp import FastMCP

from nextaction.config import Settings
from nextaction.engine.replica import ReplicaState, UserActivity
from nextaction.engine.tasks import Tasks
from nextaction.events.bus import EventBus
from nextaction.store.note_store import NoteStore
from nextaction.tools import register_task_tools
from nextaction.watcher.note_watcher import NoteWatcher

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    stream=sys.stderr,
)
log = logging.getLogger(__name__)


async def _serve_api(tasks: Tasks, port: int) -> None:
    import uvicorn

    from nextaction.api.app import create_app

    app = create_app(tasks)
    log.info("Starting REST API on port %d", port)
    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=port, log_level="warning"))
    await server.serve()


def build_engine(settings: Settings) -> Tasks:
    """Wire up the engine and its collaborators."""
    bus = EventBus()
    store = NoteStore(settings.vault_root, settings.exclude_dirs)
    replica = ReplicaState(settings)
    activity = UserActivity(settings.intervals.user_activity)
    return Tasks(settings, store, bus, replica, activity)


async def run(settings: Settings) -> None:
    tasks = build_engine(settings)
    await tasks.load()

    log.info("Scanning vault...")
    changed = await tasks.process_all_notes()
    log.info("Vault scan complete (%d notes changed)", changed)

    watcher = NoteWatcher(tasks)
    watcher.start()

    mcp = FastMCP("nextaction")
    register_task_tools(mcp, tasks)

    services = [mcp.run_stdio_async()]
    if settings.api_enabled:
        services.append(_serve_api(tasks, settings.api_port))

    log.info("Starting nextaction server (device %s)", settings.replica.device_id)
    try:
        await asyncio.gather(*services)
    finally:
        await watcher.stop()
        await tasks.unload()
        tasks.bus.clear()


def main() -> None:
    if not os.environ.get("VAULT_ROOT"):
        log.error("VAULT_ROOT environment variable is not set")
        sys.exit(1)

    settings = Settings.from_env()

    vault_root = settings.vault_root
    if not vault_root.is_dir():
        log.error("VAULT_ROOT does not exist or is not a directory: %s", vault_root)
        sys.exit(1)

    log.info("Vault root: %s", vault_root)
    log.info("Excluded dirs: %s", settings.exclude_dirs)
    log.info("Database: %s", settings.db_path)

    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
