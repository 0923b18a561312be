"""Omi Sync MCP Server (FastMCP)."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastmcp import Context, FastMCP

from .api import OmiClient
from .config import Config
from .errors import SyncInProgressError
from .hubs import pull_tasks_hub
from .scheduler import PeriodicTask
from .state import SyncContext
from .sync import SyncCoordinator

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _build_client(config: Config) -> OmiClient:
    return OmiClient.from_config(config)


async def _auto_sync(coordinator: SyncCoordinator) -> None:
    try:
        await coordinator.sync(action="auto-sync")
    except SyncInProgressError:
        logger.info("Skipping auto-sync: a sync is already running")


# ---------------------------------------------------------------------------
# Lifespan: build the sync context and arm background timers
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(server: FastMCP):
    config = Config()
    logging.basicConfig(level=config.log_level.upper(), format=LOG_FORMAT)

    sync_ctx = SyncContext.from_config(config, client=_build_client(config))
    coordinator = SyncCoordinator(sync_ctx)

    scheduler = AsyncIOScheduler()
    scheduler.start()
    auto_sync = PeriodicTask(
        "conversation auto-sync", lambda: _auto_sync(coordinator), scheduler
    )
    tasks_hub = PeriodicTask(
        "tasks hub sync", lambda: pull_tasks_hub(sync_ctx, "auto-sync"), scheduler
    )
    auto_sync.start(config.auto_sync_minutes * 60)
    if config.enable_tasks_hub:
        tasks_hub.start(config.tasks_sync_minutes * 60)

    try:
        yield {
            "config": config,
            "sync_ctx": sync_ctx,
            "coordinator": coordinator,
            "timers": {"auto_sync": auto_sync, "tasks_hub": tasks_hub},
        }
    finally:
        scheduler.shutdown(wait=False)
        await sync_ctx.client.aclose()


def lifespan_state(ctx: Context) -> dict[str, Any]:
    return ctx.request_context.lifespan_context


# ---------------------------------------------------------------------------
# Server instance
# ---------------------------------------------------------------------------

mcp = FastMCP("omi-sync", lifespan=lifespan)

# Importing tool modules triggers @mcp.tool() registration
from omi_sync_mcp.tools import memory_ops, sync_ops, task_ops  # noqa: E402, F401

# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    mcp.run()
