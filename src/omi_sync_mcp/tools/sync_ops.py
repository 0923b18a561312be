"""MCP tools for syncing conversations into the vault."""

from typing import Annotated

from fastmcp import Context
from pydantic import Field

from omi_sync_mcp.errors import OmiSyncError, SyncInProgressError, SyncValidationError
from omi_sync_mcp.history import format_history
from omi_sync_mcp.server import lifespan_state, mcp
from omi_sync_mcp.state import SyncContext
from omi_sync_mcp.sync import SyncCoordinator
from omi_sync_mcp.timezone import format_local_time
from omi_sync_mcp.types import SyncResult

_TOOL_ANNOTATIONS = {
    "readOnlyHint": False,
    "destructiveHint": False,
    "idempotentHint": True,
    "openWorldHint": True,
}

_READ_ANNOTATIONS = {
    "readOnlyHint": True,
    "destructiveHint": False,
    "idempotentHint": True,
    "openWorldHint": False,
}


def _get_state(ctx: Context) -> tuple[SyncContext, SyncCoordinator]:
    lc = lifespan_state(ctx)
    return lc["sync_ctx"], lc["coordinator"]


def _format_result(heading: str, result: SyncResult) -> str:
    lines = [
        f"# {heading}\n",
        f"- **Conversations synced:** {result.records_synced}",
        f"- **Days written:** {len(result.days_written)}",
        f"- **API calls:** {result.api_calls}",
    ]
    if result.stopped_early:
        lines.append("- **Stopped early:** reached already-synced conversations")
    if result.cancelled:
        lines.append("- **Cancelled:** partial results were kept")
    if result.days_written:
        lines.append(f"- **Dates:** {', '.join(result.days_written)}")
    return "\n".join(lines)


def _format_failure(e: Exception) -> str:
    if isinstance(e, SyncInProgressError):
        return "A conversation sync is already running. Try again when it finishes."
    if isinstance(e, SyncValidationError):
        return f"Sync rejected: {e}"
    return f"Sync failed: {e}. Check logs for details."


@mcp.tool(annotations=_TOOL_ANNOTATIONS)
async def sync_conversations(ctx: Context) -> str:
    """Sync new and updated Omi conversations since the last run."""
    _sync_ctx, coordinator = _get_state(ctx)
    try:
        result = await coordinator.sync()
    except (OmiSyncError, OSError) as e:
        return _format_failure(e)
    if result.records_synced == 0:
        return "No new conversations to sync"
    return _format_result("Sync Complete", result)


@mcp.tool(annotations={**_TOOL_ANNOTATIONS, "idempotentHint": False})
async def full_resync(ctx: Context) -> str:
    """Discard the sync frontier and re-import every conversation from the start date."""
    _sync_ctx, coordinator = _get_state(ctx)
    try:
        result = await coordinator.sync(full_resync=True)
    except (OmiSyncError, OSError) as e:
        return _format_failure(e)
    return _format_result("Full Resync Complete", result)


@mcp.tool(annotations=_TOOL_ANNOTATIONS)
async def resync_dates(
    start_date: Annotated[str, Field(description="First local date to resync (YYYY-MM-DD)")],
    ctx: Context,
    end_date: Annotated[
        str | None,
        Field(description="Last local date to resync, inclusive (YYYY-MM-DD). Defaults to start_date."),
    ] = None,
) -> str:
    """Re-fetch and rewrite a single day or an inclusive date range."""
    _sync_ctx, coordinator = _get_state(ctx)
    try:
        result = await coordinator.resync_range(start_date, end_date)
    except (OmiSyncError, OSError) as e:
        return _format_failure(e)
    return _format_result("Resync Complete", result)


@mcp.tool(annotations=_READ_ANNOTATIONS)
def sync_status(
    ctx: Context,
    history_limit: Annotated[
        int, Field(description="Number of recent history entries to show", ge=0, le=100)
    ] = 10,
) -> str:
    """Show the sync frontier, stored conversation counts and recent sync history."""
    sync_ctx, coordinator = _get_state(ctx)
    state = sync_ctx.state

    last_sync = (
        format_local_time(state.last_sync_timestamp, sync_ctx.tz)
        if state.last_sync_timestamp
        else "never"
    )
    dates = state.dates()
    lines = [
        "# Omi Sync Status\n",
        f"**Phase:** {coordinator.phase.value}",
        f"**Last sync:** {last_sync}",
        f"**Conversations synced:** {len(state.synced)}",
        f"**Days:** {len(dates)}",
    ]
    if dates:
        lines.append(f"**Range:** {dates[0]} → {dates[-1]}")
    lines.append(f"**Folder:** {sync_ctx.config.folder_path}")

    recent = format_history(state.history)[:history_limit]
    if recent:
        lines.append("\n## Recent Activity\n")
        lines.extend(recent)
    return "\n".join(lines)


@mcp.tool(annotations={**_READ_ANNOTATIONS, "readOnlyHint": False})
def cancel_sync(ctx: Context) -> str:
    """Stop the running conversation sync after its current page.

    Conversations already written stay in the vault; the sync frontier does
    not advance.
    """
    _sync_ctx, coordinator = _get_state(ctx)
    if not coordinator.cancel():
        return "No conversation sync is running"
    return "Cancellation requested. The sync stops before its next page request."
