"""MCP tools for Omi action items (direct writes, never queued)."""

from typing import Annotated, Any

from fastmcp import Context
from pydantic import Field

from omi_sync_mcp.errors import OmiSyncError
from omi_sync_mcp.hubs import format_due_at, pull_tasks_hub
from omi_sync_mcp.server import lifespan_state, mcp
from omi_sync_mcp.state import SyncContext
from omi_sync_mcp.types import ActionItemRecord

_TOOL_ANNOTATIONS = {
    "readOnlyHint": False,
    "destructiveHint": False,
    "idempotentHint": False,
    "openWorldHint": True,
}


def _get_state(ctx: Context) -> SyncContext:
    return lifespan_state(ctx)["sync_ctx"]


def _describe(item: ActionItemRecord, sync_ctx: SyncContext) -> str:
    checkbox = "[x]" if item.completed else "[ ]"
    due = f" (due {format_due_at(item.due_at, sync_ctx.tz)})" if item.due_at else ""
    return f"- {checkbox} {item.description}{due} `{item.id}`"


@mcp.tool(annotations={**_TOOL_ANNOTATIONS, "readOnlyHint": True, "idempotentHint": True})
async def list_action_items(
    ctx: Context,
    completed: Annotated[
        bool | None, Field(description="Filter by completion state; omit for all")
    ] = None,
) -> str:
    """List Omi action items."""
    sync_ctx = _get_state(ctx)
    try:
        items = await sync_ctx.client.get_all_action_items()
    except OmiSyncError as e:
        return f"Failed to load action items: {e}"

    if completed is not None:
        items = [i for i in items if i.completed == completed]
    if not items:
        return "No action items found"

    lines = [f"# Action Items ({len(items)})\n"]
    lines.extend(_describe(i, sync_ctx) for i in items)
    return "\n".join(lines)


@mcp.tool(annotations=_TOOL_ANNOTATIONS)
async def create_action_item(
    description: Annotated[str, Field(description="Task description", min_length=1)],
    ctx: Context,
    due_at: Annotated[
        str | None, Field(description="Due date/time in ISO 8601 (UTC)")
    ] = None,
) -> str:
    """Create a new Omi action item."""
    sync_ctx = _get_state(ctx)
    try:
        item = await sync_ctx.client.create_action_item(description, due_at)
    except OmiSyncError as e:
        return f"Failed to create action item: {e}"
    return f"Created action item:\n{_describe(item, sync_ctx)}"


@mcp.tool(annotations={**_TOOL_ANNOTATIONS, "idempotentHint": True})
async def update_action_item(
    item_id: Annotated[str, Field(description="Action item ID")],
    ctx: Context,
    description: Annotated[str | None, Field(description="New description")] = None,
    completed: Annotated[bool | None, Field(description="Mark completed or pending")] = None,
    due_at: Annotated[
        str | None, Field(description="New due date/time in ISO 8601; empty string clears it")
    ] = None,
) -> str:
    """Update the description, completion state or due date of an action item."""
    sync_ctx = _get_state(ctx)
    updates: dict[str, Any] = {}
    if description is not None:
        updates["description"] = description
    if completed is not None:
        updates["completed"] = completed
    if due_at is not None:
        updates["due_at"] = due_at or None
    if not updates:
        return "Nothing to update"

    try:
        item = await sync_ctx.client.update_action_item(item_id, updates)
    except OmiSyncError as e:
        return f"Failed to update action item '{item_id}': {e}"
    return f"Updated action item:\n{_describe(item, sync_ctx)}"


@mcp.tool(annotations={**_TOOL_ANNOTATIONS, "destructiveHint": True, "idempotentHint": True})
async def delete_action_item(
    item_id: Annotated[str, Field(description="Action item ID")],
    ctx: Context,
) -> str:
    """Delete an Omi action item. This cannot be undone."""
    sync_ctx = _get_state(ctx)
    try:
        await sync_ctx.client.delete_action_item(item_id)
    except OmiSyncError as e:
        return f"Failed to delete action item '{item_id}': {e}"
    return f"Deleted action item '{item_id}'"


@mcp.tool(annotations={**_TOOL_ANNOTATIONS, "idempotentHint": True})
async def sync_tasks_hub(ctx: Context) -> str:
    """Rewrite the Tasks.md backup file from Omi action items."""
    sync_ctx = _get_state(ctx)
    try:
        count = await pull_tasks_hub(sync_ctx)
    except (OmiSyncError, OSError) as e:
        return f"Failed to sync tasks backup: {e}"
    path = f"{sync_ctx.config.folder_path}/{sync_ctx.config.tasks_hub_file}"
    return f"Synced {count} action item(s) to `{path}`"
