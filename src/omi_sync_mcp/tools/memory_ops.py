"""MCP tools for Omi memories."""

from typing import Annotated, Any, Literal

from fastmcp import Context
from pydantic import Field

from omi_sync_mcp.errors import OmiSyncError
from omi_sync_mcp.hubs import pull_memories_hub
from omi_sync_mcp.markdown import MEMORY_CATEGORY_EMOJI
from omi_sync_mcp.server import lifespan_state, mcp
from omi_sync_mcp.state import SyncContext
from omi_sync_mcp.timezone import format_short_date
from omi_sync_mcp.types import MemoryRecord

MAX_MEMORY_CHARS = 500

_TOOL_ANNOTATIONS = {
    "readOnlyHint": False,
    "destructiveHint": False,
    "idempotentHint": False,
    "openWorldHint": True,
}

Visibility = Literal["public", "private"]


def _get_state(ctx: Context) -> SyncContext:
    return lifespan_state(ctx)["sync_ctx"]


def _describe(memory: MemoryRecord, sync_ctx: SyncContext) -> str:
    category = memory.category or "other"
    emoji = MEMORY_CATEGORY_EMOJI.get(category, "📌")
    date = format_short_date(memory.created_at, sync_ctx.tz)
    return f"- {emoji} {memory.content} *({category}, {date})* `{memory.id}`"


@mcp.tool(annotations={**_TOOL_ANNOTATIONS, "readOnlyHint": True, "idempotentHint": True})
async def list_memories(
    ctx: Context,
    category: Annotated[str | None, Field(description="Only show this category")] = None,
    limit: Annotated[int, Field(description="Maximum number of results", ge=1, le=500)] = 50,
) -> str:
    """List Omi memories, newest first."""
    sync_ctx = _get_state(ctx)
    try:
        memories = await sync_ctx.client.get_all_memories(sync_ctx.config.memories_fetch_limit)
    except OmiSyncError as e:
        return f"Failed to load memories: {e}"

    if category:
        memories = [m for m in memories if (m.category or "other") == category]
    if not memories:
        return "No memories found"

    memories.sort(key=lambda m: m.created_at, reverse=True)
    lines = [f"# Memories ({len(memories)})\n"]
    lines.extend(_describe(m, sync_ctx) for m in memories[:limit])
    return "\n".join(lines)


@mcp.tool(annotations=_TOOL_ANNOTATIONS)
async def create_memory(
    content: Annotated[
        str, Field(description="Memory content", min_length=1, max_length=MAX_MEMORY_CHARS)
    ],
    ctx: Context,
    category: Annotated[str | None, Field(description="Memory category")] = None,
    visibility: Annotated[Visibility | None, Field(description="Memory visibility")] = None,
    tags: Annotated[list[str] | None, Field(description="Tags")] = None,
) -> str:
    """Create a new Omi memory."""
    sync_ctx = _get_state(ctx)
    try:
        memory = await sync_ctx.client.create_memory(content.strip(), category, visibility, tags)
    except OmiSyncError as e:
        return f"Failed to create memory: {e}"
    return f"Created memory:\n{_describe(memory, sync_ctx)}"


@mcp.tool(annotations={**_TOOL_ANNOTATIONS, "idempotentHint": True})
async def update_memory(
    memory_id: Annotated[str, Field(description="Memory ID")],
    ctx: Context,
    content: Annotated[
        str | None,
        Field(description="New content", min_length=1, max_length=MAX_MEMORY_CHARS),
    ] = None,
    category: Annotated[str | None, Field(description="New category")] = None,
    visibility: Annotated[Visibility | None, Field(description="New visibility")] = None,
) -> str:
    """Update the content, category or visibility of a memory."""
    sync_ctx = _get_state(ctx)
    updates: dict[str, Any] = {}
    if content is not None:
        updates["content"] = content.strip()
    if category is not None:
        updates["category"] = category
    if visibility is not None:
        updates["visibility"] = visibility
    if not updates:
        return "Nothing to update"

    try:
        memory = await sync_ctx.client.update_memory(memory_id, updates)
    except OmiSyncError as e:
        return f"Failed to update memory '{memory_id}': {e}"
    return f"Updated memory:\n{_describe(memory, sync_ctx)}"


@mcp.tool(annotations={**_TOOL_ANNOTATIONS, "destructiveHint": True, "idempotentHint": True})
async def delete_memory(
    memory_id: Annotated[str, Field(description="Memory ID")],
    ctx: Context,
) -> str:
    """Delete an Omi memory. This cannot be undone."""
    sync_ctx = _get_state(ctx)
    try:
        await sync_ctx.client.delete_memory(memory_id)
    except OmiSyncError as e:
        return f"Failed to delete memory '{memory_id}': {e}"
    return f"Deleted memory '{memory_id}'"


@mcp.tool(annotations={**_TOOL_ANNOTATIONS, "idempotentHint": True})
async def sync_memories_hub(ctx: Context) -> str:
    """Rewrite the Memories.md backup file from Omi memories."""
    sync_ctx = _get_state(ctx)
    try:
        count = await pull_memories_hub(sync_ctx)
    except (OmiSyncError, OSError) as e:
        return f"Failed to sync memories backup: {e}"
    path = f"{sync_ctx.config.folder_path}/{sync_ctx.config.memories_hub_file}"
    return f"Synced {count} memories to `{path}`"
