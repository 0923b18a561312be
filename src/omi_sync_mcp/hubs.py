"""Read-only markdown backups of Omi action items and memories."""

import logging
from collections import defaultdict
from datetime import datetime, tzinfo
from typing import Literal

from .errors import OmiSyncError
from .history import append_history
from .markdown import MEMORY_CATEGORY_EMOJI, slugify
from .state import SyncContext
from .timezone import convert_to_local, format_short_date, now_utc
from .types import ActionItemRecord, HistoryAction, MemoryRecord, SyncHistoryEntry

logger = logging.getLogger(__name__)


def format_due_at(due_at: datetime, tz: tzinfo) -> str:
    """Local due date; the time is included only when it is not midnight."""
    local = convert_to_local(due_at, tz)
    if local.hour == 0 and local.minute == 0:
        return local.strftime("%Y-%m-%d")
    hour = local.hour % 12 or 12
    return f"{local:%Y-%m-%d} {hour}:{local:%M} {local:%p}"


def _task_line(item: ActionItemRecord, tz: tzinfo) -> str:
    checkbox = "[x]" if item.completed else "[ ]"
    line = f"- {checkbox} {item.description}"
    if item.due_at:
        line += f" 📅 {format_due_at(item.due_at, tz)}"
    return f"{line} %%id:{item.id}%%"


def render_tasks_markdown(items: list[ActionItemRecord], tz: tzinfo) -> str:
    lines = [
        "# Omi Tasks",
        "",
        "> This file is auto-generated for backup/search. Use the Omi tools to edit tasks.",
        "",
    ]
    pending = sorted(
        (i for i in items if not i.completed), key=lambda i: i.created_at, reverse=True
    )
    completed = sorted(
        (i for i in items if i.completed), key=lambda i: i.completed_at or i.created_at
    )

    if pending:
        lines += ["## ⏳ Pending", ""]
        lines.extend(_task_line(i, tz) for i in pending)
        lines.append("")
    if completed:
        lines += ["## ✅ Completed", ""]
        lines.extend(_task_line(i, tz) for i in completed)
        lines.append("")
    if not pending and not completed:
        lines += [
            "*No tasks yet. Add a task by typing:*",
            "```",
            "- [ ] Your task here",
            "```",
        ]
    return "\n".join(lines)


def render_memories_markdown(memories: list[MemoryRecord], tz: tzinfo) -> str:
    lines = [
        "# Omi Memories",
        "",
        "> This file is auto-generated for backup/search. Use the Omi tools to edit.",
        "",
    ]
    if not memories:
        lines.append("*No memories yet.*")
        return "\n".join(lines)

    groups: dict[str, list[MemoryRecord]] = defaultdict(list)
    for memory in memories:
        groups[memory.category or "other"].append(memory)

    for category, group in sorted(groups.items(), key=lambda kv: (-len(kv[1]), kv[0])):
        emoji = MEMORY_CATEGORY_EMOJI.get(category, "📌")
        lines += [f"## {emoji} {category.capitalize()}", ""]
        for memory in sorted(group, key=lambda m: m.created_at, reverse=True):
            tags = "".join(f" #omi/{slugify(t)}" for t in memory.tags)
            date = format_short_date(memory.created_at, tz)
            lines.append(f"- {memory.content}{tags} *({date})* %%id:{memory.id}%%")
        lines.append("")
    return "\n".join(lines)


async def _pull(
    ctx: SyncContext,
    kind: Literal["tasks", "memories"],
    action: HistoryAction,
) -> int:
    config = ctx.config
    calls_before = ctx.client.request_count
    try:
        if kind == "tasks":
            items = await ctx.client.get_all_action_items()
            content = render_tasks_markdown(items, ctx.tz)
            file_name = config.tasks_hub_file
        else:
            items = await ctx.client.get_all_memories(config.memories_fetch_limit)
            content = render_memories_markdown(items, ctx.tz)
            file_name = config.memories_hub_file
        ctx.store.ensure_folder(config.folder_path)
        ctx.store.write(f"{config.folder_path}/{file_name}", content)
    except (OmiSyncError, OSError) as e:
        logger.error("Failed to sync %s backup from Omi: %s", kind, e)
        ctx.state.history = append_history(
            ctx.state.history,
            SyncHistoryEntry(timestamp=now_utc(), type=kind, action=action, error=str(e)),
        )
        ctx.save()
        raise

    now = now_utc()
    if kind == "tasks":
        ctx.state.last_tasks_sync = now
    else:
        ctx.state.last_memories_sync = now
    ctx.state.history = append_history(
        ctx.state.history,
        SyncHistoryEntry(
            timestamp=now,
            type=kind,
            action=action,
            count=len(items),
            api_calls=ctx.client.request_count - calls_before,
        ),
    )
    ctx.save()
    logger.info("Synced %d %s to backup file", len(items), kind)
    return len(items)


async def pull_tasks_hub(ctx: SyncContext, action: HistoryAction = "sync") -> int:
    """Fetch all action items and rewrite the tasks backup file."""
    return await _pull(ctx, "tasks", action)


async def pull_memories_hub(ctx: SyncContext, action: HistoryAction = "sync") -> int:
    """Fetch memories and rewrite the memories backup file."""
    return await _pull(ctx, "memories", action)
