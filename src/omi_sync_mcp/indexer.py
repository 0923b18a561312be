"""Global conversations index, rebuilt from stored metadata after each run."""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime

from .markdown import category_emoji, heading_anchor, meta_location
from .store import DocumentStore
from .types import SyncedMeta

TOP_LOCATIONS = 10
PER_LOCATION = 5


def _newest_first(metas: Iterable[SyncedMeta]) -> list[SyncedMeta]:
    return sorted(metas, key=lambda m: (m.started_at, m.id), reverse=True)


def _line(meta: SyncedMeta) -> str:
    return f"- [[{meta.date}|{meta.date}]] {heading_anchor(meta)}"


def render_index(metas: Iterable[SyncedMeta], top_n: int = 10) -> str:
    metas = list(metas)
    days = sorted({m.date for m in metas})
    total_duration = sum(m.duration for m in metas)

    lines = [
        "---",
        f"conversations: {len(metas)}",
        f"days: {len(days)}",
        f"total_duration: {total_duration}",
        "tags:",
        "  - omi/index",
        "---",
        "",
        "# Omi Conversations Index",
        "",
    ]
    if not metas:
        lines += ["*No conversations synced yet.*", ""]
        return "\n".join(lines)

    lines += [
        f"**Total Conversations:** {len(metas)} across {len(days)} days",
        f"**First Day:** [[{days[0]}|{days[0]}]] | **Latest Day:** [[{days[-1]}|{days[-1]}]]",
        "",
        "## By Category",
        "",
    ]
    by_category: dict[str, list[SyncedMeta]] = defaultdict(list)
    for m in metas:
        by_category[m.category or "other"].append(m)
    for category, group in sorted(by_category.items(), key=lambda kv: (-len(kv[1]), kv[0])):
        lines.append(f"### {category_emoji(category)} {category.capitalize()} ({len(group)})")
        lines.extend(_line(m) for m in _newest_first(group)[:top_n])
        lines.append("")

    by_location: dict[str, list[SyncedMeta]] = defaultdict(list)
    for m in metas:
        location = meta_location(m)
        if location:
            by_location[location].append(m)
    if by_location:
        lines += ["## By Location", ""]
        ranked = sorted(by_location.items(), key=lambda kv: (-len(kv[1]), kv[0]))
        for location, group in ranked[:TOP_LOCATIONS]:
            lines.append(f"### 📍 {location} ({len(group)})")
            lines.extend(_line(m) for m in _newest_first(group)[:PER_LOCATION])
            lines.append("")

    lines += ["## By Month", ""]
    by_month: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for m in metas:
        by_month[m.date[:7]][m.date] += 1
    for month in sorted(by_month):
        month_days = by_month[month]
        label = datetime.strptime(month, "%Y-%m").strftime("%B %Y")
        lines.append(f"### {label} ({sum(month_days.values())})")
        for day in sorted(month_days):
            count = month_days[day]
            noun = "conversation" if count == 1 else "conversations"
            lines.append(f"- [[{day}|{day}]] - {count} {noun}")
        lines.append("")

    return "\n".join(lines)


def rebuild_index(
    store: DocumentStore,
    folder_path: str,
    metas: Iterable[SyncedMeta],
    *,
    file_name: str = "Conversations Index.md",
    top_n: int = 10,
) -> str:
    """Write the aggregate index and return its path."""
    store.ensure_folder(folder_path)
    path = f"{folder_path}/{file_name}"
    store.write(path, render_index(metas, top_n=top_n))
    return path
