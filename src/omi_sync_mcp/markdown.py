"""Markdown building blocks shared by the day shards, the index and the hubs."""

import json
import re
from collections import Counter
from collections.abc import Iterable
from datetime import tzinfo

from .timezone import format_clock, local_date
from .types import Conversation, StructuredData, SyncedMeta

DEFAULT_EMOJI = "💬"
OVERVIEW_SNIPPET_CHARS = 150

CATEGORY_EMOJI: dict[str, str] = {
    "personal": "🙋",
    "education": "📚",
    "health": "🏥",
    "finance": "💰",
    "legal": "⚖️",
    "philosophy": "🤔",
    "spiritual": "🙏",
    "science": "🔬",
    "entrepreneurship": "💼",
    "parenting": "👶",
    "romantic": "❤️",
    "travel": "✈️",
    "inspiration": "💡",
    "technology": "💻",
    "business": "📊",
    "family": "👨‍👩‍👧‍👦",
    "other": DEFAULT_EMOJI,
}

MEMORY_CATEGORY_EMOJI: dict[str, str] = {
    "work": "💼",
    "system": "🧠",
    "skills": "🎯",
    "interests": "💡",
    "interesting": "⭐",
    "lifestyle": "🏠",
    "hobbies": "🎮",
    "habits": "🔄",
    "core": "💎",
    "other": "📌",
    "manual": "✏️",
}

# Characters that break [[file#heading]] links.
_LINK_UNSAFE = re.compile(r"[#|\[\]^]")
_WHITESPACE = re.compile(r"\s+")
_SLUG_UNSAFE = re.compile(r"[^a-z0-9]+")
_POSTAL = re.compile(r"\s*\b\d[\d-]*\b")


def category_emoji(category: str | None) -> str:
    return CATEGORY_EMOJI.get(category or "other", DEFAULT_EMOJI)


def clean_heading_text(text: str) -> str:
    return _WHITESPACE.sub(" ", _LINK_UNSAFE.sub(" ", text)).strip()


def heading_anchor(meta: SyncedMeta) -> str:
    """Heading text shared by every document that mentions this conversation."""
    return f"{meta.time} - {meta.emoji} {clean_heading_text(meta.title) or 'Untitled'}"


def slugify(text: str) -> str:
    return _SLUG_UNSAFE.sub("-", text.lower()).strip("-")


def yaml_scalar(value: str | int | float) -> str:
    """Render a YAML scalar; strings are always double-quoted."""
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


def dominant(values: Iterable[str]) -> str | None:
    """Most frequent value, ties broken alphabetically."""
    counts = Counter(values)
    if not counts:
        return None
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[0][0]


def simplify_location(address: str | None) -> str | None:
    """Reduce a street address to ``City, Region``.

    ``"1 Main St, Springfield, IL 62701, USA"`` becomes ``"Springfield, IL"``.
    """
    if not address:
        return None
    parts = [p.strip() for p in address.split(",") if p.strip()]
    if not parts:
        return None
    if len(parts) >= 3:
        parts = parts[-3:-1]
    elif len(parts) == 2:
        parts = parts[:1]
    cleaned = [_POSTAL.sub("", p).strip() for p in parts]
    cleaned = [p for p in cleaned if p]
    return ", ".join(cleaned) or None


def meta_location(meta: SyncedMeta) -> str | None:
    return simplify_location(meta.geolocation.address) if meta.geolocation else None


def build_meta(conv: Conversation, tz: tzinfo) -> SyncedMeta:
    """Project a fetched conversation onto its stored metadata."""
    structured = conv.structured
    overview = structured.overview
    return SyncedMeta(
        id=conv.id,
        date=local_date(conv.created_at, tz),
        title=structured.title or "Untitled",
        emoji=structured.emoji or category_emoji(structured.category),
        time=format_clock(conv.start_time, tz),
        category=structured.category,
        started_at=conv.start_time,
        finished_at=conv.end_time,
        duration=conv.duration_minutes,
        overview=overview[:OVERVIEW_SNIPPET_CHARS] if overview else None,
        action_item_count=len(structured.action_items),
        event_count=len(structured.events),
        geolocation=conv.geolocation,
    )


def placeholder_conversation(meta: SyncedMeta) -> Conversation:
    """Stand-in record for a known conversation whose body was never archived.

    Only the overview snippet survives; transcript and items are empty.
    """
    return Conversation(
        id=meta.id,
        created_at=meta.started_at,
        started_at=meta.started_at,
        finished_at=meta.finished_at,
        structured=StructuredData(
            title=meta.title,
            emoji=meta.emoji,
            category=meta.category,
            overview=meta.overview,
        ),
        geolocation=meta.geolocation,
    )


def format_timestamp_offset(seconds: float) -> str:
    """Transcript offset as ``m:ss``."""
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"
