"""Bounded, time-windowed audit trail of sync outcomes."""

from datetime import datetime, timedelta

from .timezone import now_utc
from .types import SyncHistoryEntry

HISTORY_WINDOW = timedelta(hours=24)
HISTORY_LIMIT = 100


def prune_history(
    entries: list[SyncHistoryEntry], now: datetime | None = None
) -> list[SyncHistoryEntry]:
    """Drop entries older than the window, then keep the newest ``HISTORY_LIMIT``."""
    cutoff = (now or now_utc()) - HISTORY_WINDOW
    recent = [e for e in entries if e.timestamp >= cutoff]
    recent.sort(key=lambda e: e.timestamp)
    return recent[-HISTORY_LIMIT:]


def append_history(
    entries: list[SyncHistoryEntry],
    entry: SyncHistoryEntry,
    now: datetime | None = None,
) -> list[SyncHistoryEntry]:
    """Return a new, pruned history list with *entry* appended."""
    return prune_history([*entries, entry], now=now)


def format_history(entries: list[SyncHistoryEntry]) -> list[str]:
    """One markdown bullet per entry, newest first."""
    lines: list[str] = []
    for e in reversed(entries):
        stamp = e.timestamp.strftime("%Y-%m-%d %H:%M")
        detail = f"failed: {e.error}" if e.error else f"{e.count} item(s)"
        calls = f", {e.api_calls} API call(s)" if e.api_calls is not None else ""
        lines.append(f"• {stamp} {e.type} {e.action} - {detail}{calls}")
    return lines
