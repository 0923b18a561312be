"""Render a day of conversations into cross-linked markdown documents."""

import bisect
import logging
from datetime import tzinfo

from .config import Config
from .markdown import (
    dominant,
    format_timestamp_offset,
    heading_anchor,
    meta_location,
    slugify,
    yaml_scalar,
)
from .store import DocumentStore
from .timezone import format_event_time
from .types import Conversation, SyncedMeta

logger = logging.getLogger(__name__)

OVERVIEW = "overview"
ACTION_ITEMS = "action-items"
EVENTS = "events"
TRANSCRIPT = "transcript"

_SECTION_LABELS = {
    OVERVIEW: "Overview",
    ACTION_ITEMS: "Action Items",
    EVENTS: "Events",
    TRANSCRIPT: "Transcript",
}

Entry = tuple[Conversation, SyncedMeta]


def _ordered_metas(metas: list[SyncedMeta]) -> list[SyncedMeta]:
    return sorted(metas, key=lambda m: (m.started_at, m.id))


def _ordered_entries(entries: list[Entry]) -> list[Entry]:
    return sorted(entries, key=lambda e: (e[1].started_at, e[1].id))


def neighbours(date_str: str, all_dates: list[str]) -> tuple[str | None, str | None]:
    """Previous and next known dates around *date_str* in a sorted list."""
    i = bisect.bisect_left(all_dates, date_str)
    prev_date = all_dates[i - 1] if i > 0 else None
    j = i + 1 if i < len(all_dates) and all_dates[i] == date_str else i
    next_date = all_dates[j] if j < len(all_dates) else None
    return prev_date, next_date


class DayMaterializer:
    """Writes the day shard ``<folder>/YYYY/MM/DD/`` for one local date.

    Every document is regenerated in full from the complete set of records
    for the day, so anchors and links can never drift apart.
    """

    def __init__(self, store: DocumentStore, config: Config, tz: tzinfo):
        self.store = store
        self.config = config
        self.tz = tz

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def day_folder(self, date_str: str) -> str:
        year, month, day = date_str.split("-")
        return f"{self.config.folder_path}/{year}/{month}/{day}"

    def index_path(self, date_str: str) -> str:
        return f"{self.day_folder(date_str)}/{date_str}.md"

    def sections(self) -> list[str]:
        enabled = [
            (OVERVIEW, self.config.include_overview),
            (ACTION_ITEMS, self.config.include_action_items),
            (EVENTS, self.config.include_events),
            (TRANSCRIPT, self.config.include_transcript),
        ]
        return [name for name, on in enabled if on]

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def write_day(self, date_str: str, entries: list[Entry], all_dates: list[str]) -> list[str]:
        """(Re)write the index and every enabled content document for a date.

        Returns the written paths.
        """
        entries = _ordered_entries(entries)
        folder = self.day_folder(date_str)
        self.store.ensure_folder(folder)

        renderers = {
            OVERVIEW: self.render_overview,
            ACTION_ITEMS: self.render_action_items,
            EVENTS: self.render_events,
            TRANSCRIPT: self.render_transcript,
        }
        written: list[str] = []
        for section in self.sections():
            path = f"{folder}/{section}.md"
            self.store.write(path, renderers[section](entries))
            written.append(path)

        written.append(self.write_index(date_str, [meta for _, meta in entries], all_dates))
        logger.debug("Wrote %d documents for %s", len(written), date_str)
        return written

    def write_index(self, date_str: str, metas: list[SyncedMeta], all_dates: list[str]) -> str:
        """Rewrite only the index document; content documents are left alone."""
        path = self.index_path(date_str)
        self.store.ensure_folder(self.day_folder(date_str))
        self.store.write(path, self.render_index(date_str, metas, all_dates))
        return path

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    def render_index(self, date_str: str, metas: list[SyncedMeta], all_dates: list[str]) -> str:
        metas = _ordered_metas(metas)
        total_duration = sum(m.duration for m in metas)
        categories = [m.category or "other" for m in metas]
        locations = [loc for loc in (meta_location(m) for m in metas) if loc]

        tags = ["omi/conversations"]
        tags += [f"omi/{slugify(c)}" for c in sorted(set(categories))]
        tags += [f"location/{slugify(loc)}" for loc in sorted(set(locations))]

        lines = [
            "---",
            f"date: {date_str}",
            f"conversations: {len(metas)}",
            f"total_duration: {total_duration}",
            f"dominant_category: {yaml_scalar(dominant(categories) or 'other')}",
        ]
        top_location = dominant(locations)
        if top_location:
            lines.append(f"dominant_location: {yaml_scalar(top_location)}")
        lines.append("tags:")
        lines.extend(f"  - {tag}" for tag in tags)
        lines += ["---", "", f"# {date_str} - Conversations", ""]

        prev_date, next_date = neighbours(date_str, all_dates)
        nav: list[str] = []
        if prev_date:
            nav.append(f"[[{prev_date}|← {prev_date}]]")
        if next_date:
            nav.append(f"[[{next_date}|{next_date} →]]")
        if nav:
            lines += [" | ".join(nav), ""]

        lines += [
            f"**Total Conversations:** {len(metas)}",
            f"**Total Duration:** {total_duration} min",
            "",
        ]

        sections = self.sections()
        if sections:
            lines.append("## Sections")
            lines.extend(f"- [[{s}|{_SECTION_LABELS[s]}]]" for s in sections)
            lines.append("")

        lines.append("## Conversations")
        for meta in metas:
            anchor = heading_anchor(meta)
            links = [f"[[{s}#{anchor}|{_SECTION_LABELS[s]}]]" for s in sections]
            suffix = f" - {' | '.join(links)}" if links else ""
            title = anchor.split(" - ", 1)[1]
            lines.append(f"- **{meta.time}** - {title}{suffix}")
        lines.append("")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Content documents
    # ------------------------------------------------------------------

    def _heading(self, conv: Conversation, meta: SyncedMeta, link_to: str | None) -> list[str]:
        anchor = heading_anchor(meta)
        lines = [f"#### {anchor}", f"<!-- conv_id: {conv.id} -->"]
        if link_to and link_to in self.sections():
            lines.append(f"*([[{link_to}#{anchor}|{_SECTION_LABELS[link_to]}]])*")
        return lines

    def render_overview(self, entries: list[Entry]) -> str:
        lines: list[str] = []
        for conv, meta in entries:
            lines += self._heading(conv, meta, TRANSCRIPT)
            lines.append(conv.structured.overview or "*No overview available*")
            lines.append("")
        return "\n".join(lines)

    def render_action_items(self, entries: list[Entry]) -> str:
        lines: list[str] = []
        for conv, meta in entries:
            lines += self._heading(conv, meta, OVERVIEW)
            items = conv.structured.action_items
            if items:
                for item in items:
                    checkbox = "[x]" if item.completed else "[ ]"
                    lines.append(f"- {checkbox} {item.description}")
            else:
                lines.append("*No action items*")
            lines.append("")
        return "\n".join(lines)

    def render_events(self, entries: list[Entry]) -> str:
        lines: list[str] = []
        for conv, meta in entries:
            lines += self._heading(conv, meta, OVERVIEW)
            events = conv.structured.events
            if events:
                for event in events:
                    when = format_event_time(event.start, self.tz)
                    lines.append(f"- **{event.title}** - {when} ({event.duration} min)")
                    if event.description:
                        lines.append(f"  {event.description}")
            else:
                lines.append("*No events*")
            lines.append("")
        return "\n".join(lines)

    def render_transcript(self, entries: list[Entry]) -> str:
        lines: list[str] = []
        for conv, meta in entries:
            lines += self._heading(conv, meta, OVERVIEW)
            lines.append("")
            if conv.transcript_segments:
                for segment in conv.transcript_segments:
                    if segment.speaker:
                        speaker = segment.speaker
                    elif segment.speaker_id is not None:
                        speaker = f"Speaker {segment.speaker_id}"
                    else:
                        speaker = "Unknown"
                    offset = format_timestamp_offset(segment.start)
                    lines.append(f"**{speaker}** ({offset}): {segment.text}")
                    lines.append("")
            else:
                lines.append("*No transcript available*")
                lines.append("")
        return "\n".join(lines)
