"""Data models for Omi conversations, sync state and direct-write records."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ActionItem(BaseModel):
    """A task extracted from a conversation."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    description: str
    completed: bool = False


class CalendarEvent(BaseModel):
    """An event mentioned in a conversation."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    title: str
    start: datetime
    duration: int = 0
    description: str | None = None


class TranscriptSegment(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    text: str = ""
    speaker: str | None = None
    speaker_id: int | None = None
    start: float = 0.0
    end: float | None = None


class StructuredData(BaseModel):
    """AI-generated summary attached to a conversation."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    title: str | None = None
    emoji: str | None = None
    category: str | None = None
    overview: str | None = None
    action_items: list[ActionItem] = []
    events: list[CalendarEvent] = []

    @field_validator("action_items", "events", mode="before")
    @classmethod
    def _null_as_empty(cls, value):
        return [] if value is None else value


class Geolocation(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None
    google_place_id: str | None = None
    location_type: str | None = None


class Conversation(BaseModel):
    """A conversation as returned by the Omi API.

    Records are read-only once fetched; edits to action items go through the
    direct-write endpoints instead.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    structured: StructuredData = Field(default_factory=StructuredData)
    transcript_segments: list[TranscriptSegment] = []
    geolocation: Geolocation | None = None

    @field_validator("structured", mode="before")
    @classmethod
    def _null_structured(cls, value):
        return {} if value is None else value

    @field_validator("transcript_segments", mode="before")
    @classmethod
    def _null_transcript(cls, value):
        return [] if value is None else value

    @property
    def start_time(self) -> datetime:
        return self.started_at or self.created_at

    @property
    def end_time(self) -> datetime:
        """When the conversation last changed; used for frontier comparison."""
        return self.finished_at or self.created_at

    @property
    def duration_minutes(self) -> int:
        seconds = (self.end_time - self.start_time).total_seconds()
        return max(1, round(seconds / 60))


class SyncedMeta(BaseModel):
    """Compact local projection of a synced conversation."""

    id: str
    date: str
    title: str
    emoji: str
    time: str
    category: str | None = None
    started_at: datetime
    finished_at: datetime
    duration: int
    overview: str | None = None
    action_item_count: int = 0
    event_count: int = 0
    geolocation: Geolocation | None = None


HistoryType = Literal["conversations", "tasks", "memories"]
HistoryAction = Literal["sync", "full-resync", "auto-sync", "resync"]


class SyncHistoryEntry(BaseModel):
    timestamp: datetime
    type: HistoryType = "conversations"
    action: HistoryAction
    count: int = 0
    api_calls: int | None = None
    error: str | None = None


class SyncState(BaseModel):
    """Everything the sync engine persists between runs."""

    last_sync_timestamp: datetime | None = None
    synced: dict[str, SyncedMeta] = {}
    history: list[SyncHistoryEntry] = []
    last_tasks_sync: datetime | None = None
    last_memories_sync: datetime | None = None

    @property
    def known_ids(self) -> set[str]:
        return set(self.synced)

    def dates(self) -> list[str]:
        return sorted({meta.date for meta in self.synced.values()})

    def metas_for(self, date_str: str) -> list[SyncedMeta]:
        return [meta for meta in self.synced.values() if meta.date == date_str]


class SyncResult(BaseModel):
    """Outcome of one coordinator run."""

    records_synced: int = 0
    stopped_early: bool = False
    api_calls: int = 0
    days_written: list[str] = []
    cancelled: bool = False


class ActionItemRecord(BaseModel):
    """An action item as exposed by the action-items endpoints."""

    model_config = ConfigDict(extra="ignore")

    id: str
    description: str
    completed: bool = False
    created_at: datetime
    updated_at: datetime | None = None
    due_at: datetime | None = None
    completed_at: datetime | None = None
    conversation_id: str | None = None


class MemoryRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    content: str
    category: str | None = None
    visibility: str = "private"
    tags: list[str] = []
    created_at: datetime
    updated_at: datetime | None = None
