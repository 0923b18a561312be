"""Application settings via pydantic-settings."""

import os
from datetime import datetime

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://api.omi.me"


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="OMI_")

    api_key: str = Field(
        default="",
        description=(
            "Omi developer API key. "
            "In the Omi app: Settings → Developer Settings → API → Create Key."
        ),
    )
    base_url: str = Field(default=DEFAULT_BASE_URL, description="Omi API base URL")
    vault_dir: str = Field(
        default="~/Documents/Omi",
        description="Root directory of the local document store (e.g. an Obsidian vault).",
    )
    folder_path: str = Field(
        default="Omi Conversations",
        description="Folder inside the vault that receives synced conversations.",
    )
    start_date: str = Field(
        default="2025-02-09",
        description="Only import conversations from this date (YYYY-MM-DD) onwards.",
    )
    state_dir: str = Field(
        default="~/.omi-sync",
        description="Directory for sync state, the record archive and state snapshots.",
    )
    log_level: str = Field(default="info", description="Logging level")
    timezone: str | None = Field(
        default=None,
        description="IANA timezone used to bucket conversations by day. Detected when unset.",
    )

    include_overview: bool = Field(default=True, description="Write overview.md per day")
    include_action_items: bool = Field(
        default=True, description="Write action-items.md per day"
    )
    include_events: bool = Field(default=True, description="Write events.md per day")
    include_transcript: bool = Field(
        default=True, description="Write transcript.md per day"
    )

    page_size: int = Field(default=100, ge=1, description="Conversations per API page")
    max_retries: int = Field(
        default=5, ge=0, description="Retries on HTTP 429 before giving up"
    )
    retry_base_delay: float = Field(
        default=1.0, description="Base backoff delay in seconds (doubles per retry)"
    )
    page_delay: float = Field(
        default=0.5, description="Pause between pagination requests, in seconds"
    )
    request_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")

    auto_sync_minutes: int = Field(
        default=0,
        description="Background conversation sync interval in minutes (0 = manual only).",
    )
    enable_tasks_hub: bool = Field(
        default=False, description="Maintain a Tasks.md backup of Omi action items"
    )
    tasks_sync_minutes: int = Field(
        default=5, description="How often to refresh the tasks backup file (minutes)"
    )
    tasks_hub_file: str = Field(
        default="Tasks.md", description="Tasks backup file name, relative to folder_path"
    )
    memories_hub_file: str = Field(
        default="Memories.md",
        description="Memories backup file name, relative to folder_path",
    )
    memories_fetch_limit: int = Field(
        default=500, description="Maximum number of memories fetched for the backup"
    )

    index_file: str = Field(
        default="Conversations Index.md",
        description="Aggregate index file name, relative to folder_path",
    )
    category_top_n: int = Field(
        default=10, description="Conversations listed per category in the aggregate index"
    )
    max_snapshots: int = Field(
        default=10,
        description="Maximum number of timestamped state snapshots to retain.",
    )

    @field_validator("start_date")
    @classmethod
    def _check_start_date(cls, value: str) -> str:
        datetime.strptime(value, "%Y-%m-%d")
        return value

    @model_validator(mode="after")
    def _expand_paths(self) -> "Config":
        object.__setattr__(self, "vault_dir", os.path.expanduser(self.vault_dir))
        object.__setattr__(self, "state_dir", os.path.expanduser(self.state_dir))
        object.__setattr__(self, "folder_path", self.folder_path.strip("/"))
        return self
