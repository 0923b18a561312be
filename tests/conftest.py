"""Shared fixtures for tests."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import httpx
import pytest

from omi_sync_mcp.api import (
    ACTION_ITEMS_PATH,
    CONVERSATIONS_PATH,
    MEMORIES_PATH,
    OmiClient,
)
from omi_sync_mcp.config import Config
from omi_sync_mcp.state import JsonStateStore, SyncContext
from omi_sync_mcp.store import FileDocumentStore, RecordArchive
from omi_sync_mcp.sync import SyncCoordinator

UTC = timezone.utc
BASE_URL = "https://api.omi.test"


def make_conversation(
    conv_id: str,
    created_at: datetime,
    *,
    minutes: int = 10,
    title: str | None = None,
    emoji: str | None = "💼",
    category: str | None = "business",
    overview: str | None = None,
    action_items: list[dict] | None = None,
    events: list[dict] | None = None,
    transcript: list[dict] | None = None,
    address: str | None = None,
) -> dict[str, Any]:
    """Raw conversation JSON in the Omi API's shape."""
    return {
        "id": conv_id,
        "created_at": created_at.isoformat(),
        "started_at": created_at.isoformat(),
        "finished_at": (created_at + timedelta(minutes=minutes)).isoformat(),
        "structured": {
            "title": title if title is not None else f"Conversation {conv_id}",
            "emoji": emoji,
            "category": category,
            "overview": overview if overview is not None else f"Overview of {conv_id}",
            "action_items": action_items or [],
            "events": events or [],
        },
        "transcript_segments": (
            transcript
            if transcript is not None
            else [
                {"text": f"Hello from {conv_id}", "speaker": "SPEAKER_00", "speaker_id": 0, "start": 0.0},
                {"text": "Sounds good.", "speaker_id": 1, "start": 65.0},
            ]
        ),
        "geolocation": {"address": address} if address else None,
    }


def make_feed(
    count: int,
    *,
    newest: datetime = datetime(2025, 4, 20, 12, 0, tzinfo=UTC),
    step: timedelta = timedelta(hours=1),
    prefix: str = "conv",
) -> list[dict[str, Any]]:
    """``count`` conversations, newest first, one every ``step``."""
    return [
        make_conversation(f"{prefix}_{i:03d}", newest - i * step) for i in range(count)
    ]


class FakeOmiApi:
    """In-memory stand-in for the Omi developer API."""

    def __init__(self, conversations: list[dict[str, Any]] | None = None):
        self.conversations = list(conversations or [])
        self.action_items: dict[str, dict[str, Any]] = {}
        self.memories: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.queued: list[httpx.Response] = []
        # conversation request number (1-based) -> canned response
        self.script: dict[int, httpx.Response] = {}
        self._next_id = 0

    def conversation_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == CONVERSATIONS_PATH]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.queued:
            return self.queued.pop(0)
        path = request.url.path
        if path == CONVERSATIONS_PATH:
            scripted = self.script.get(len(self.conversation_requests()))
            if scripted is not None:
                return scripted
            return self._conversations(request)
        if path.startswith(ACTION_ITEMS_PATH):
            return self._crud(request, self.action_items, ACTION_ITEMS_PATH, self._new_action_item)
        if path.startswith(MEMORIES_PATH):
            return self._crud(request, self.memories, MEMORIES_PATH, self._new_memory)
        return httpx.Response(404, json={"detail": "not found"})

    def _conversations(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        limit = int(params.get("limit", 100))
        offset = int(params.get("offset", 0))
        start = params.get("start_date")
        end = params.get("end_date")
        items = [
            c
            for c in self.conversations
            if (not start or c["created_at"][:10] >= start)
            and (not end or c["created_at"][:10] < end)
        ]
        return httpx.Response(200, json=items[offset : offset + limit])

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}_{self._next_id}"

    def _new_action_item(self, body: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": self._new_id("item"),
            "description": body["description"],
            "completed": False,
            "created_at": datetime(2025, 4, 1, 9, 0, tzinfo=UTC).isoformat(),
            "due_at": body.get("due_at"),
            "completed_at": None,
            "conversation_id": None,
        }

    def _new_memory(self, body: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": self._new_id("mem"),
            "content": body["content"],
            "category": body.get("category", "manual"),
            "visibility": body.get("visibility", "private"),
            "tags": body.get("tags", []),
            "created_at": datetime(2025, 4, 1, 9, 0, tzinfo=UTC).isoformat(),
        }

    def _crud(self, request, table, base, factory) -> httpx.Response:
        item_id = request.url.path[len(base) + 1 :] or None
        if request.method == "GET":
            params = request.url.params
            limit = int(params.get("limit", 100))
            offset = int(params.get("offset", 0))
            return httpx.Response(200, json=list(table.values())[offset : offset + limit])
        if request.method == "POST":
            record = factory(json.loads(request.content))
            table[record["id"]] = record
            return httpx.Response(200, json=record)
        if item_id not in table:
            return httpx.Response(404, json={"detail": "not found"})
        if request.method == "PATCH":
            table[item_id].update(json.loads(request.content))
            return httpx.Response(200, json=table[item_id])
        if request.method == "DELETE":
            del table[item_id]
            return httpx.Response(200, json={"success": True})
        return httpx.Response(405)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep


@pytest.fixture
def fake_api() -> FakeOmiApi:
    return FakeOmiApi()


def build_client(fake_api: FakeOmiApi, sleep, **kwargs: Any) -> OmiClient:
    return OmiClient(
        "test-key",
        BASE_URL,
        transport=httpx.MockTransport(fake_api.handler),
        sleep=sleep,
        **kwargs,
    )


@pytest.fixture
def client(fake_api: FakeOmiApi, fake_sleep) -> OmiClient:
    return build_client(fake_api, fake_sleep)


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        api_key="test-key",
        vault_dir=str(tmp_path / "vault"),
        state_dir=str(tmp_path / "state"),
        start_date="2025-01-01",
    )


def build_context(config: Config, client: OmiClient) -> SyncContext:
    state_store = JsonStateStore(config.state_dir, config.max_snapshots)
    return SyncContext(
        config=config,
        client=client,
        store=FileDocumentStore(config.vault_dir),
        state_store=state_store,
        archive=RecordArchive(Path(config.state_dir) / "records"),
        tz=UTC,
        state=state_store.load(),
    )


@pytest.fixture
def sync_ctx(config: Config, client: OmiClient) -> SyncContext:
    return build_context(config, client)


@pytest.fixture
def coordinator(sync_ctx: SyncContext) -> SyncCoordinator:
    return SyncCoordinator(sync_ctx)


@pytest.fixture
def day_dir(config: Config):
    """Resolve the on-disk day shard folder for a ``YYYY-MM-DD`` date."""

    def _day_dir(date_str: str) -> Path:
        year, month, day = date_str.split("-")
        return Path(config.vault_dir) / config.folder_path / year / month / day

    return _day_dir
