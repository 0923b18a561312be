"""Integration tests for MCP tools via FastMCP Client."""

from datetime import timedelta
from pathlib import Path

import httpx
import pytest
from fastmcp import Client

from conftest import build_client, make_feed
from omi_sync_mcp import server


@pytest.fixture
def mcp_client(monkeypatch, tmp_path: Path, fake_api, fake_sleep):
    """Client whose server lifespan reads a temp vault and talks to the fake API.

    The lifespan runs when the Client connects, so the environment and the
    client factory are patched first. Records sit at noon UTC so the detected
    local timezone never moves them across a day boundary.
    """
    monkeypatch.setenv("OMI_API_KEY", "test-key")
    monkeypatch.setenv("OMI_VAULT_DIR", str(tmp_path / "vault"))
    monkeypatch.setenv("OMI_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("OMI_START_DATE", "2025-01-01")
    monkeypatch.setenv("OMI_AUTO_SYNC_MINUTES", "0")
    monkeypatch.setattr(server, "_build_client", lambda config: build_client(fake_api, fake_sleep))
    return Client(server.mcp)


async def _call(client: Client, tool: str, args: dict | None = None) -> str:
    result = await client.call_tool(tool, args or {})
    return result.content[0].text


class TestSyncTools:
    @pytest.mark.asyncio
    async def test_sync_then_nothing_new(self, mcp_client: Client, fake_api, tmp_path: Path):
        fake_api.conversations = make_feed(3, step=timedelta(days=1))
        async with mcp_client:
            text = await _call(mcp_client, "sync_conversations")
            assert "# Sync Complete" in text
            assert "**Conversations synced:** 3" in text
            assert "**Days written:** 3" in text

            text = await _call(mcp_client, "sync_conversations")
            assert text == "No new conversations to sync"

        assert (tmp_path / "vault" / "Omi Conversations" / "2025" / "04" / "20" / "2025-04-20.md").is_file()

    @pytest.mark.asyncio
    async def test_full_resync(self, mcp_client: Client, fake_api):
        fake_api.conversations = make_feed(2, step=timedelta(days=1))
        async with mcp_client:
            text = await _call(mcp_client, "full_resync")
            assert "# Full Resync Complete" in text
            assert "**Conversations synced:** 2" in text

    @pytest.mark.asyncio
    async def test_resync_dates(self, mcp_client: Client, fake_api):
        fake_api.conversations = make_feed(3, step=timedelta(days=1))
        async with mcp_client:
            text = await _call(
                mcp_client, "resync_dates", {"start_date": "2025-04-18", "end_date": "2025-04-19"}
            )
            assert "# Resync Complete" in text
            assert "**Conversations synced:** 2" in text

    @pytest.mark.asyncio
    async def test_resync_dates_rejects_bad_input(self, mcp_client: Client, fake_api):
        async with mcp_client:
            text = await _call(mcp_client, "resync_dates", {"start_date": "2025-04-31"})
            assert text.startswith("Sync rejected:")
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_api_failure(self, mcp_client: Client, fake_api):
        fake_api.queued = [httpx.Response(500)]
        async with mcp_client:
            text = await _call(mcp_client, "sync_conversations")
            assert text.startswith("Sync failed:")

            status = await _call(mcp_client, "sync_status")
            assert "failed:" in status

    @pytest.mark.asyncio
    async def test_cancel_when_idle(self, mcp_client: Client):
        async with mcp_client:
            text = await _call(mcp_client, "cancel_sync")
            assert text == "No conversation sync is running"

    @pytest.mark.asyncio
    async def test_cancel_running_sync(self, monkeypatch, mcp_client: Client, fake_api):
        replies: list[str] = []

        async def cancel_between_pages(seconds: float) -> None:
            replies.append(await _call(mcp_client, "cancel_sync"))

        monkeypatch.setattr(
            server, "_build_client", lambda config: build_client(fake_api, cancel_between_pages)
        )
        fake_api.conversations = make_feed(250)
        async with mcp_client:
            text = await _call(mcp_client, "sync_conversations")

        assert replies[0].startswith("Cancellation requested")
        assert "**Conversations synced:** 100" in text
        assert "**Cancelled:**" in text
        assert len(fake_api.conversation_requests()) == 1

    @pytest.mark.asyncio
    async def test_status(self, mcp_client: Client, fake_api):
        fake_api.conversations = make_feed(3, step=timedelta(days=1))
        async with mcp_client:
            status = await _call(mcp_client, "sync_status")
            assert "**Last sync:** never" in status
            assert "**Phase:** idle" in status

            await _call(mcp_client, "sync_conversations")
            status = await _call(mcp_client, "sync_status")
            assert "**Conversations synced:** 3" in status
            assert "**Days:** 3" in status
            assert "**Range:** 2025-04-18 → 2025-04-20" in status
            assert "conversations sync - 3 item(s)" in status


class TestActionItemTools:
    @pytest.mark.asyncio
    async def test_crud(self, mcp_client: Client, fake_api):
        async with mcp_client:
            assert await _call(mcp_client, "list_action_items") == "No action items found"

            text = await _call(mcp_client, "create_action_item", {"description": "Call Bob"})
            assert text.startswith("Created action item:")
            assert "- [ ] Call Bob `item_1`" in text

            text = await _call(mcp_client, "list_action_items")
            assert "# Action Items (1)" in text

            text = await _call(mcp_client, "update_action_item", {"item_id": "item_1"})
            assert text == "Nothing to update"

            text = await _call(
                mcp_client, "update_action_item", {"item_id": "item_1", "completed": True}
            )
            assert "- [x] Call Bob" in text

            text = await _call(mcp_client, "list_action_items", {"completed": False})
            assert text == "No action items found"

            text = await _call(mcp_client, "delete_action_item", {"item_id": "item_1"})
            assert text == "Deleted action item 'item_1'"
        assert fake_api.action_items == {}

    @pytest.mark.asyncio
    async def test_missing_item(self, mcp_client: Client):
        async with mcp_client:
            text = await _call(mcp_client, "delete_action_item", {"item_id": "nope"})
            assert text.startswith("Failed to delete action item 'nope'")

    @pytest.mark.asyncio
    async def test_tasks_hub(self, mcp_client: Client, tmp_path: Path):
        async with mcp_client:
            await _call(mcp_client, "create_action_item", {"description": "Call Bob"})
            text = await _call(mcp_client, "sync_tasks_hub")
            assert text == "Synced 1 action item(s) to `Omi Conversations/Tasks.md`"

        hub = tmp_path / "vault" / "Omi Conversations" / "Tasks.md"
        assert "Call Bob" in hub.read_text(encoding="utf-8")


class TestMemoryTools:
    @pytest.mark.asyncio
    async def test_crud(self, mcp_client: Client, fake_api):
        async with mcp_client:
            text = await _call(
                mcp_client, "create_memory", {"content": "Prefers tea", "category": "lifestyle"}
            )
            assert text.startswith("Created memory:")
            assert "🏠 Prefers tea" in text

            text = await _call(mcp_client, "list_memories")
            assert "# Memories (1)" in text

            text = await _call(mcp_client, "list_memories", {"category": "work"})
            assert text == "No memories found"

            text = await _call(
                mcp_client, "update_memory", {"memory_id": "mem_1", "content": "Prefers coffee"}
            )
            assert "Prefers coffee" in text

            text = await _call(mcp_client, "delete_memory", {"memory_id": "mem_1"})
            assert text == "Deleted memory 'mem_1'"
        assert fake_api.memories == {}

    @pytest.mark.asyncio
    async def test_memories_hub(self, mcp_client: Client):
        async with mcp_client:
            await _call(mcp_client, "create_memory", {"content": "Likes jazz"})
            text = await _call(mcp_client, "sync_memories_hub")
            assert text == "Synced 1 memories to `Omi Conversations/Memories.md`"


class TestToolListing:
    @pytest.mark.asyncio
    async def test_lists_all_tools(self, mcp_client: Client):
        async with mcp_client:
            tools = await mcp_client.list_tools()
            names = {t.name for t in tools}
            assert names == {
                "sync_conversations",
                "full_resync",
                "resync_dates",
                "sync_status",
                "cancel_sync",
                "list_action_items",
                "create_action_item",
                "update_action_item",
                "delete_action_item",
                "sync_tasks_hub",
                "list_memories",
                "create_memory",
                "update_memory",
                "delete_memory",
                "sync_memories_hub",
            }
