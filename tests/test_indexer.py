"""Tests for the aggregate conversations index."""

from datetime import datetime
from pathlib import Path

from conftest import UTC, make_conversation
from omi_sync_mcp.indexer import rebuild_index, render_index
from omi_sync_mcp.markdown import build_meta
from omi_sync_mcp.store import FileDocumentStore
from omi_sync_mcp.types import Conversation


def _meta(conv_id: str, created: datetime, **kwargs):
    conv = Conversation.model_validate(make_conversation(conv_id, created, **kwargs))
    return build_meta(conv, UTC)


def _sample():
    return [
        _meta("a", datetime(2025, 3, 31, 9, 0, tzinfo=UTC), category="technology", emoji=None),
        _meta(
            "b",
            datetime(2025, 4, 1, 10, 0, tzinfo=UTC),
            title="Budget review",
            address="1 Main St, Springfield, IL 62701, USA",
        ),
        _meta("c", datetime(2025, 4, 1, 15, 0, tzinfo=UTC), title="Pipeline sync"),
    ]


class TestRenderIndex:
    def test_empty(self):
        text = render_index([])
        assert "conversations: 0" in text
        assert "*No conversations synced yet.*" in text

    def test_frontmatter_and_summary(self):
        text = render_index(_sample())

        assert text.startswith("---\nconversations: 3\ndays: 2\ntotal_duration: 30\n")
        assert "**Total Conversations:** 3 across 2 days" in text
        assert "**First Day:** [[2025-03-31|2025-03-31]] | **Latest Day:** [[2025-04-01|2025-04-01]]" in text

    def test_by_category(self):
        text = render_index(_sample())

        business = text.index("### 📊 Business (2)")
        technology = text.index("### 💻 Technology (1)")
        assert business < technology
        # newest first within a category
        assert text.index("Pipeline sync") < text.index("Budget review")
        assert "- [[2025-04-01|2025-04-01]] 03:00 PM - 💼 Pipeline sync" in text

    def test_category_limit(self):
        text = render_index(_sample(), top_n=1)
        business = text.split("### 📊 Business (2)")[1].split("###")[0]
        assert "Pipeline sync" in business
        assert "Budget review" not in business

    def test_by_location(self):
        text = render_index(_sample())
        assert "## By Location" in text
        assert "### 📍 Springfield, IL (1)" in text

    def test_no_location_section_without_addresses(self):
        metas = [m for m in _sample() if m.id != "b"]
        assert "## By Location" not in render_index(metas)

    def test_by_month(self):
        text = render_index(_sample())

        assert text.index("### March 2025 (1)") < text.index("### April 2025 (2)")
        assert "- [[2025-03-31|2025-03-31]] - 1 conversation\n" in text
        assert "- [[2025-04-01|2025-04-01]] - 2 conversations" in text


class TestRebuildIndex:
    def test_writes_file(self, tmp_path: Path):
        store = FileDocumentStore(tmp_path)

        path = rebuild_index(store, "Omi", _sample(), file_name="Index.md")

        assert path == "Omi/Index.md"
        assert (tmp_path / "Omi" / "Index.md").read_text(encoding="utf-8") == render_index(
            _sample()
        )
