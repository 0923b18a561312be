"""Local document store and the per-day record archive."""

import json
from pathlib import Path
from typing import Any, Protocol

from .types import Conversation


class DocumentStore(Protocol):
    """Narrow contract the sync engine needs from the host document store.

    Paths are ``/``-separated and relative to the store root.
    """

    def ensure_folder(self, path: str) -> None: ...

    def read(self, path: str) -> str | None: ...

    def write(self, path: str, text: str) -> None: ...

    def list(self, prefix: str) -> list[str]: ...


class FileDocumentStore:
    """DocumentStore backed by a directory on disk (e.g. an Obsidian vault)."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        resolved = (self.root / path).resolve()
        if not resolved.is_relative_to(self.root.resolve()):
            raise ValueError(f"Path escapes the document store: {path}")
        return resolved

    def ensure_folder(self, path: str) -> None:
        self._resolve(path).mkdir(parents=True, exist_ok=True)

    def read(self, path: str) -> str | None:
        target = self._resolve(path)
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8")

    def write(self, path: str, text: str) -> None:
        """Create or overwrite a document. Unchanged content is not rewritten."""
        target = self._resolve(path)
        if target.is_file() and target.read_text(encoding="utf-8") == text:
            return
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")

    def list(self, prefix: str) -> list[str]:
        base = self._resolve(prefix)
        if not base.is_dir():
            return []
        root = self.root.resolve()
        return sorted(p.relative_to(root).as_posix() for p in base.rglob("*") if p.is_file())


def _is_empty(value: Any) -> bool:
    """Return True if *value* is None, an empty list, an empty dict, or an empty string."""
    return value is None or value == [] or value == {} or value == ""


def merge_record(archived: dict[str, Any], fresh: dict[str, Any]) -> dict[str, Any]:
    """Layer a freshly fetched record over its archived copy.

    Fresh fields win, except that an empty fresh value never overwrites
    non-empty archived content (the API may omit a transcript on re-fetch).
    """
    result = dict(archived)
    for key, value in fresh.items():
        if _is_empty(value) and not _is_empty(result.get(key)):
            continue
        result[key] = value
    return result


class RecordArchive:
    """Full conversation bodies, one JSON file per local date.

    Lets a partial-day re-sync regenerate documents from complete records
    instead of truncated metadata.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, date_str: str) -> Path:
        return self.root / f"{date_str}.json"

    def _read_raw(self, date_str: str) -> dict[str, dict[str, Any]]:
        path = self._path(date_str)
        if not path.exists():
            return {}
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f).get("records", {})

    def load_day(self, date_str: str) -> dict[str, Conversation]:
        return {
            conv_id: Conversation.model_validate(raw)
            for conv_id, raw in self._read_raw(date_str).items()
        }

    def merge_day(
        self, date_str: str, conversations: list[Conversation]
    ) -> dict[str, Conversation]:
        """Merge *conversations* into the day's archive and return the full set."""
        raw = self._read_raw(date_str)
        for conv in conversations:
            fresh = conv.model_dump(mode="json")
            raw[conv.id] = merge_record(raw.get(conv.id, {}), fresh)

        self.root.mkdir(parents=True, exist_ok=True)
        with open(self._path(date_str), "w", encoding="utf-8") as f:
            json.dump({"date": date_str, "records": raw}, f, ensure_ascii=False)
        return self.load_day(date_str)

    def clear(self) -> int:
        """Delete every archived day. Returns the number of files removed."""
        if not self.root.exists():
            return 0
        files = list(self.root.glob("*.json"))
        for p in files:
            p.unlink()
        return len(files)
