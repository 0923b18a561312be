"""Persisted sync state, state snapshots and the explicit sync context."""

import shutil
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Protocol

from .api import OmiClient
from .config import Config
from .store import DocumentStore, FileDocumentStore, RecordArchive
from .timezone import resolve_timezone
from .types import SyncState


class StateStore(Protocol):
    """Key-value persistence for the frontier, metadata map and history."""

    def load(self) -> SyncState: ...

    def save(self, state: SyncState) -> None: ...

    def snapshot(self) -> Path | None: ...


class JsonStateStore:
    """StateStore backed by ``state.json`` with timestamped snapshots."""

    def __init__(self, state_dir: str | Path, max_snapshots: int = 10):
        self.root = Path(state_dir)
        self.path = self.root / "state.json"
        self.snapshots_dir = self.root / "snapshots"
        self.max_snapshots = max_snapshots

    def load(self) -> SyncState:
        if not self.path.exists():
            return SyncState()
        return SyncState.model_validate_json(self.path.read_text(encoding="utf-8"))

    def save(self, state: SyncState) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".json.tmp")
        tmp.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def snapshot(self) -> Path | None:
        """Copy the current state file to a timestamped snapshot, then prune.

        Returns the snapshot path, or ``None`` if there was no saved state.
        """
        dest = _snapshot_state(self.path, self.snapshots_dir)
        _prune_snapshots(self.snapshots_dir, self.max_snapshots)
        return dest


def _snapshot_state(state_path: Path, snapshots_dir: Path) -> Path | None:
    if not state_path.exists():
        return None
    snapshots_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")
    dest = snapshots_dir / f"state-{stamp}.json"
    shutil.copy2(state_path, dest)
    return dest


def _prune_snapshots(snapshots_dir: Path, max_snapshots: int) -> int:
    """Delete oldest snapshots beyond *max_snapshots*.  Returns count removed."""
    if not snapshots_dir.exists():
        return 0
    snaps = sorted(snapshots_dir.glob("state-*.json"))
    to_remove = snaps[: max(0, len(snaps) - max_snapshots)]
    for p in to_remove:
        p.unlink()
    return len(to_remove)


@dataclass
class SyncContext:
    """Everything a sync run reads and mutates, threaded through explicitly."""

    config: Config
    client: OmiClient
    store: DocumentStore
    state_store: StateStore
    archive: RecordArchive
    tz: tzinfo
    state: SyncState = field(default_factory=SyncState)

    @classmethod
    def from_config(
        cls, config: Config, client: OmiClient | None = None
    ) -> "SyncContext":
        state_store = JsonStateStore(config.state_dir, config.max_snapshots)
        return cls(
            config=config,
            client=client or OmiClient.from_config(config),
            store=FileDocumentStore(config.vault_dir),
            state_store=state_store,
            archive=RecordArchive(Path(config.state_dir) / "records"),
            tz=resolve_timezone(config.timezone),
            state=state_store.load(),
        )

    def save(self) -> None:
        self.state_store.save(self.state)
