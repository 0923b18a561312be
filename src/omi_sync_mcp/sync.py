"""Sync coordinator: strategy selection, paging, materialization, finalization.

A run moves through ``fetching → materializing → indexing → finalizing`` and
ends idle, cancelled or failed. Each fetched page is grouped by local date and
written immediately, so everything materialized before a cancellation or a
later failure stays on disk and in the stored metadata. The frontier
timestamp only advances when a frontier run completes.
"""

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from enum import Enum

from .errors import SyncCancelled, SyncInProgressError, SyncValidationError
from .history import append_history
from .indexer import rebuild_index
from .markdown import build_meta, placeholder_conversation
from .materializer import DayMaterializer, neighbours
from .state import SyncContext
from .timezone import local_date, now_utc
from .types import (
    Conversation,
    HistoryAction,
    SyncedMeta,
    SyncHistoryEntry,
    SyncResult,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]


class SyncPhase(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    MATERIALIZING = "materializing"
    INDEXING = "indexing"
    FINALIZING = "finalizing"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CancelToken:
    """Cooperative cancellation flag, checked before each page request."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def select_changed(
    page: list[Conversation],
    known_ids: set[str],
    last_sync: datetime | None,
) -> tuple[list[Conversation], bool]:
    """Stop-when-known filter over one newest-first page.

    Unknown conversations are selected. A known conversation that finished
    after ``last_sync`` was edited since and is selected again. The first
    known conversation that has not changed ends the scan: everything older
    is already synced. Returns ``(selected, stopped)``.
    """
    selected: list[Conversation] = []
    for conv in page:
        if conv.id in known_ids and last_sync is not None and conv.end_time <= last_sync:
            return selected, True
        selected.append(conv)
    return selected, False


def group_by_local_date(
    conversations: list[Conversation], tz: tzinfo
) -> dict[str, list[Conversation]]:
    groups: dict[str, list[Conversation]] = defaultdict(list)
    for conv in conversations:
        groups[local_date(conv.created_at, tz)].append(conv)
    return dict(groups)


def parse_day(value: str) -> date:
    """Parse ``YYYY-MM-DD`` or raise SyncValidationError."""
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except (AttributeError, ValueError) as e:
        raise SyncValidationError(f"Invalid date '{value}' (expected YYYY-MM-DD)") from e


@dataclass
class _RunProgress:
    records_synced: int = 0
    pages: int = 0
    stopped_early: bool = False
    cancelled: bool = False
    days: set[str] = field(default_factory=set)


class SyncCoordinator:
    """Drives sync runs against one SyncContext.

    Only one run may be active at a time; a concurrent request raises
    SyncInProgressError instead of interleaving writes.
    """

    def __init__(self, ctx: SyncContext):
        self.ctx = ctx
        self.materializer = DayMaterializer(ctx.store, ctx.config, ctx.tz)
        self.phase = SyncPhase.IDLE
        self._running = False
        self._cancel: CancelToken | None = None

    @property
    def running(self) -> bool:
        return self._running

    def cancel(self) -> bool:
        """Ask the active run to stop before its next page request.

        Returns False when no run is active.
        """
        if self._cancel is None:
            return False
        self._cancel.cancel()
        logger.info("Cancellation requested")
        return True

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def sync(
        self,
        *,
        full_resync: bool = False,
        action: HistoryAction | None = None,
        cancel: CancelToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> SyncResult:
        """Incremental sync, or a full resync from the configured start date."""
        self._require_api_key()
        return await self._run(
            action or ("full-resync" if full_resync else "sync"),
            start_date=self.ctx.config.start_date,
            end_date=None,
            incremental=not full_resync,
            reset=full_resync,
            cancel=cancel,
            progress=progress,
        )

    async def resync_range(
        self,
        start: str,
        end: str | None = None,
        *,
        cancel: CancelToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> SyncResult:
        """Re-fetch the inclusive local date window ``start..end``, bypassing the frontier."""
        start_day = parse_day(start)
        end_day = parse_day(end) if end else start_day
        if end_day < start_day:
            raise SyncValidationError(f"End date {end_day} is before start date {start_day}")
        self._require_api_key()
        return await self._run(
            "resync",
            start_date=start_day.isoformat(),
            end_date=(end_day + timedelta(days=1)).isoformat(),
            incremental=False,
            reset=False,
            cancel=cancel,
            progress=progress,
        )

    def _require_api_key(self) -> None:
        if not self.ctx.client.is_configured:
            raise SyncValidationError("Omi API key is not configured (set OMI_API_KEY)")

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def _run(
        self,
        action: HistoryAction,
        *,
        start_date: str | None,
        end_date: str | None,
        incremental: bool,
        reset: bool,
        cancel: CancelToken | None,
        progress: ProgressCallback | None,
    ) -> SyncResult:
        if self._running:
            raise SyncInProgressError("A conversation sync is already running")
        self._running = True
        self._cancel = cancel = cancel or CancelToken()

        ctx = self.ctx
        started = now_utc()
        calls_before = ctx.client.request_count
        run = _RunProgress()
        logger.info("Starting %s (start_date=%s, end_date=%s)", action, start_date, end_date)
        try:
            if reset:
                self._reset_frontier()
            ctx.store.ensure_folder(ctx.config.folder_path)
            try:
                await self._fetch_and_materialize(
                    run,
                    start_date=start_date,
                    end_date=end_date,
                    incremental=incremental,
                    cancel=cancel,
                    progress=progress,
                )
            except SyncCancelled:
                run.cancelled = True
                self.phase = SyncPhase.CANCELLED
                logger.info("%s cancelled after %d page(s)", action, run.pages)

            api_calls = ctx.client.request_count - calls_before
            advance = action != "resync" and not run.cancelled
            self._finalize(run, action, started, api_calls, advance_frontier=advance)
        except Exception as e:
            self.phase = SyncPhase.FAILED
            logger.error("Error syncing Omi conversations (%s): %s", action, e)
            self._record(
                action,
                count=0,
                api_calls=ctx.client.request_count - calls_before,
                error=str(e) or type(e).__name__,
            )
            ctx.save()
            raise
        finally:
            self._running = False
            self._cancel = None
            self.phase = SyncPhase.IDLE

        self._report(progress, "Sync complete", 100)
        logger.info(
            "Synced %d conversations across %d days (%d API calls)%s",
            run.records_synced,
            len(run.days),
            api_calls,
            " [cancelled]" if run.cancelled else "",
        )
        return SyncResult(
            records_synced=run.records_synced,
            stopped_early=run.stopped_early,
            api_calls=api_calls,
            days_written=sorted(run.days),
            cancelled=run.cancelled,
        )

    def _reset_frontier(self) -> None:
        ctx = self.ctx
        snapshot = ctx.state_store.snapshot()
        if snapshot:
            logger.info("Saved state snapshot to %s before full resync", snapshot)
        ctx.state.last_sync_timestamp = None
        ctx.state.synced = {}
        removed = ctx.archive.clear()
        logger.debug("Cleared %d archived day(s)", removed)
        ctx.save()

    async def _fetch_and_materialize(
        self,
        run: _RunProgress,
        *,
        start_date: str | None,
        end_date: str | None,
        incremental: bool,
        cancel: CancelToken,
        progress: ProgressCallback | None,
    ) -> None:
        client = self.ctx.client
        known_ids = self.ctx.state.known_ids
        last_sync = self.ctx.state.last_sync_timestamp
        offset = 0

        self._report(progress, "Fetching page 1...", 5)
        while True:
            if cancel.cancelled:
                raise SyncCancelled()

            self.phase = SyncPhase.FETCHING
            page = await client.fetch_page(offset, start_date=start_date, end_date=end_date)
            run.pages += 1
            if not page:
                break

            if incremental:
                selected, stopped = select_changed(page, known_ids, last_sync)
            else:
                selected, stopped = page, False
            self._report(
                progress,
                f"Fetched page {run.pages} ({len(selected)} to sync)",
                min(80, run.pages * 8),
            )

            if selected:
                self.phase = SyncPhase.MATERIALIZING
                for date_str, batch in sorted(group_by_local_date(selected, self.ctx.tz).items()):
                    self._materialize_day(date_str, batch)
                    run.days.add(date_str)
                    run.records_synced += len(batch)
                    self._report(progress, f"Wrote {date_str}", min(90, run.pages * 8 + 4))

            if stopped:
                run.stopped_early = True
                break
            if len(page) < client.page_size:
                break
            offset += client.page_size
            await client.pause(client.page_delay)

    def _materialize_day(self, date_str: str, batch: list[Conversation]) -> None:
        """Regenerate one day from the union of archived and freshly fetched records.

        Metadata is committed only after the documents are written.
        """
        ctx = self.ctx
        records = ctx.archive.merge_day(date_str, batch)
        entries = [(conv, build_meta(conv, ctx.tz)) for conv in records.values()]
        for meta in ctx.state.metas_for(date_str):
            if meta.id not in records:
                logger.warning("No archived body for %s; rendering from metadata", meta.id)
                entries.append((placeholder_conversation(meta), meta))

        all_dates = sorted(set(ctx.state.dates()) | {date_str})
        self.materializer.write_day(date_str, entries, all_dates)

        for _, meta in entries:
            ctx.state.synced[meta.id] = meta
        ctx.save()

    def _finalize(
        self,
        run: _RunProgress,
        action: HistoryAction,
        started: datetime,
        api_calls: int,
        *,
        advance_frontier: bool,
    ) -> None:
        ctx = self.ctx
        self.phase = SyncPhase.INDEXING
        if run.days:
            self._repair_navigation(run.days)
        rebuild_index(
            ctx.store,
            ctx.config.folder_path,
            ctx.state.synced.values(),
            file_name=ctx.config.index_file,
            top_n=ctx.config.category_top_n,
        )

        self.phase = SyncPhase.FINALIZING
        if advance_frontier:
            previous = ctx.state.last_sync_timestamp
            ctx.state.last_sync_timestamp = started if previous is None else max(previous, started)
        self._record(action, count=run.records_synced, api_calls=api_calls)
        ctx.save()

    def _repair_navigation(self, written: set[str]) -> None:
        """Rewrite prev/next links of written days and their known neighbours."""
        by_date: dict[str, list[SyncedMeta]] = defaultdict(list)
        for meta in self.ctx.state.synced.values():
            by_date[meta.date].append(meta)
        all_dates = sorted(by_date)

        targets = set(written)
        for date_str in written:
            targets.update(d for d in neighbours(date_str, all_dates) if d)
        for date_str in sorted(targets):
            self.materializer.write_index(date_str, by_date[date_str], all_dates)

    def _record(
        self,
        action: HistoryAction,
        *,
        count: int,
        api_calls: int | None = None,
        error: str | None = None,
    ) -> None:
        self.ctx.state.history = append_history(
            self.ctx.state.history,
            SyncHistoryEntry(
                timestamp=now_utc(),
                type="conversations",
                action=action,
                count=count,
                api_calls=api_calls,
                error=error,
            ),
        )

    @staticmethod
    def _report(progress: ProgressCallback | None, step: str, percent: int) -> None:
        logger.debug("%s (%d%%)", step, percent)
        if progress is not None:
            progress(step, percent)
