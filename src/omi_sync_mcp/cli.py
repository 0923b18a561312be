"""Command-line entry point: ``omi-sync``."""

import argparse
import asyncio
import logging
import signal
import sys

from .config import Config
from .errors import OmiSyncError
from .state import SyncContext
from .sync import SyncCoordinator
from .types import SyncResult

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="omi-sync", description="Sync Omi conversations into a markdown vault."
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--full", action="store_true", help="discard the sync frontier and re-import everything"
    )
    mode.add_argument(
        "--dates",
        nargs="+",
        metavar="DATE",
        help="resync one day (START) or an inclusive range (START END), YYYY-MM-DD",
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="hide progress output")
    return parser


async def _run(config: Config, args: argparse.Namespace) -> SyncResult:
    ctx = SyncContext.from_config(config)
    try:
        return await _execute(SyncCoordinator(ctx), args)
    finally:
        await ctx.client.aclose()


async def _execute(coordinator: SyncCoordinator, args: argparse.Namespace) -> SyncResult:
    """Run one sync. Ctrl+C cancels it cooperatively so partial results are finalized."""

    def progress(step: str, percent: int) -> None:
        if not args.quiet:
            print(f"[{percent:3d}%] {step}", file=sys.stderr)

    def interrupt() -> None:
        print("Cancelling after the current page...", file=sys.stderr)
        coordinator.cancel()

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, interrupt)
        handled = True
    except NotImplementedError:
        # Windows event loops
        handled = False
    try:
        if args.dates:
            if len(args.dates) > 2:
                raise OmiSyncError("--dates takes START or START END")
            return await coordinator.resync_range(*args.dates, progress=progress)
        return await coordinator.sync(full_resync=args.full, progress=progress)
    finally:
        if handled:
            loop.remove_signal_handler(signal.SIGINT)


def main(argv: list[str] | None = None) -> None:
    args = _parser().parse_args(argv)
    config = Config()
    logging.basicConfig(level=config.log_level.upper(), format=LOG_FORMAT)

    try:
        result = asyncio.run(_run(config, args))
    except (OmiSyncError, OSError) as e:
        print(f"Error syncing Omi conversations: {e}")
        print("Check the logs for details.")
        sys.exit(1)

    print("Omi sync complete." if not result.cancelled else "Omi sync cancelled.")
    print(f"  Conversations: {result.records_synced}")
    print(f"  Days written:  {len(result.days_written)}")
    print(f"  API calls:     {result.api_calls}")
    if result.stopped_early:
        print("  Stopped early at already-synced conversations.")
    print(f"  Vault folder:  {config.vault_dir}/{config.folder_path}")
