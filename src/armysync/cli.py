"""Command-line front end for armysync.

Mirrors a storage file to Firestore for one account::

    armysync --storage ~/.armysync/storage.json --uid USER push
    armysync --uid USER status
    armysync --uid USER watch

Credentials and project settings come from ``ARMYSYNC_*`` environment
variables (see :meth:`armysync.config.SyncConfig.from_env`); the identity
token can be given with ``--id-token`` or ``ARMYSYNC_ID_TOKEN``.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from armysync.config import SyncConfig
from armysync.exceptions import ArmySyncError
from armysync.local.storage import FileStorageArea
from armysync.remote.store import FirestoreRemoteStore
from armysync.session import Identity
from armysync.sync.manager import SyncManager

_logger = logging.getLogger(__name__)

DEFAULT_STORAGE_PATH = Path.home() / ".armysync" / "storage.json"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="armysync",
        description="Synchronize locally stored army lists, custom units and detachments with Firestore.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--storage",
        type=Path,
        default=Path(os.environ.get("ARMYSYNC_STORAGE", DEFAULT_STORAGE_PATH)),
        help="Local storage file (default: %(default)s)",
    )
    parser.add_argument("--uid", default=os.environ.get("ARMYSYNC_UID"), help="Account ID")
    parser.add_argument("--id-token", default=os.environ.get("ARMYSYNC_ID_TOKEN"), help="Identity token")
    parser.add_argument("--project-id", help="Firestore project (overrides ARMYSYNC_PROJECT_ID)")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("push", help="Upload local data now")
    sub.add_parser("pull", help="Overwrite local data with the remote copy")
    sub.add_parser("status", help="Show whether remote data exists and when it was last synced")
    clear = sub.add_parser("clear", help="Delete the remote copy")
    clear.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    watch = sub.add_parser("watch", help="Keep syncing local changes until interrupted")
    watch.add_argument("--duration", type=float, default=None, help="Stop after this many seconds")
    return parser


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, default=str, ensure_ascii=False))


async def _watch(manager: SyncManager, duration: float | None) -> None:
    print(f"Watching for local changes as {manager.status.uid} (Ctrl+C to stop)")
    if duration is None:
        await asyncio.Event().wait()
    else:
        await asyncio.sleep(duration)
    _print_json(manager.status.model_dump(mode="json"))


async def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    if not args.uid:
        print("An account ID is required (--uid or ARMYSYNC_UID)", file=sys.stderr)
        return 2

    overrides: dict[str, Any] = {"auto_sync": args.command == "watch"}
    if args.project_id:
        overrides["project_id"] = args.project_id

    try:
        config = SyncConfig.from_env(**overrides)
        area = FileStorageArea(args.storage)
        identity = Identity(uid=args.uid, id_token=args.id_token)

        async with FirestoreRemoteStore(config) as remote:
            storage = area.context()
            try:
                async with SyncManager(
                    storage,
                    remote,
                    config=config,
                    on_sync_error=lambda exc: print(f"Sync failed: {exc}", file=sys.stderr),
                ) as manager:
                    manager.set_identity(identity)

                    if args.command == "push":
                        data = await manager.push()
                        print(f"Pushed local data (lastSynced={data.last_synced})")
                    elif args.command == "pull":
                        if await manager.pull():
                            print(f"Restored remote data into {area.path}")
                        else:
                            print("No remote data found; local storage left unchanged")
                    elif args.command == "status":
                        _print_json(
                            {
                                "uid": identity.uid,
                                "storage": str(area.path),
                                "hasRemoteData": await manager.has_remote_data(),
                                "lastSynced": await manager.last_synced_at(),
                            }
                        )
                    elif args.command == "clear":
                        if not args.yes:
                            answer = input(f"Delete all remote data for {identity.uid}? [y/N] ")
                            if answer.strip().lower() not in {"y", "yes"}:
                                print("Aborted")
                                return 1
                        await manager.clear_remote()
                        print("Remote data cleared")
                    elif args.command == "watch":
                        await _watch(manager, args.duration)
            finally:
                storage.close()
    except ArmySyncError as exc:
        _logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    run()
