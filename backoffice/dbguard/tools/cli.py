"""
Operator CLI for DBGuard.

Commands:
    dbguard snapshot [--upload]
    dbguard list [--verify]
    dbguard verify <file>
    dbguard delete <file>
    dbguard restore <file> --yes
    dbguard prune [--days N]
    dbguard stats [--remote]
    dbguard remote list
    dbguard remote upload <file>
    dbguard remote download <id> [--dest PATH]
    dbguard remote delete <id>
    dbguard serve

Every command reads the same environment variables as the daemon and
accepts --json for machine-readable output.

Invariants:
    - Exit code 0 on success, 1 on failure, 2 on configuration error
    - restore refuses to run without --yes
    - Remote failures are reported, never raised

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep --json output stable for scripts
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from typing import Any

from ..config import BackupConfig
from ..errors import BackupError
from ..service import BackupService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


class BackupCLI:
    """Runs one CLI command against a BackupService.

    Example:
        >>> cli = BackupCLI(service, as_json=True)
        >>> await cli.snapshot(upload=False)
        0
    """

    def __init__(self, service: BackupService, as_json: bool = False) -> None:
        self.service = service
        self.as_json = as_json

    def _emit(self, payload: Any, lines: list[str]) -> None:
        if self.as_json:
            print(json.dumps(payload, indent=2, sort_keys=True, default=str))
        else:
            for line in lines:
                print(line)

    async def snapshot(self, upload: bool) -> int:
        record = await self.service.create_snapshot(upload=upload)
        lines = [
            f"Created {record.filename} ({record.size} bytes, strategy={record.strategy})",
            f"  Verified: {'yes' if record.verified else 'NO'}",
        ]
        if upload:
            lines.append(f"  Remote: {record.remote_id or 'upload failed'}")
        self._emit(record.to_dict(), lines)
        return EXIT_OK if record.verified else EXIT_FAILURE

    def list(self, verify: bool) -> int:
        records = self.service.list_local(verify=verify)
        lines = [f"{len(records)} snapshot(s) in {self.service.catalog.backup_dir}"]
        for r in records:
            mark = ""
            if verify:
                mark = "  ok" if r.verified else "  INVALID"
            lines.append(f"  {r.filename}  {r.size:>12}  {r.created_at.isoformat()}{mark}")
        self._emit([r.to_dict() for r in records], lines)
        return EXIT_OK

    def verify(self, filename: str) -> int:
        result = self.service.verify_backup(filename)
        if not result["exists"]:
            lines = [f"Backup not found: {filename}"]
        elif not result["valid"]:
            lines = [f"{filename} is NOT a valid SQLite database"]
        else:
            lines = [f"{filename} is valid"]
            comparison = result["comparison"]
            if comparison is not None:
                if comparison["matches"]:
                    lines.append("  Row counts match the live database")
                else:
                    lines.append("  Row counts differ from the live database:")
                    for table in comparison["mismatched_tables"]:
                        backup = comparison["backup_counts"].get(table)
                        source = comparison["source_counts"].get(table)
                        lines.append(f"    {table}: backup={backup} live={source}")
        self._emit(result, lines)
        return EXIT_OK if result["valid"] else EXIT_FAILURE

    def delete(self, filename: str) -> int:
        deleted = self.service.delete_local(filename)
        self._emit(
            {"filename": filename, "deleted": deleted},
            [f"Deleted {filename}" if deleted else f"Backup not found: {filename}"],
        )
        return EXIT_OK if deleted else EXIT_FAILURE

    async def restore(self, filename: str, confirmed: bool) -> int:
        if not confirmed:
            print(
                f"Restoring {filename} overwrites {self.service.database_path}. "
                "Re-run with --yes to confirm.",
                file=sys.stderr,
            )
            return EXIT_FAILURE

        result = await self.service.restore(filename)
        self._emit(
            result.to_dict(),
            [
                "Restore completed successfully",
                f"  Restored from: {result.restored_from}",
                f"  Safety snapshot: {result.safety_snapshot.filename}",
                f"  Duration: {result.duration_ms}ms",
            ],
        )
        return EXIT_OK

    def prune(self, days: float | None) -> int:
        window = self.service.retention_days if days is None else days
        deleted = self.service.prune_older_than(window)
        self._emit(
            {"deleted": deleted, "days": window},
            [f"Pruned {deleted} snapshot(s) older than {window} days"],
        )
        return EXIT_OK

    async def stats(self, include_remote: bool) -> int:
        stats = await self.service.stats(include_remote=include_remote)
        lines = [
            f"Snapshots: {stats.count}",
            f"Total size: {stats.total_mb} MB",
            f"Oldest: {stats.oldest.isoformat() if stats.oldest else '-'}",
            f"Newest: {stats.newest.isoformat() if stats.newest else '-'}",
        ]
        if include_remote:
            remote = stats.remote_count if stats.remote_count is not None else "unavailable"
            lines.append(f"Remote snapshots: {remote}")
        self._emit(stats.to_dict(), lines)
        return EXIT_OK

    async def remote_list(self) -> int:
        if not self.service.replicator.enabled:
            print("Remote store not configured", file=sys.stderr)
            return EXIT_FAILURE
        entries = await self.service.list_remote()
        lines = [f"{len(entries)} remote snapshot(s)"]
        for e in entries:
            modified = e.modified_time.isoformat() if e.modified_time else "-"
            lines.append(f"  {e.id}  {e.size:>12}  {modified}")
        self._emit([e.to_dict() for e in entries], lines)
        return EXIT_OK

    async def remote_upload(self, filename: str) -> int:
        remote_id = await self.service.upload_remote(filename)
        if remote_id:
            message = f"Uploaded {filename} as {remote_id}"
        else:
            message = f"Upload of {filename} failed"
        self._emit({"filename": filename, "remote_id": remote_id}, [message])
        return EXIT_OK if remote_id else EXIT_FAILURE

    async def remote_download(self, remote_id: str, dest: str | None) -> int:
        if dest:
            ok = await self.service.download_remote(remote_id, dest)
            message = f"Downloaded {remote_id} to {dest}" if ok else f"Download failed: {remote_id}"
            self._emit({"remote_id": remote_id, "dest": dest, "downloaded": ok}, [message])
            return EXIT_OK if ok else EXIT_FAILURE

        record = await self.service.fetch_remote(remote_id)
        if record:
            self._emit(record.to_dict(), [f"Fetched {remote_id} as {record.filename}"])
        else:
            self._emit(None, [f"Fetch of {remote_id} failed"])
        return EXIT_OK if record else EXIT_FAILURE

    async def remote_delete(self, remote_id: str) -> int:
        ok = await self.service.delete_remote(remote_id)
        self._emit(
            {"remote_id": remote_id, "deleted": ok},
            [f"Deleted {remote_id}" if ok else f"Delete of {remote_id} failed"],
        )
        return EXIT_OK if ok else EXIT_FAILURE


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dbguard", description="Back up, verify, replicate and restore the SQLite database"
    )
    parser.add_argument("--json", action="store_true", help="Machine-readable output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    snapshot_parser = subparsers.add_parser("snapshot", help="Create a snapshot now")
    snapshot_parser.add_argument("--upload", action="store_true", help="Also upload it")

    list_parser = subparsers.add_parser("list", help="List local snapshots")
    list_parser.add_argument("--verify", action="store_true", help="Verify each snapshot")

    verify_parser = subparsers.add_parser("verify", help="Verify one snapshot")
    verify_parser.add_argument("filename", help="Snapshot filename")

    delete_parser = subparsers.add_parser("delete", help="Delete one local snapshot")
    delete_parser.add_argument("filename", help="Snapshot filename")

    restore_parser = subparsers.add_parser("restore", help="Restore the live database")
    restore_parser.add_argument("filename", help="Snapshot filename")
    restore_parser.add_argument("--yes", action="store_true", help="Confirm the overwrite")

    prune_parser = subparsers.add_parser("prune", help="Delete old local snapshots")
    prune_parser.add_argument(
        "--days", type=float, help="Retention window (default: RETENTION_DAYS)"
    )

    stats_parser = subparsers.add_parser("stats", help="Show snapshot statistics")
    stats_parser.add_argument("--remote", action="store_true", help="Include remote count")

    remote_parser = subparsers.add_parser("remote", help="Manage remote snapshots")
    remote_sub = remote_parser.add_subparsers(dest="remote_command", required=True)
    remote_sub.add_parser("list", help="List remote snapshots")
    upload_parser = remote_sub.add_parser("upload", help="Upload a local snapshot")
    upload_parser.add_argument("filename", help="Snapshot filename")
    download_parser = remote_sub.add_parser("download", help="Download a remote snapshot")
    download_parser.add_argument("remote_id", help="Remote snapshot id")
    download_parser.add_argument(
        "--dest", help="Destination path (default: into the backup directory)"
    )
    remote_delete_parser = remote_sub.add_parser("delete", help="Delete a remote snapshot")
    remote_delete_parser.add_argument("remote_id", help="Remote snapshot id")

    subparsers.add_parser("serve", help="Run the backup daemon")

    return parser


async def _dispatch(cli: BackupCLI, args: argparse.Namespace) -> int:
    command = args.command
    if command == "snapshot":
        return await cli.snapshot(args.upload)
    elif command == "list":
        return cli.list(args.verify)
    elif command == "verify":
        return cli.verify(args.filename)
    elif command == "delete":
        return cli.delete(args.filename)
    elif command == "restore":
        return await cli.restore(args.filename, args.yes)
    elif command == "prune":
        return cli.prune(args.days)
    elif command == "stats":
        return await cli.stats(args.remote)
    elif command == "remote":
        sub = args.remote_command
        if sub == "list":
            return await cli.remote_list()
        elif sub == "upload":
            return await cli.remote_upload(args.filename)
        elif sub == "download":
            return await cli.remote_download(args.remote_id, args.dest)
        elif sub == "delete":
            return await cli.remote_delete(args.remote_id)
    raise ValueError(f"Unknown command: {command}")


async def _run_command(config: BackupConfig, args: argparse.Namespace) -> int:
    service = BackupService.from_config(config)
    try:
        return await _dispatch(BackupCLI(service, as_json=args.json), args)
    finally:
        await service.close()


def run(argv: Sequence[str] | None = None, config: BackupConfig | None = None) -> int:
    """Parse arguments and run one command.

    Args:
        argv: Command-line arguments (default: sys.argv[1:])
        config: Configuration (default: loaded from environment)

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    if args.command == "serve":
        from ..main import main as serve_main

        serve_main()
        return EXIT_OK

    if config is None:
        try:
            config = BackupConfig.from_env()
        except ValueError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            return EXIT_CONFIG

    try:
        return asyncio.run(_run_command(config, args))
    except (BackupError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE


def main() -> None:
    """CLI entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
