"""
CLI tools for DBGuard administration.

This module provides the dbguard command for:
- snapshot, list, verify, delete, prune, stats: local snapshots
- restore: roll the live database back (safety snapshot first)
- remote: list, upload, download and delete offsite copies
- serve: run the backup daemon

Invariants:
    - Tools work offline (no running daemon required)
    - All operations are logged for audit
"""

from .cli import BackupCLI, build_parser, run

__all__ = ["BackupCLI", "build_parser", "run"]
