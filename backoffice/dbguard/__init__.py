"""
DBGuard - backup, verification, replication, retention and restore for the
back-office SQLite database.

The back office keeps every business entity (bills, parties, inventory,
dispatch, staff) in one SQLite file running in WAL mode. This package
protects that file:

    ┌──────────────┐  create_snapshot  ┌──────────────┐  upload  ┌──────────────┐
    │  Scheduler   │──────────────────▶│ Snapshotter  │─────────▶│  Replicator  │
    │ (02:00 daily)│                   │ + Verifier   │          │ (S3, best    │
    └──────┬───────┘                   └──────┬───────┘          │  effort)     │
           │ prune                            │                  └──────────────┘
           ▼                                  ▼
    ┌──────────────┐                   ┌──────────────┐
    │  Retention   │──────────────────▶│ backups/*.db │◀──── Restorer (operator)
    └──────────────┘                   └──────────────┘

Invariants:
    - The live database file is only ever overwritten by the Restorer, and
      only after a verified safety snapshot of the current state exists
    - verified=True is never persisted; it is re-derived from the bytes
    - Remote replication never affects the outcome of a local operation

How to change safely:
    - New snapshot strategies go at the end of the chain unless they are
      atomic; keep raw copy last
    - Keep the snapshot filename pattern stable, retention and listing
      depend on it

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
