"""
Replication module for DBGuard.

This module ships local snapshots to an offsite store:
- S3 (aiobotocore) for production, MinIO/R2 via S3_ENDPOINT
- In-memory (for testing and local development)

Invariants:
    - Replication is best-effort; the Replicator never raises
    - Missing credentials disable replication without network I/O
"""

from .base import RemoteEntry, RemoteStore, create_remote_store
from .memory import InMemoryRemoteStore
from .replicator import Replicator
from .s3 import S3RemoteStore

__all__ = [
    # Protocol and types
    "RemoteStore",
    "RemoteEntry",
    # Factory
    "create_remote_store",
    # Implementations
    "S3RemoteStore",
    "InMemoryRemoteStore",
    # Best-effort facade
    "Replicator",
]
