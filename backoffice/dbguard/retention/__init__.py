"""
Retention module for DBGuard.

Prunes local snapshots older than the configured window (RETENTION_DAYS,
30 by default). Remote copies are managed separately.
"""

from .manager import RetentionManager

__all__ = ["RetentionManager"]
