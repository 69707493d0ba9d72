"""
Restore module for DBGuard.

Rolls the live database back to a local snapshot, always taking a
verified safety snapshot first so the rollback itself can be undone.
"""

from .restorer import Restorer, RestoreResult

__all__ = ["Restorer", "RestoreResult"]
