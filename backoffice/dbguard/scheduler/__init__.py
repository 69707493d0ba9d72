"""
Scheduler module for DBGuard.

Runs the daily snapshot -> upload -> prune cycle inside the daemon.
"""

from .scheduler import BackupScheduler, CycleReport, next_run_at, seconds_until

__all__ = ["BackupScheduler", "CycleReport", "next_run_at", "seconds_until"]
