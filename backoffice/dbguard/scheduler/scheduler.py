"""
Daily backup scheduler for DBGuard.

Runs one cycle per day at a fixed local wall-clock time (02:00 by default):

    Snapshotter.create_snapshot()
        -> Replicator.upload_remote()      (skipped when no snapshot)
        -> RetentionManager.prune_older_than()

Invariants:
    - Each stage fails independently; a failure is logged and the next stage
      still runs (retention always runs)
    - Cycles never overlap
    - The wait is measured in absolute time, so a DST change never moves
      the cycle off its local fire time or runs it twice in one day
    - The next fire time is recomputed from the clock after every cycle, so
      a long cycle or a suspended host never causes a burst of catch-up runs
    - stop() never interrupts a cycle that is already running

How to change safely:
    - Scheduled failures are only visible in logs; keep every stage logging
    - Keep the loop on a single task so stop() has one thing to await
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from ..replication.replicator import Replicator
from ..retention.manager import RetentionManager
from ..snapshot.records import BackupRecord
from ..snapshot.snapshotter import Snapshotter

logger = logging.getLogger(__name__)


def next_run_at(now: datetime, hour: int = 2, minute: int = 0) -> datetime:
    """Return the next fire time strictly after `now`.

    Today at hour:minute if that is still ahead, otherwise tomorrow.
    """
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def seconds_until(target: datetime, now: datetime) -> float:
    """Real seconds from `now` until the wall-clock time `target`.

    Naive values are local time. Both sides are resolved to absolute
    instants first, so a DST change in between (the autumn fall-back hour)
    is counted and the cycle still fires at the intended local time.
    """
    return max(0.0, (target.astimezone() - now.astimezone()).total_seconds())


@dataclass
class CycleReport:
    """Outcome of one backup cycle.

    Attributes:
        started_at: When the cycle began
        finished_at: When the cycle ended
        snapshot: Snapshot produced, or None if the snapshot stage failed
        remote_id: Remote id of the upload, or None
        pruned: Number of snapshots pruned, or None if retention failed
        errors: One "stage: message" entry per failed stage
    """

    started_at: datetime
    finished_at: datetime | None = None
    snapshot: BackupRecord | None = None
    remote_id: str | None = None
    pruned: int | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "remote_id": self.remote_id,
            "pruned": self.pruned,
            "errors": list(self.errors),
        }


class BackupScheduler:
    """Runs the snapshot/upload/prune cycle once a day.

    Attributes:
        next_run_at: Armed fire time, None while not running

    Example:
        >>> scheduler = BackupScheduler(snapshotter, replicator, retention)
        >>> await scheduler.start()
        >>> scheduler.next_run_at
        datetime.datetime(2026, 10, 20, 2, 0)
        >>> await scheduler.stop()
    """

    def __init__(
        self,
        snapshotter: Snapshotter,
        replicator: Replicator | None,
        retention: RetentionManager,
        retention_days: float = 30,
        hour: int = 2,
        minute: int = 0,
        run_on_start: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the scheduler.

        Args:
            snapshotter: Produces the daily snapshot
            replicator: Uploads it (None disables the upload stage)
            retention: Prunes old local snapshots
            retention_days: Retention window passed to the pruner
            hour: Local hour of the daily run
            minute: Local minute of the daily run
            run_on_start: Run one cycle immediately on start()
            clock: Local wall-clock source
        """
        if not 0 <= hour <= 23 or not 0 <= minute <= 59:
            raise ValueError(f"Invalid schedule time {hour:02d}:{minute:02d}")

        self.snapshotter = snapshotter
        self.replicator = replicator
        self.retention = retention
        self.retention_days = retention_days
        self.hour = hour
        self.minute = minute
        self.run_on_start = run_on_start
        self._clock = clock

        self.next_run_at: datetime | None = None
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._cycle_lock = asyncio.Lock()
        self._cycle_count = 0
        self._last_report: CycleReport | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the scheduler loop in a background task."""
        if self.running:
            logger.warning("Backup scheduler already running")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Starting backup scheduler",
            extra={
                "schedule": f"{self.hour:02d}:{self.minute:02d}",
                "retention_days": self.retention_days,
                "run_on_start": self.run_on_start,
            },
        )

    async def stop(self) -> None:
        """Stop the scheduler, letting an in-flight cycle finish."""
        if self._task is None:
            return

        logger.info("Stopping backup scheduler")
        self._stop_event.set()
        task, self._task = self._task, None
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.next_run_at = None

    async def _loop(self) -> None:
        try:
            if self.run_on_start:
                await self.run_cycle()

            while not self._stop_event.is_set():
                self.next_run_at = next_run_at(self._clock(), self.hour, self.minute)
                delay = seconds_until(self.next_run_at, self._clock())
                logger.debug(f"Next backup cycle at {self.next_run_at.isoformat()}")

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                    break
                except asyncio.TimeoutError:
                    pass

                await self.run_cycle()

        except asyncio.CancelledError:
            logger.info("Backup scheduler cancelled")
            raise
        except Exception as e:
            logger.error(f"Backup scheduler error: {e}", exc_info=True)
        finally:
            self.next_run_at = None

    async def run_cycle(self) -> CycleReport:
        """Run snapshot, upload and prune once.

        Never raises; failures are recorded in the report and logged.
        """
        async with self._cycle_lock:
            report = CycleReport(started_at=self._clock())
            logger.info("Backup cycle started")

            try:
                report.snapshot = await self.snapshotter.create_snapshot()
            except Exception as e:
                logger.error(f"Scheduled snapshot failed: {e}", exc_info=True)
                report.errors.append(f"snapshot: {e}")

            if report.snapshot is not None and self.replicator is not None:
                try:
                    report.remote_id = await self.replicator.upload_remote(
                        report.snapshot.path, report.snapshot.filename
                    )
                except Exception as e:
                    logger.error(f"Scheduled upload failed: {e}", exc_info=True)
                    report.errors.append(f"upload: {e}")

            try:
                loop = asyncio.get_running_loop()
                report.pruned = await loop.run_in_executor(
                    None, self.retention.prune_older_than, self.retention_days
                )
            except Exception as e:
                logger.error(f"Scheduled retention failed: {e}", exc_info=True)
                report.errors.append(f"retention: {e}")

            report.finished_at = self._clock()
            self._cycle_count += 1
            self._last_report = report

            logger.info(
                "Backup cycle finished",
                extra={
                    "snapshot": report.snapshot.filename if report.snapshot else None,
                    "remote_id": report.remote_id,
                    "pruned": report.pruned,
                    "errors": len(report.errors),
                },
            )
            return report

    @property
    def stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        return {
            "running": self.running,
            "cycle_count": self._cycle_count,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "last_report": self._last_report.to_dict() if self._last_report else None,
        }
