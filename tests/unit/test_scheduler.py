"""
Unit tests for the backup scheduler.

Tests cover:
- Next fire time computation
- Waits across DST changes
- Independent failure of cycle stages
- Loop start/stop behaviour
"""

import asyncio
import time
from datetime import datetime, timedelta

import pytest

from backoffice.dbguard.errors import SnapshotFailedError
from backoffice.dbguard.replication import InMemoryRemoteStore, Replicator
from backoffice.dbguard.retention.manager import RetentionManager
from backoffice.dbguard.scheduler.scheduler import (
    BackupScheduler,
    CycleReport,
    next_run_at,
    seconds_until,
)
from backoffice.dbguard.snapshot.catalog import BackupCatalog
from backoffice.dbguard.snapshot.snapshotter import Snapshotter
from tests.conftest import create_database, set_age


class FailingSnapshotter:
    async def create_snapshot(self):
        raise SnapshotFailedError("all strategies failed")


class SlowSnapshotter:
    def __init__(self, inner, delay):
        self.inner = inner
        self.delay = delay

    async def create_snapshot(self):
        await asyncio.sleep(self.delay)
        return await self.inner.create_snapshot()


class BrokenRetention:
    def prune_older_than(self, days):
        raise OSError("permission denied")


class TestNextRunAt:
    """Tests for next_run_at."""

    def test_later_today(self):
        assert next_run_at(datetime(2026, 10, 19, 1, 30), 2, 0) == datetime(2026, 10, 19, 2, 0)

    def test_already_passed_today(self):
        assert next_run_at(datetime(2026, 10, 19, 2, 30), 2, 0) == datetime(2026, 10, 20, 2, 0)

    def test_exactly_at_fire_time(self):
        """A cycle that just fired is not re-armed for the same instant."""
        assert next_run_at(datetime(2026, 10, 19, 2, 0), 2, 0) == datetime(2026, 10, 20, 2, 0)

    def test_month_rollover(self):
        assert next_run_at(datetime(2026, 10, 31, 23, 0), 2, 0) == datetime(2026, 11, 1, 2, 0)

    def test_custom_minute(self):
        assert next_run_at(datetime(2026, 10, 19, 2, 10), 2, 15) == datetime(2026, 10, 19, 2, 15)


@pytest.fixture
def central_time(monkeypatch):
    """Pin local time to US Central (DST ends 2026-11-01, starts 2026-03-08)."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset not available")
    monkeypatch.setenv("TZ", "CST6CDT,M3.2.0,M11.1.0")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


class TestSecondsUntil:
    """Tests for seconds_until across DST changes."""

    def test_ordinary_day(self, central_time):
        now = datetime(2026, 10, 19, 14, 0)
        assert seconds_until(next_run_at(now), now) == 12 * 3600

    def test_fall_back_waits_the_extra_hour(self, central_time):
        """00:30 CDT to 02:00 CST is two and a half real hours."""
        now = datetime(2026, 11, 1, 0, 30)
        target = next_run_at(now)
        assert target == datetime(2026, 11, 1, 2, 0)

        delay = seconds_until(target, now)
        assert delay == 2.5 * 3600

        fired = (now.astimezone() + timedelta(seconds=delay)).astimezone()
        assert fired.replace(tzinfo=None) == datetime(2026, 11, 1, 2, 0)

    def test_fall_back_runs_once_that_day(self, central_time):
        """After firing at 02:00 the next run is the following day."""
        now = datetime(2026, 11, 1, 0, 30)
        fired = (
            now.astimezone() + timedelta(seconds=seconds_until(next_run_at(now), now))
        ).astimezone().replace(tzinfo=None)
        assert next_run_at(fired) == datetime(2026, 11, 2, 2, 0)

    def test_spring_forward_is_shorter(self, central_time):
        """22:00 CST to 03:00 CDT the next day is four real hours."""
        now = datetime(2026, 3, 7, 22, 0)
        assert seconds_until(datetime(2026, 3, 8, 3, 0), now) == 4 * 3600

    def test_past_target_is_zero(self):
        now = datetime(2026, 10, 19, 14, 0)
        assert seconds_until(datetime(2026, 10, 19, 13, 0), now) == 0.0


class TestRunCycle:
    """Tests for BackupScheduler.run_cycle."""

    @pytest.fixture
    def catalog(self, backup_dir):
        return BackupCatalog(backup_dir)

    @pytest.mark.asyncio
    async def test_full_cycle(self, database_path, backup_dir, catalog):
        store = InMemoryRemoteStore()
        old = create_database(backup_dir / "database-backup-2026-08-01-02-00-00.db", 1, 1)
        set_age(old, 60)
        scheduler = BackupScheduler(
            Snapshotter(database_path, backup_dir),
            Replicator(store),
            RetentionManager(catalog),
        )

        report = await scheduler.run_cycle()

        assert report.ok
        assert report.snapshot.verified
        assert report.remote_id == f"database-backups/{report.snapshot.filename}"
        assert report.pruned == 1
        assert store.object_ids() == [report.remote_id]
        assert [r.filename for r in catalog.list_local()] == [report.snapshot.filename]

    @pytest.mark.asyncio
    async def test_failing_remote_does_not_block_cycle(self, database_path, backup_dir, catalog):
        """Replication failure leaves snapshot and retention intact."""
        scheduler = BackupScheduler(
            Snapshotter(database_path, backup_dir),
            Replicator(InMemoryRemoteStore(fail_all=True)),
            RetentionManager(catalog),
        )

        report = await scheduler.run_cycle()

        assert report.snapshot is not None
        assert report.remote_id is None
        assert report.pruned == 0
        assert report.ok

    @pytest.mark.asyncio
    async def test_snapshot_failure_skips_upload_but_prunes(self, backup_dir, catalog):
        store = InMemoryRemoteStore()
        old = create_database(backup_dir / "database-backup-2026-08-01-02-00-00.db", 1, 1)
        set_age(old, 60)
        scheduler = BackupScheduler(
            FailingSnapshotter(), Replicator(store), RetentionManager(catalog)
        )

        report = await scheduler.run_cycle()

        assert report.snapshot is None
        assert store.calls == 0
        assert report.pruned == 1
        assert report.errors == ["snapshot: all strategies failed"]
        assert not report.ok

    @pytest.mark.asyncio
    async def test_retention_failure_is_reported(self, database_path, backup_dir):
        scheduler = BackupScheduler(
            Snapshotter(database_path, backup_dir), Replicator(None), BrokenRetention()
        )

        report = await scheduler.run_cycle()

        assert report.snapshot is not None
        assert report.pruned is None
        assert report.errors == ["retention: permission denied"]

    @pytest.mark.asyncio
    async def test_without_replicator(self, database_path, backup_dir, catalog):
        scheduler = BackupScheduler(
            Snapshotter(database_path, backup_dir), None, RetentionManager(catalog)
        )
        report = await scheduler.run_cycle()
        assert report.remote_id is None
        assert report.ok

    def test_report_to_dict(self):
        report = CycleReport(started_at=datetime(2026, 10, 19, 2, 0), errors=["upload: x"])
        data = report.to_dict()
        assert data["started_at"] == "2026-10-19T02:00:00"
        assert data["snapshot"] is None
        assert data["errors"] == ["upload: x"]


class TestSchedulerLoop:
    """Tests for start/stop."""

    @pytest.fixture
    def parts(self, database_path, backup_dir):
        catalog = BackupCatalog(backup_dir)
        return Snapshotter(database_path, backup_dir), RetentionManager(catalog), catalog

    def test_invalid_time(self, parts):
        snapshotter, retention, _ = parts
        with pytest.raises(ValueError):
            BackupScheduler(snapshotter, None, retention, hour=24)

    @pytest.mark.asyncio
    async def test_arms_next_run_and_stops(self, parts):
        snapshotter, retention, catalog = parts
        scheduler = BackupScheduler(
            snapshotter,
            None,
            retention,
            run_on_start=False,
            clock=lambda: datetime(2026, 10, 19, 14, 0),
        )

        await scheduler.start()
        await asyncio.sleep(0.05)

        assert scheduler.running
        assert scheduler.next_run_at == datetime(2026, 10, 20, 2, 0)

        await scheduler.stop()

        assert not scheduler.running
        assert scheduler.next_run_at is None
        assert catalog.list_local() == []

    @pytest.mark.asyncio
    async def test_run_on_start(self, parts):
        snapshotter, retention, catalog = parts
        scheduler = BackupScheduler(
            snapshotter, None, retention, clock=lambda: datetime(2026, 10, 19, 14, 0)
        )

        await scheduler.start()
        for _ in range(100):
            if scheduler.stats["cycle_count"]:
                break
            await asyncio.sleep(0.02)
        await scheduler.stop()

        assert scheduler.stats["cycle_count"] == 1
        assert len(catalog.list_local()) == 1

    @pytest.mark.asyncio
    async def test_fires_at_scheduled_time(self, parts):
        """The cycle runs when the armed time arrives, then re-arms."""
        snapshotter, retention, catalog = parts
        scheduler = BackupScheduler(
            snapshotter,
            None,
            retention,
            run_on_start=False,
            clock=lambda: datetime(2026, 10, 19, 1, 59, 59, 950000),
        )

        await scheduler.start()
        for _ in range(200):
            if scheduler.stats["cycle_count"] >= 2:
                break
            await asyncio.sleep(0.02)
        await scheduler.stop()

        assert scheduler.stats["cycle_count"] >= 2
        assert len(catalog.list_local()) == scheduler.stats["cycle_count"]

    @pytest.mark.asyncio
    async def test_stop_lets_inflight_cycle_finish(self, parts):
        snapshotter, retention, catalog = parts
        scheduler = BackupScheduler(
            SlowSnapshotter(snapshotter, delay=0.2),
            None,
            retention,
            clock=lambda: datetime(2026, 10, 19, 14, 0),
        )

        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert scheduler.stats["cycle_count"] == 1
        assert scheduler.stats["last_report"]["snapshot"] is not None
        assert len(catalog.list_local()) == 1

    @pytest.mark.asyncio
    async def test_start_twice_and_stop_twice(self, parts):
        snapshotter, retention, _ = parts
        scheduler = BackupScheduler(snapshotter, None, retention, run_on_start=False)

        await scheduler.start()
        task = scheduler._task
        await scheduler.start()
        assert scheduler._task is task

        await scheduler.stop()
        await scheduler.stop()
        assert not scheduler.running
