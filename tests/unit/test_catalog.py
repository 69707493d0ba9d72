"""
Unit tests for the local snapshot catalog.

Tests cover:
- Listing order and filtering
- Filename resolution and path traversal
- Deletion of snapshots with companions
- Statistics
"""

import pytest

from backoffice.dbguard.snapshot.catalog import BackupCatalog
from tests.conftest import create_database, set_age


def make_snapshot(backup_dir, name, age_days=0.0):
    path = create_database(backup_dir / name, bills=1, parties=1)
    set_age(path, age_days)
    return path


class TestBackupCatalog:
    """Tests for BackupCatalog."""

    @pytest.fixture
    def catalog(self, backup_dir):
        return BackupCatalog(backup_dir)

    def test_empty_directory(self, catalog):
        assert catalog.list_local() == []

    def test_missing_directory(self, workdir):
        """A backup directory that does not exist yet lists as empty."""
        assert BackupCatalog(workdir / "nothing-here").list_local() == []

    def test_newest_first(self, catalog, backup_dir):
        make_snapshot(backup_dir, "database-backup-2026-10-01-02-00-00.db", age_days=18)
        make_snapshot(backup_dir, "database-backup-2026-10-19-02-00-00.db", age_days=0)
        make_snapshot(backup_dir, "database-backup-2026-10-10-02-00-00.db", age_days=9)

        names = [r.filename for r in catalog.list_local()]

        assert names == [
            "database-backup-2026-10-19-02-00-00.db",
            "database-backup-2026-10-10-02-00-00.db",
            "database-backup-2026-10-01-02-00-00.db",
        ]

    def test_ignores_other_files(self, catalog, backup_dir):
        """Companions, partial downloads and foreign files are not snapshots."""
        path = make_snapshot(backup_dir, "database-backup-2026-10-19-02-00-00.db")
        (backup_dir / (path.name + "-wal")).write_bytes(b"wal")
        (backup_dir / ".database-backup-2026-10-19-03-00-00.db.part").write_bytes(b"x")
        (backup_dir / "notes.txt").write_text("hello")

        records = catalog.list_local()

        assert [r.filename for r in records] == [path.name]
        assert [p.name for p in records[0].companions] == [path.name + "-wal"]

    def test_list_with_verify(self, catalog, backup_dir):
        make_snapshot(backup_dir, "database-backup-2026-10-19-02-00-00.db")
        (backup_dir / "database-backup-2026-10-18-02-00-00.db").write_bytes(b"corrupt")

        verified = {r.filename: r.verified for r in catalog.list_local(verify=True)}

        assert verified == {
            "database-backup-2026-10-19-02-00-00.db": True,
            "database-backup-2026-10-18-02-00-00.db": False,
        }

    def test_list_without_verify_reports_unverified(self, catalog, backup_dir):
        make_snapshot(backup_dir, "database-backup-2026-10-19-02-00-00.db")
        assert [r.verified for r in catalog.list_local()] == [False]

    @pytest.mark.parametrize(
        "name",
        ["../database-backup-2026-10-19-02-00-00.db", "database.db", "sub/x.db", ""],
    )
    def test_resolve_rejects_bad_names(self, catalog, name):
        with pytest.raises(ValueError):
            catalog.resolve(name)

    def test_get(self, catalog, backup_dir):
        path = make_snapshot(backup_dir, "database-backup-2026-10-19-02-00-00.db")
        record = catalog.get(path.name, verify=True)
        assert record.verified is True
        assert catalog.get("database-backup-2020-01-01-00-00-00.db") is None

    def test_delete_removes_companions(self, catalog, backup_dir):
        path = make_snapshot(backup_dir, "database-backup-2026-10-19-02-00-00.db")
        (backup_dir / (path.name + "-wal")).write_bytes(b"wal")
        (backup_dir / (path.name + "-shm")).write_bytes(b"shm")

        assert catalog.delete_local(path.name) is True

        assert list(backup_dir.iterdir()) == []

    def test_delete_missing(self, catalog):
        assert catalog.delete_local("database-backup-2026-10-19-02-00-00.db") is False

    def test_stats(self, catalog, backup_dir):
        old = make_snapshot(backup_dir, "database-backup-2026-10-01-02-00-00.db", age_days=18)
        new = make_snapshot(backup_dir, "database-backup-2026-10-19-02-00-00.db", age_days=0)

        stats = catalog.stats()

        assert stats.count == 2
        assert stats.total_bytes == old.stat().st_size + new.stat().st_size
        assert stats.oldest < stats.newest
        assert stats.remote_count is None

    def test_stats_empty(self, catalog):
        stats = catalog.stats()
        assert (stats.count, stats.total_bytes, stats.oldest, stats.newest) == (0, 0, None, None)
