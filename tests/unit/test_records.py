"""
Unit tests for snapshot naming and records.

Tests cover:
- Filename formatting and parsing
- Same-second sequence suffixes
- Record immutability and serialization
"""

import dataclasses
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from backoffice.dbguard.snapshot.records import (
    BackupRecord,
    BackupStats,
    backup_filename,
    companion_paths,
    existing_companions,
    is_backup_filename,
    parse_backup_filename,
)


class TestBackupFilename:
    """Tests for backup_filename / parse_backup_filename."""

    def test_format(self):
        """Filename encodes date and time to the second."""
        moment = datetime(2026, 10, 19, 2, 0, 5, tzinfo=timezone.utc)
        assert backup_filename(moment) == "database-backup-2026-10-19-02-00-05.db"

    def test_sequence_suffix(self):
        """Collisions within one second get a zero-padded _NNN suffix."""
        moment = datetime(2026, 10, 19, 2, 0, 5, tzinfo=timezone.utc)
        assert backup_filename(moment, 2) == "database-backup-2026-10-19-02-00-05_002.db"

    def test_lexical_order_is_creation_order(self):
        """Sorting bare names gives creation order, suffixes included."""
        moment = datetime(2026, 10, 19, 2, 0, 5, tzinfo=timezone.utc)
        later = moment + timedelta(seconds=1)
        created = [backup_filename(moment, seq) for seq in range(12)] + [backup_filename(later)]
        assert sorted(created) == created

    def test_legacy_dash_suffix_still_parses(self):
        """Names written by older releases stay visible to listing and retention."""
        moment, seq = parse_backup_filename("database-backup-2026-10-19-02-00-05-3.db")
        assert moment == datetime(2026, 10, 19, 2, 0, 5, tzinfo=timezone.utc)
        assert seq == 3

    def test_aware_time_converted_to_utc(self):
        """Timezone-aware times are written in UTC."""
        plus_two = timezone(timedelta(hours=2))
        moment = datetime(2026, 10, 19, 4, 0, 0, tzinfo=plus_two)
        assert backup_filename(moment) == "database-backup-2026-10-19-02-00-00.db"

    def test_parse_roundtrip(self):
        """Parsing returns UTC time and sequence."""
        moment, seq = parse_backup_filename("database-backup-2026-10-19-02-00-05_003.db")
        assert moment == datetime(2026, 10, 19, 2, 0, 5, tzinfo=timezone.utc)
        assert seq == 3

    @pytest.mark.parametrize(
        "name",
        [
            "database.db",
            "database-backup-latest.db",
            "database-backup-2026-10-19-02-00-05.db-wal",
            ".database-backup-2026-10-19-02-00-05.db.part",
            ".database-backup-2026-10-19-02-00-05.db.tmp",
            "database-backup-2026-13-40-02-00-05.db",
        ],
    )
    def test_rejects_non_snapshot_names(self, name):
        """Only exact snapshot filenames are recognised."""
        assert parse_backup_filename(name) is None
        assert not is_backup_filename(name)

    def test_names_sort_chronologically(self):
        """Lexicographic order of names follows creation time."""
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        names = [backup_filename(base + timedelta(hours=h)) for h in (30, 2, 15)]
        assert sorted(names) == [names[1], names[2], names[0]]


class TestCompanions:
    """Tests for companion file helpers."""

    def test_companion_paths(self):
        """WAL comes before SHM."""
        path = Path("/tmp/x/database.db")
        assert [p.name for p in companion_paths(path)] == ["database.db-wal", "database.db-shm"]

    def test_existing_companions(self, workdir):
        """Only companions on disk are reported."""
        db = workdir / "database.db"
        db.write_bytes(b"x")
        (workdir / "database.db-wal").write_bytes(b"w")
        assert existing_companions(db) == (workdir / "database.db-wal",)


class TestBackupRecord:
    """Tests for BackupRecord."""

    @pytest.fixture
    def record_path(self, workdir):
        path = workdir / "database-backup-2026-10-19-02-00-00.db"
        path.write_bytes(b"0123456789")
        return path

    def test_from_path(self, record_path):
        """Size and mtime come from the file."""
        record = BackupRecord.from_path(record_path)
        assert record.filename == record_path.name
        assert record.size == 10
        assert record.created_at.tzinfo is not None
        assert record.verified is False
        assert record.remote_id is None

    def test_is_immutable(self, record_path):
        """Records cannot be mutated in place."""
        record = BackupRecord.from_path(record_path)
        with pytest.raises(dataclasses.FrozenInstanceError):
            record.verified = True

    def test_with_remote_id_returns_new_record(self, record_path):
        """Attaching a remote id builds a new record."""
        record = BackupRecord.from_path(record_path)
        replicated = record.with_remote_id("database-backups/" + record.filename)
        assert record.remote_id is None
        assert replicated.remote_id == "database-backups/" + record.filename
        assert replicated.filename == record.filename

    def test_to_dict(self, record_path):
        """Serialization is JSON friendly."""
        data = BackupRecord.from_path(record_path, verified=True).to_dict()
        assert data["filename"] == record_path.name
        assert data["verified"] is True
        assert data["companions"] == []
        assert isinstance(data["created_at"], str)


class TestBackupStats:
    """Tests for BackupStats."""

    def test_total_mb(self):
        stats = BackupStats(count=2, total_bytes=3 * 1024 * 1024, oldest=None, newest=None)
        assert stats.total_mb == 3.0

    def test_to_dict_empty(self):
        data = BackupStats(count=0, total_bytes=0, oldest=None, newest=None).to_dict()
        assert data == {
            "count": 0,
            "total_bytes": 0,
            "total_mb": 0.0,
            "oldest": None,
            "newest": None,
            "remote_count": None,
        }
