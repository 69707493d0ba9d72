"""
Unit tests for the dbguard CLI.

Tests cover:
- Exit codes for success, failure and configuration errors
- JSON output
- Restore confirmation
"""

import json

import pytest

from backoffice.dbguard.config import (
    BackupConfig,
    RemoteBackend,
    RemoteConfig,
    StorageConfig,
)
from backoffice.dbguard.tools.cli import EXIT_CONFIG, EXIT_FAILURE, EXIT_OK, build_parser, run
from tests.conftest import set_age


@pytest.fixture
def config(database_path, backup_dir):
    return BackupConfig(
        storage=StorageConfig(database_path=str(database_path), backup_dir=str(backup_dir)),
        remote=RemoteConfig(backend=RemoteBackend.NONE),
    )


def snapshot(config, capsys):
    assert run(["--json", "snapshot"], config=config) == EXIT_OK
    return json.loads(capsys.readouterr().out)


class TestCLI:
    """Tests for run()."""

    def test_parser_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_snapshot_and_list(self, config, capsys):
        created = snapshot(config, capsys)
        assert created["verified"] is True
        assert created["strategy"] == "vacuum_into"

        assert run(["--json", "list", "--verify"], config=config) == EXIT_OK
        listed = json.loads(capsys.readouterr().out)
        assert [r["filename"] for r in listed] == [created["filename"]]
        assert listed[0]["verified"] is True

    def test_text_output(self, config, capsys):
        assert run(["snapshot"], config=config) == EXIT_OK
        assert "Verified: yes" in capsys.readouterr().out

    def test_verify(self, config, capsys):
        name = snapshot(config, capsys)["filename"]

        assert run(["--json", "verify", name], config=config) == EXIT_OK
        result = json.loads(capsys.readouterr().out)

        assert result["valid"] is True
        assert result["comparison"]["matches"] is True

    def test_verify_missing(self, config, capsys):
        code = run(["verify", "database-backup-2020-01-01-00-00-00.db"], config=config)
        assert code == EXIT_FAILURE
        assert "not found" in capsys.readouterr().out

    def test_verify_bad_name(self, config, capsys):
        assert run(["verify", "../etc/passwd"], config=config) == EXIT_FAILURE
        assert "Not a backup filename" in capsys.readouterr().err

    def test_delete(self, config, capsys):
        name = snapshot(config, capsys)["filename"]
        assert run(["delete", name], config=config) == EXIT_OK
        assert run(["delete", name], config=config) == EXIT_FAILURE

    def test_restore_requires_yes(self, config, capsys, database_path):
        name = snapshot(config, capsys)["filename"]
        before = database_path.read_bytes()

        assert run(["restore", name], config=config) == EXIT_FAILURE

        assert "--yes" in capsys.readouterr().err
        assert database_path.read_bytes() == before

    def test_restore(self, config, capsys):
        name = snapshot(config, capsys)["filename"]

        assert run(["--json", "restore", name, "--yes"], config=config) == EXIT_OK

        result = json.loads(capsys.readouterr().out)
        assert result["restored_from"] == name
        assert result["safety_snapshot"]["filename"] != name

    def test_restore_rejected(self, config, capsys, backup_dir):
        (backup_dir / "database-backup-2020-01-01-00-00-00.db").write_bytes(b"corrupt")
        code = run(["restore", "database-backup-2020-01-01-00-00-00.db", "--yes"], config=config)
        assert code == EXIT_FAILURE
        assert "failed verification" in capsys.readouterr().err

    def test_prune(self, config, capsys, backup_dir):
        name = snapshot(config, capsys)["filename"]
        set_age(backup_dir / name, 40)

        assert run(["--json", "prune", "--days", "30"], config=config) == EXIT_OK

        assert json.loads(capsys.readouterr().out) == {"deleted": 1, "days": 30.0}

    def test_stats(self, config, capsys):
        snapshot(config, capsys)
        assert run(["--json", "stats", "--remote"], config=config) == EXIT_OK
        stats = json.loads(capsys.readouterr().out)
        assert stats["count"] == 1
        assert stats["remote_count"] is None

    def test_remote_list_without_store(self, config, capsys):
        assert run(["remote", "list"], config=config) == EXIT_FAILURE
        assert "not configured" in capsys.readouterr().err

    def test_remote_upload_with_memory_store(self, config, capsys):
        name = snapshot(config, capsys)["filename"]
        memory = BackupConfig(
            storage=config.storage, remote=RemoteConfig(backend=RemoteBackend.MEMORY)
        )

        assert run(["--json", "remote", "upload", name], config=memory) == EXIT_OK

        assert json.loads(capsys.readouterr().out)["remote_id"] == f"database-backups/{name}"

    def test_remote_upload_failure(self, config, capsys):
        name = snapshot(config, capsys)["filename"]
        assert run(["remote", "upload", name], config=config) == EXIT_FAILURE

    def test_config_error(self, monkeypatch, capsys):
        monkeypatch.setenv("RETENTION_DAYS", "-5")
        assert run(["list"]) == EXIT_CONFIG
        assert "Configuration error" in capsys.readouterr().err
