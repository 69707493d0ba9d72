"""
Configuration management for DBGuard.

All configuration is done via environment variables - no config files.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Remote replication is disabled, not broken, when credentials are absent
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep env var names stable; operators set them in service units
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class RemoteBackend(Enum):
    """Supported remote store backends."""

    S3 = "s3"
    MEMORY = "memory"
    NONE = "none"


@dataclass(frozen=True)
class StorageConfig:
    """Local storage configuration.

    Attributes:
        database_path: Path of the live SQLite database
        backup_dir: Directory holding local snapshots
        busy_timeout_ms: SQLite busy timeout for snapshot/verify connections
    """

    database_path: str = "./data/database.db"
    backup_dir: str = "./backups"
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            database_path=os.getenv("DATABASE_PATH", "./data/database.db"),
            backup_dir=os.getenv("BACKUP_DIR", "./backups"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class SnapshotConfig:
    """Snapshotter configuration.

    Attributes:
        strategies: Strategy names tried in order (vacuum_into, online_backup, raw_copy)
        copy_retries: Extra attempts when the raw copy raced a writer
        compare_counts: Log a row-count comparison against the source after each snapshot
    """

    strategies: tuple[str, ...] = ("vacuum_into", "raw_copy")
    copy_retries: int = 2
    compare_counts: bool = True

    @classmethod
    def from_env(cls) -> SnapshotConfig:
        """Load configuration from environment variables."""
        raw = os.getenv("SNAPSHOT_STRATEGIES", "vacuum_into,raw_copy")
        return cls(
            strategies=tuple(s.strip() for s in raw.split(",") if s.strip()),
            copy_retries=int(os.getenv("SNAPSHOT_COPY_RETRIES", "2")),
            compare_counts=_env_bool("SNAPSHOT_COMPARE_COUNTS", "true"),
        )


@dataclass(frozen=True)
class RemoteConfig:
    """Remote (offsite) store configuration.

    Attributes:
        backend: Which remote store to use
        bucket: S3 bucket name
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO, R2)
        prefix: Folder inside the bucket holding the snapshots
        access_key_id: AWS access key ID
        secret_access_key: AWS secret access key
        use_default_credentials: Trust the AWS credential chain instead of explicit keys
        timeout_seconds: Upper bound for any single remote call
    """

    backend: RemoteBackend = RemoteBackend.S3
    bucket: str | None = None
    region: str = "us-east-1"
    endpoint_url: str | None = None
    prefix: str = "database-backups"
    access_key_id: str | None = None
    secret_access_key: str | None = None
    use_default_credentials: bool = False
    timeout_seconds: float = 300.0

    @property
    def has_credentials(self) -> bool:
        """Whether enough authentication material is present to talk to S3."""
        if not self.bucket:
            return False
        if self.use_default_credentials:
            return True
        return bool(self.access_key_id and self.secret_access_key)

    @classmethod
    def from_env(cls) -> RemoteConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("REMOTE_BACKEND", "s3").lower()
        try:
            backend = RemoteBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid REMOTE_BACKEND '{backend_str}'. Must be one of: s3, memory, none"
            )

        return cls(
            backend=backend,
            bucket=os.getenv("S3_BUCKET") or None,
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT"),
            prefix=os.getenv("S3_BACKUP_PREFIX", "database-backups").strip("/"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            use_default_credentials=_env_bool("S3_USE_DEFAULT_CREDENTIALS", "false"),
            timeout_seconds=float(os.getenv("REMOTE_TIMEOUT_SECONDS", "300")),
        )


@dataclass(frozen=True)
class RetentionConfig:
    """Retention configuration.

    Attributes:
        days: Local snapshots older than this many days are pruned
    """

    days: int = 30

    @classmethod
    def from_env(cls) -> RetentionConfig:
        """Load configuration from environment variables."""
        return cls(days=int(os.getenv("RETENTION_DAYS", "30")))


@dataclass(frozen=True)
class SchedulerConfig:
    """Scheduler configuration.

    Attributes:
        enabled: Whether the daily cycle runs in the daemon
        hour: Local wall-clock hour of the daily cycle
        minute: Minute within that hour
        run_on_start: Run one cycle immediately when the scheduler starts
    """

    enabled: bool = True
    hour: int = 2
    minute: int = 0
    run_on_start: bool = True

    @classmethod
    def from_env(cls) -> SchedulerConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=_env_bool("SCHEDULER_ENABLED", "true"),
            hour=int(os.getenv("SCHEDULE_HOUR", "2")),
            minute=int(os.getenv("SCHEDULE_MINUTE", "0")),
            run_on_start=_env_bool("SCHEDULE_RUN_ON_START", "true"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class BackupConfig:
    """Complete DBGuard configuration.

    Attributes:
        storage: Local storage configuration
        snapshot: Snapshotter configuration
        remote: Remote store configuration
        retention: Retention configuration
        scheduler: Scheduler configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> BackupConfig:
        """Load complete configuration from environment variables.

        Returns:
            BackupConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            snapshot=SnapshotConfig.from_env(),
            remote=RemoteConfig.from_env(),
            retention=RetentionConfig.from_env(),
            scheduler=SchedulerConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        from .snapshot.strategies import STRATEGY_NAMES

        if not self.storage.database_path:
            raise ValueError("DATABASE_PATH must not be empty")
        if not self.storage.backup_dir:
            raise ValueError("BACKUP_DIR must not be empty")

        if not self.snapshot.strategies:
            raise ValueError("SNAPSHOT_STRATEGIES must name at least one strategy")
        unknown = [s for s in self.snapshot.strategies if s not in STRATEGY_NAMES]
        if unknown:
            raise ValueError(
                f"Unknown snapshot strategies {unknown}. Must be among: {', '.join(STRATEGY_NAMES)}"
            )
        if self.snapshot.copy_retries < 0:
            raise ValueError("SNAPSHOT_COPY_RETRIES must be >= 0")

        if self.retention.days < 0:
            raise ValueError("RETENTION_DAYS must be >= 0")

        if not 0 <= self.scheduler.hour <= 23:
            raise ValueError("SCHEDULE_HOUR must be between 0 and 23")
        if not 0 <= self.scheduler.minute <= 59:
            raise ValueError("SCHEDULE_MINUTE must be between 0 and 59")

        if self.remote.timeout_seconds <= 0:
            raise ValueError("REMOTE_TIMEOUT_SECONDS must be positive")

        # Missing credentials disable replication, they do not fail startup
        if self.remote.backend == RemoteBackend.S3 and not self.remote.has_credentials:
            logger.warning("S3 credentials not configured. Remote backups will be disabled.")

        if not os.path.exists(self.storage.database_path):
            logger.warning(f"Database file does not exist yet: {self.storage.database_path}")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "DBGuard configuration loaded",
            extra={
                "database_path": self.storage.database_path,
                "backup_dir": self.storage.backup_dir,
                "strategies": ",".join(self.snapshot.strategies),
                "remote_backend": self.remote.backend.value,
                "s3_bucket": self.remote.bucket,
                "s3_prefix": self.remote.prefix,
                "remote_enabled": self.remote.backend != RemoteBackend.NONE
                and (self.remote.backend == RemoteBackend.MEMORY or self.remote.has_credentials),
                "retention_days": self.retention.days,
                "schedule": f"{self.scheduler.hour:02d}:{self.scheduler.minute:02d}",
                "scheduler_enabled": self.scheduler.enabled,
                "log_level": self.observability.log_level,
            },
        )
