"""Configuration management for stack-backup."""

import os
import tempfile
from dataclasses import dataclass


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class BackupConfig:
    """Backup/restore orchestration settings."""
    backup_dir: str = "/opt/n8nlabz/backups"
    config_path: str = "/opt/n8nlabz/config.json"
    credentials_path: str = "/opt/n8nlabz/credentials.json"
    max_backups: int = 7
    tmp_root: str = tempfile.gettempdir()

    # PostgreSQL container lookup
    postgres_container_match: str = "postgres_postgres"
    postgres_user: str = "postgres"

    # Named volume archived through a throwaway helper container
    volume_name: str = "evolution_instances"
    helper_image: str = "alpine"

    # Timeouts in seconds
    probe_timeout: float = 30.0
    volume_timeout: float = 120.0
    archive_timeout: float = 300.0
    command_timeout: float = 600.0

    docker_bin: str = "docker"
    consume_archive_on_restore: bool = True

    @classmethod
    def from_env(cls) -> 'BackupConfig':
        """Create config from environment variables."""
        return cls(
            backup_dir=os.getenv("BACKUP_DIR", "/opt/n8nlabz/backups"),
            config_path=os.getenv("STACK_CONFIG_PATH", "/opt/n8nlabz/config.json"),
            credentials_path=os.getenv("STACK_CREDENTIALS_PATH", "/opt/n8nlabz/credentials.json"),
            max_backups=int(os.getenv("BACKUP_MAX_COUNT", "7")),
            tmp_root=os.getenv("BACKUP_TMP_ROOT", tempfile.gettempdir()),
            postgres_container_match=os.getenv("POSTGRES_CONTAINER_MATCH", "postgres_postgres"),
            postgres_user=os.getenv("POSTGRES_USER", "postgres"),
            volume_name=os.getenv("BACKUP_VOLUME_NAME", "evolution_instances"),
            helper_image=os.getenv("BACKUP_HELPER_IMAGE", "alpine"),
            probe_timeout=float(os.getenv("BACKUP_PROBE_TIMEOUT", "30")),
            volume_timeout=float(os.getenv("BACKUP_VOLUME_TIMEOUT", "120")),
            archive_timeout=float(os.getenv("BACKUP_ARCHIVE_TIMEOUT", "300")),
            command_timeout=float(os.getenv("BACKUP_COMMAND_TIMEOUT", "600")),
            docker_bin=os.getenv("DOCKER_BIN", "docker"),
            consume_archive_on_restore=_env_bool("RESTORE_CONSUMES_ARCHIVE", "true"),
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.max_backups <= 0:
            raise ValueError(f"max_backups must be positive, got {self.max_backups}")
        if not self.postgres_container_match:
            raise ValueError("postgres_container_match must not be empty")
        for name in ("probe_timeout", "volume_timeout", "archive_timeout", "command_timeout"):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")


@dataclass(frozen=True)
class ScheduleConfig:
    """Daily backup trigger settings."""
    enabled: bool = True
    hour: int = 3
    minute: int = 0
    timezone: str = "America/Sao_Paulo"

    @classmethod
    def from_env(cls) -> 'ScheduleConfig':
        """Create config from environment variables."""
        return cls(
            enabled=_env_bool("BACKUP_SCHEDULE_ENABLED", "true"),
            hour=int(os.getenv("BACKUP_SCHEDULE_HOUR", "3")),
            minute=int(os.getenv("BACKUP_SCHEDULE_MINUTE", "0")),
            timezone=os.getenv("BACKUP_SCHEDULE_TIMEZONE", "America/Sao_Paulo"),
        )

    def __post_init__(self):
        """Validate configuration."""
        if not 0 <= self.hour <= 23:
            raise ValueError(f"hour must be between 0 and 23, got {self.hour}")
        if not 0 <= self.minute <= 59:
            raise ValueError(f"minute must be between 0 and 59, got {self.minute}")
