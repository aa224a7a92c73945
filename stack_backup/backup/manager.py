"""Backup and restore orchestration for the stack's stateful components."""

from pathlib import Path
from typing import List, Optional

from .._utils import format_bytes, logger, utc_now
from ..config import BackupConfig
from ..credentials import CredentialStore
from ..runtime import ContainerRuntime
from .broadcaster import ProgressBroadcaster
from .catalog import ArchiveCatalog
from .exceptions import BackupError, RestoreError
from .exporters import ConfigExporter, PostgresExporter, VolumeExporter
from .guard import OperationGuard
from .models import ArchiveInfo, BackupResult, ComponentFlags, ProgressEvent, RestoreResult
from .utils import (
    create_archive,
    create_working_dir,
    extract_archive,
    generate_archive_filename,
    remove_working_dir,
)


class BackupManager:
    """Orchestrate backup and restore of the database, volume and config files."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        credentials: CredentialStore,
        config: Optional[BackupConfig] = None,
        broadcaster: Optional[ProgressBroadcaster] = None,
        guard: Optional[OperationGuard] = None,
    ):
        """Initialize backup manager.

        Args:
            runtime: Container runtime used for dumps and helper containers
            credentials: Source of the database password
            config: Paths, limits and timeouts
            broadcaster: Progress fan-out; a private one is created if omitted
            guard: Shared guard so managers built per request still exclude each other
        """
        self.runtime = runtime
        self.credentials = credentials
        self.config = config or BackupConfig()
        self.broadcaster = broadcaster or ProgressBroadcaster()
        self.guard = guard or OperationGuard()
        self.catalog = ArchiveCatalog(self.config.backup_dir)
        self.tmp_root = Path(self.config.tmp_root)

    async def _emit(self, kind: str, **fields) -> None:
        await self.broadcaster.broadcast(ProgressEvent(type=kind, **fields))

    def _step_notifier(self, kind: str):
        async def notify(step: str) -> None:
            await self._emit(kind, step=step)
        return notify

    def _postgres_exporter(self, kind: str) -> PostgresExporter:
        return PostgresExporter(self.runtime, self.credentials, self.config, self._step_notifier(kind))

    def _volume_exporter(self) -> VolumeExporter:
        return VolumeExporter(self.runtime, self.config)

    def _config_exporter(self) -> ConfigExporter:
        return ConfigExporter({
            "config.json": self.config.config_path,
            "credentials.json": self.config.credentials_path,
        })

    async def create_backup(self) -> BackupResult:
        """Create a full backup archive.

        Returns:
            BackupResult describing the archive and which components it includes

        Raises:
            AlreadyRunning: if another backup is in progress
            BackupError: if the archive could not be produced
        """
        async with self.guard.hold("backup"):
            return await self._create_backup()

    async def _create_backup(self) -> BackupResult:
        filename = generate_archive_filename()
        archive_path = self.catalog.resolve_path(filename)
        working_dir: Optional[Path] = None
        archive_written = False

        logger.info(f"Starting backup: {filename}")

        try:
            self.catalog.ensure_dir()
            working_dir = create_working_dir(self.tmp_root, "backup")
            await self._emit("backup", status="started", filename=filename)

            await self._emit("backup", step="PostgreSQL dump...")
            postgres_ok = await self._postgres_exporter("backup").export(working_dir)

            await self._emit("backup", step="Volume instances...")
            volume_ok = await self._volume_exporter().export(working_dir)

            await self._emit("backup", step="Configuration files...")
            self._config_exporter().export(working_dir)

            await self._emit("backup", step="Compressing...")
            size = await create_archive(working_dir, archive_path, timeout=self.config.archive_timeout)
            archive_written = True

            self.catalog.rotate(self.config.max_backups)

            result = BackupResult(
                success=True,
                filename=filename,
                size=size,
                size_formatted=format_bytes(size),
                date=utc_now().isoformat(),
                includes=ComponentFlags(postgres=postgres_ok, evolution=volume_ok, configs=True),
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"Backup {filename} failed: {message}")
            if archive_written:
                archive_path.unlink(missing_ok=True)
            await self._emit("backup", status="error", error=message)
            raise BackupError(f"Backup failed: {message}") from e
        finally:
            if working_dir is not None:
                remove_working_dir(working_dir)

        logger.info(f"Backup complete: {filename} ({result.size:,} bytes)")
        await self._emit("backup", status="completed", **result.to_wire())
        return result

    async def restore_backup(self, archive_path: str) -> RestoreResult:
        """Restore all components from an archive.

        Args:
            archive_path: Path to a ``.tar.gz`` archive produced by ``create_backup``

        Raises:
            AlreadyRunning: if another restore is in progress
            RestoreError: if the archive could not be read
        """
        async with self.guard.hold("restore"):
            return await self._restore_backup(Path(archive_path))

    async def _restore_backup(self, archive_path: Path) -> RestoreResult:
        working_dir: Optional[Path] = None
        logger.info(f"Starting restore: {archive_path}")

        try:
            working_dir = create_working_dir(self.tmp_root, "restore")
            await self._emit("restore", status="started")

            await self._emit("restore", step="Extracting backup...")
            if not archive_path.is_file():
                raise FileNotFoundError(f"Archive not found: {archive_path.name}")
            await extract_archive(archive_path, working_dir, timeout=self.config.archive_timeout)

            await self._emit("restore", step="Restoring databases...")
            postgres_ok = await self._postgres_exporter("restore").restore(working_dir)

            await self._emit("restore", step="Restoring volume instances...")
            volume_ok = await self._volume_exporter().restore(working_dir)

            await self._emit("restore", step="Restoring configuration files...")
            self._config_exporter().restore(working_dir)

            result = RestoreResult(
                restored=ComponentFlags(postgres=postgres_ok, evolution=volume_ok, configs=True),
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"Restore from {archive_path.name} failed: {message}")
            await self._emit("restore", status="error", error=message)
            raise RestoreError(f"Restore failed: {message}") from e
        finally:
            if working_dir is not None:
                remove_working_dir(working_dir)

        if self.config.consume_archive_on_restore:
            try:
                archive_path.unlink()
                logger.info(f"Consumed restored archive: {archive_path.name}")
            except OSError as e:
                logger.warning(f"Could not delete restored archive {archive_path}: {e}")

        logger.info(f"Restore complete: {archive_path.name}")
        await self._emit("restore", status="completed", **result.to_wire())
        return result

    def list_backups(self) -> List[ArchiveInfo]:
        return self.catalog.list()

    def delete_backup(self, filename: str) -> None:
        self.catalog.delete(filename)

    def get_backup_path(self, filename: str) -> Path:
        return self.catalog.resolve_path(filename)

    def is_running(self, operation: str) -> bool:
        return self.guard.is_running(operation)

