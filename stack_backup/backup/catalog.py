"""Archive catalog: list, delete, resolve and rotate backup archives."""

from datetime import datetime, timezone
from pathlib import Path
from typing import List

from .._utils import format_bytes, logger
from .exceptions import BackupNotFound
from .models import ArchiveInfo, ArchiveManifest
from .utils import is_archive_filename, list_archive_members


class ArchiveCatalog:
    """Archives stored as ``backup-<timestamp>.tar.gz`` in one directory.

    Filenames embed a sortable timestamp, so name order is creation order.
    """

    def __init__(self, backup_dir: str):
        self.backup_dir = Path(backup_dir)

    def ensure_dir(self) -> None:
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    def _archive_names(self) -> List[str]:
        """Archive filenames, newest first."""
        names = [
            entry.name for entry in self.backup_dir.iterdir()
            if entry.is_file() and is_archive_filename(entry.name)
        ]
        return sorted(names, reverse=True)

    def list(self) -> List[ArchiveInfo]:
        """List all archives, newest first."""
        self.ensure_dir()

        archives = []
        for filename in self._archive_names():
            try:
                stats = (self.backup_dir / filename).stat()
            except FileNotFoundError:
                # Rotated or deleted while listing
                continue
            archives.append(ArchiveInfo(
                filename=filename,
                size=stats.st_size,
                size_formatted=format_bytes(stats.st_size),
                date=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc).isoformat(),
            ))
        return archives

    def resolve_path(self, filename: str) -> Path:
        """Return the on-disk path for ``filename``. Existence is not checked."""
        return self.backup_dir / filename

    def _checked_path(self, filename: str) -> Path:
        if not filename or filename != Path(filename).name or filename in (".", ".."):
            raise BackupNotFound(filename)
        path = self.resolve_path(filename)
        if not path.is_file():
            raise BackupNotFound(filename)
        return path

    def delete(self, filename: str) -> None:
        """Delete one archive.

        Raises:
            BackupNotFound: if no such archive exists
        """
        path = self._checked_path(filename)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise BackupNotFound(filename) from e
        logger.info(f"Deleted backup: {filename}")

    def describe(self, filename: str) -> ArchiveManifest:
        """Report which components an archive contains."""
        path = self._checked_path(filename)
        members = list_archive_members(path)

        databases = sorted(
            Path(name).stem for name in members
            if name.startswith("postgres/") and name.endswith(".sql")
        )
        return ArchiveManifest(
            filename=filename,
            databases=databases,
            postgres=bool(databases),
            evolution="evolution/instances.tar.gz" in members,
            configs=any(name.startswith("configs/") for name in members) or "configs" in members,
        )

    def rotate(self, keep: int) -> List[str]:
        """Delete the oldest archives so at most ``keep`` remain.

        Returns:
            Filenames that were deleted
        """
        try:
            stale = self._archive_names()[keep:]
        except OSError as e:
            logger.warning(f"Rotation skipped, cannot list {self.backup_dir}: {e}")
            return []

        deleted = []
        for filename in stale:
            try:
                (self.backup_dir / filename).unlink()
                deleted.append(filename)
            except OSError as e:
                logger.warning(f"Rotation could not delete {filename}: {e}")

        if deleted:
            logger.info(f"Rotation removed {len(deleted)} old backup(s): {', '.join(deleted)}")
        return deleted
