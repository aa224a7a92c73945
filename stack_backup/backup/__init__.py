"""Backup and restore of the stack's database, volume and configuration files."""

from .broadcaster import ProgressBroadcaster
from .catalog import ArchiveCatalog
from .exceptions import AlreadyRunning, BackupError, BackupNotFound, RestoreError, StackBackupError
from .guard import OperationGuard
from .manager import BackupManager

__all__ = [
    "BackupManager",
    "ArchiveCatalog",
    "ProgressBroadcaster",
    "OperationGuard",
    "StackBackupError",
    "BackupError",
    "RestoreError",
    "BackupNotFound",
    "AlreadyRunning",
]
