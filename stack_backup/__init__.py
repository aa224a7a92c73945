from .backup import BackupManager, ArchiveCatalog, ProgressBroadcaster
from .config import BackupConfig, ScheduleConfig
from .credentials import CredentialStore, CredentialsUnavailable
from .runtime import ContainerRuntime, DockerRuntime

__version__ = "0.3.0"
__author__ = "n8nlabz"
__url__ = "https://github.com/n8nlabz/stack-backup"

__all__ = [
    "BackupManager",
    "ArchiveCatalog",
    "ProgressBroadcaster",
    "BackupConfig",
    "ScheduleConfig",
    "CredentialStore",
    "CredentialsUnavailable",
    "ContainerRuntime",
    "DockerRuntime",
]
