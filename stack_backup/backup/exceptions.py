"""Exceptions raised by backup and restore operations."""


class StackBackupError(Exception):
    """Base exception for stack-backup errors."""


class BackupError(StackBackupError):
    """A backup run failed as a whole."""


class RestoreError(StackBackupError):
    """A restore run failed as a whole."""


class BackupNotFound(StackBackupError):
    def __init__(self, filename: str):
        self.filename = filename
        super().__init__(f"Backup not found: {filename}")


class AlreadyRunning(StackBackupError):
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation.capitalize()} already in progress")
