"""Custom exceptions for FastAPI application."""

from fastapi import HTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
)


class StackBackupAPIError(HTTPException):
    """Base exception for stack-backup API errors."""
    pass


class BackupNotFoundError(StackBackupAPIError):
    def __init__(self, filename: str):
        super().__init__(HTTP_404_NOT_FOUND, f"Backup not found: {filename}")


class OperationInProgressError(StackBackupAPIError):
    def __init__(self, operation: str):
        super().__init__(HTTP_409_CONFLICT, f"{operation.capitalize()} already in progress")


class InvalidArchiveError(StackBackupAPIError):
    def __init__(self, filename: str):
        super().__init__(HTTP_400_BAD_REQUEST, f"File must be a .tar.gz archive: {filename}")
