"""Dependency injection for FastAPI."""

from fastapi import Request
from fastapi.requests import HTTPConnection
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    import redis.asyncio as redis
    from stack_backup.api.jobs import LocalJobStore
    from stack_backup.backup import BackupManager, ProgressBroadcaster


async def get_backup_manager(request: Request) -> "BackupManager":
    """Get BackupManager instance from app state."""
    return request.app.state.backup_manager


async def get_broadcaster(connection: HTTPConnection) -> "ProgressBroadcaster":
    """Get progress broadcaster from app state; usable from WebSocket routes."""
    return connection.app.state.broadcaster


async def get_redis(request: Request) -> Optional["redis.Redis"]:
    """Get Redis client from app state if available."""
    return getattr(request.app.state, "redis_client", None)


async def get_job_store(request: Request) -> "LocalJobStore":
    """In-process job store used when Redis is not configured."""
    store = getattr(request.app.state, "job_store", None)
    if store is None:
        store = request.app.state.job_store = {}
    return store
