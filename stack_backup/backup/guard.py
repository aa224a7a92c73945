"""Single-slot guard that keeps operations of one kind from overlapping."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Set

from .exceptions import AlreadyRunning


class OperationGuard:
    """Reject a second backup (or restore) while one is still running.

    Callers are turned away immediately with ``AlreadyRunning`` rather than
    queued.
    """

    def __init__(self):
        self._active: Set[str] = set()

    def is_running(self, operation: str) -> bool:
        return operation in self._active

    @asynccontextmanager
    async def hold(self, operation: str) -> AsyncIterator[None]:
        # Check-and-add has no await in between, so it is atomic on the event loop
        if operation in self._active:
            raise AlreadyRunning(operation)
        self._active.add(operation)
        try:
            yield
        finally:
            self._active.discard(operation)
