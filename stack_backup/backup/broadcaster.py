"""Best-effort fan-out of progress events to live observers."""

import asyncio
from typing import Any, Protocol, Set, Union

from .._utils import logger
from .models import ProgressEvent


class ProgressObserver(Protocol):
    """Anything that accepts text frames, e.g. a Starlette ``WebSocket``."""

    async def send_text(self, data: str) -> Any: ...


class ProgressBroadcaster:
    """Deliver progress events to every subscribed observer.

    Delivery is fire-and-forget: no buffering, no replay, no retries. A
    failing or slow observer is skipped without affecting the others or the
    caller.
    """

    def __init__(self, send_timeout: float = 5.0):
        self.send_timeout = send_timeout
        self._observers: Set[ProgressObserver] = set()

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def subscribe(self, observer: ProgressObserver) -> None:
        self._observers.add(observer)
        logger.debug(f"Progress observer subscribed ({len(self._observers)} active)")

    def unsubscribe(self, observer: ProgressObserver) -> None:
        self._observers.discard(observer)
        logger.debug(f"Progress observer unsubscribed ({len(self._observers)} active)")

    async def broadcast(self, event: Union[ProgressEvent, dict]) -> None:
        if isinstance(event, dict):
            event = ProgressEvent(**event)
        data = event.to_json()

        observers = list(self._observers)
        if not observers:
            return

        await asyncio.gather(*(self._deliver(observer, data) for observer in observers))

    async def _deliver(self, observer: ProgressObserver, data: str) -> None:
        try:
            await asyncio.wait_for(observer.send_text(data), timeout=self.send_timeout)
        except Exception as e:
            logger.debug(f"Dropped progress event for one observer: {e!r}")
