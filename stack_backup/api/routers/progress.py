"""Live progress channel for backup and restore runs."""

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from ..dependencies import get_broadcaster
from stack_backup._utils import logger
from stack_backup.backup import ProgressBroadcaster

router = APIRouter(tags=["progress"])


@router.websocket("/ws/progress")
async def progress_socket(
    websocket: WebSocket,
    broadcaster: ProgressBroadcaster = Depends(get_broadcaster),
):
    """Push backup/restore progress events as JSON text frames.

    Events are only delivered while connected; nothing is replayed.
    """
    await websocket.accept()
    broadcaster.subscribe(websocket)
    try:
        while True:
            # Inbound frames are ignored; receiving detects the disconnect
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Progress observer disconnected")
    finally:
        broadcaster.unsubscribe(websocket)
