"""
WebSocket Handlers

Publish/subscribe channel for device events. The server pushes
``initial`` on connect, then ``scan-complete`` and ``status-change``
events; client messages are only read to notice disconnects.
"""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Device event stream.

    Messages to client:
    - {"type": "initial", "data": [...]} - Full snapshot, always first
    - {"type": "scan-complete", "data": [...]} - Snapshot after a sweep
    - {"type": "status-change", "data": {"address", "status", "last_seen"}}
    """
    notifier = websocket.app.state.notifier
    await websocket.accept()

    if notifier is None:
        logger.warning("WebSocket rejected: notifier not available")
        await websocket.close(code=1011)
        return

    subscription = notifier.subscribe(websocket)

    try:
        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        logger.info("WebSocket client disconnected normally")

    except Exception as e:
        logger.error(f"WebSocket error: {e}")

    finally:
        notifier.unsubscribe(subscription)


__all__ = ["router"]
