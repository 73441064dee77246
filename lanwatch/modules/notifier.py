"""
Change Notifier Module

Publishes device events to every connected WebSocket subscriber.

Each subscriber owns a bounded outbound queue drained by its own writer
task, so ``broadcast`` never awaits a client: it serialises the event once
and enqueues it. A new subscriber gets the ``initial`` snapshot queued
before it is registered for broadcasts, so nothing can overtake it.

Event envelope::

    {"type": "initial" | "scan-complete" | "status-change",
     "data": ...,
     "timestamp": "2026-01-01T12:00:00"}
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from config import EVENT_INITIAL, SUBSCRIBER_QUEUE_SIZE
from modules.store import DeviceStore

logger = logging.getLogger(__name__)


def build_message(kind: str, data: Any) -> str:
    """Serialise one event envelope."""
    return json.dumps({
        "type": kind,
        "data": data,
        "timestamp": datetime.now().isoformat(),
    }, default=str)


class Subscription:
    """One connected subscriber and its outbound queue."""

    def __init__(self, websocket: WebSocket, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self.websocket = websocket
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.closed = False
        self.sent = 0
        self._writer: Optional[asyncio.Task] = None

    @property
    def writable(self) -> bool:
        return (
            not self.closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def start(self):
        self._writer = asyncio.get_running_loop().create_task(self._drain())

    def offer(self, message: str) -> bool:
        """Queue a message without waiting. False if it was not queued."""
        if self.closed:
            return False
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    async def _drain(self):
        while not self.closed:
            message = await self.queue.get()
            if not self.writable:
                break
            try:
                await self.websocket.send_text(message)
                self.sent += 1
            except Exception as e:
                logger.debug(f"Delivery to subscriber failed: {e}")
                break
        self.closed = True

    def close(self):
        self.closed = True
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()


class ChangeNotifier:
    """Fan-out of device events to WebSocket subscribers."""

    def __init__(self, store: DeviceStore, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self.store = store
        self.queue_size = queue_size
        self._subscriptions: Set[Subscription] = set()
        self._stats = {
            "total_subscriptions": 0,
            "total_broadcasts": 0,
            "total_dropped": 0,
        }

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def get_stats(self) -> Dict:
        return {
            **self._stats,
            "active_subscribers": self.subscriber_count,
        }

    def subscribe(self, websocket: WebSocket) -> Subscription:
        """Register an accepted connection and queue its initial snapshot.

        Must run on the event loop that broadcasts.
        """
        subscription = Subscription(websocket, queue_size=self.queue_size)
        subscription.offer(build_message(EVENT_INITIAL, self.store.snapshot()))
        self._subscriptions.add(subscription)
        subscription.start()
        self._stats["total_subscriptions"] += 1
        logger.info(f"Subscriber connected. Total subscribers: {self.subscriber_count}")
        return subscription

    def unsubscribe(self, subscription: Subscription):
        """Deregister a subscriber; no further delivery is attempted."""
        subscription.close()
        if subscription in self._subscriptions:
            self._subscriptions.discard(subscription)
            logger.info(f"Subscriber disconnected. Total subscribers: {self.subscriber_count}")

    def broadcast(self, kind: str, data: Any) -> int:
        """Queue an event for every writable subscriber.

        Closed subscribers are dropped silently and a full queue skips only
        that subscriber.

        Returns:
            Number of subscribers the event was queued for
        """
        message = build_message(kind, data)
        self._stats["total_broadcasts"] += 1
        delivered = 0

        for subscription in list(self._subscriptions):
            if not subscription.writable:
                self.unsubscribe(subscription)
                continue
            if subscription.offer(message):
                delivered += 1
            else:
                self._stats["total_dropped"] += 1
                logger.warning(f"Subscriber queue full, dropped {kind} event")

        logger.debug(f"Broadcast {kind} to {delivered} subscriber(s)")
        return delivered

    def close(self):
        """Stop every writer task (shutdown)."""
        for subscription in list(self._subscriptions):
            self.unsubscribe(subscription)
