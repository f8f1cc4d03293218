import asyncio
import logging
from typing import Any, List

from .utils import json_dumps, utc_now

logger = logging.getLogger(__name__)

# Queued to a listener that is dropped or shut down so its stream ends.
END_OF_STREAM = None


class EventNotifier:
    """Best-effort fan-out of ``db-update`` messages to connected listeners.

    Each listener is a bounded :class:`asyncio.Queue` of pre-serialized
    messages. :meth:`notify` never blocks and never raises: a listener that
    cannot keep up is dropped, and listeners that connect later never see
    earlier messages.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self.listeners: List[asyncio.Queue] = []

    def connect(self) -> asyncio.Queue:
        listener = asyncio.Queue(maxsize=self.queue_size)
        self.listeners.append(listener)
        logger.info(f"New listener connected. Total listeners: {len(self.listeners)}")
        return listener

    def disconnect(self, listener: asyncio.Queue) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)
            logger.info(f"Listener disconnected. Remaining listeners: {len(self.listeners)}")

    def notify(self, event: str, payload: Any) -> int:
        """Offer ``event`` to every listener; returns how many accepted it."""
        try:
            message = json_dumps({
                "event": event,
                "payload": payload,
                "time": utc_now().isoformat(),
            })
        except (TypeError, ValueError) as e:
            logger.error(f"Could not serialize '{event}' notification: {e}")
            return 0

        delivered = 0
        for listener in self.listeners[:]:
            try:
                listener.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Dropping listener that fell behind")
                self.disconnect(listener)
                self._end(listener)

        logger.info(f"Broadcasted '{event}' to {delivered} listeners")
        return delivered

    @staticmethod
    def _end(listener: asyncio.Queue) -> None:
        try:
            listener.put_nowait(END_OF_STREAM)
        except asyncio.QueueFull:
            # Make room so the end marker always lands.
            listener.get_nowait()
            listener.put_nowait(END_OF_STREAM)

    def close(self) -> None:
        for listener in self.listeners[:]:
            self._end(listener)
        self.listeners.clear()
