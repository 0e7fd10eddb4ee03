import asyncio
import logging
from typing import Set

from storefront.application.interfaces import MessagePublisher
from storefront.domain.models import ChatMessage

logger = logging.getLogger(__name__)


class MessageBroadcaster(MessagePublisher):
    """In-process fan-out of new chat messages to every open connection.

    Each connection reads from its own queue and filters with its ChatFeed.
    """

    def __init__(self, queue_size: int = 100):
        self._queue_size = queue_size
        self._queues: Set[asyncio.Queue] = set()

    @property
    def connections(self) -> int:
        return len(self._queues)

    def subscribe(self) -> asyncio.Queue:
        queue = asyncio.Queue(maxsize=self._queue_size)
        self._queues.add(queue)
        logger.info(f"Chat connection opened ({len(self._queues)} open)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._queues.discard(queue)
        logger.info(f"Chat connection closed ({len(self._queues)} open)")

    async def publish(self, message: ChatMessage) -> None:
        for queue in list(self._queues):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning(f"Chat connection lagging, message {message.id} dropped for it")
