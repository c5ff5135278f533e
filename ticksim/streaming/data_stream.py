"""
Bounded tick stream with backpressure.
Slow consumers lose messages instead of blocking the simulation.
"""
import asyncio
from typing import AsyncIterator, Set
from dataclasses import dataclass
import logging

from ..core.types import TickResult

logger = logging.getLogger(__name__)


@dataclass
class StreamStats:
    """Stream performance metrics"""
    messages_published: int = 0
    messages_dropped: int = 0
    active_subscribers: int = 0
    queue_size: int = 0


class BoundedTickStream:
    """
    Non-blocking fan-out of simulation steps.

    Features:
    - One bounded queue per subscriber (fixed memory)
    - Drop policy when a subscriber is full (never blocks)
    - Metrics tracking
    """

    def __init__(self, maxsize: int = 1000):
        self.maxsize = maxsize
        self.stats = StreamStats()
        self._subscribers: Set[asyncio.Queue] = set()
        self._closed = False

    # ========================================================================
    # PUBLISHING
    # ========================================================================

    def publish_nowait(self, data: TickResult) -> bool:
        """
        Offer one step to every subscriber.
        Returns False if any subscriber dropped it.
        """
        if self._closed:
            return False

        delivered = True
        for queue in self._subscribers:
            try:
                queue.put_nowait(data)
            except asyncio.QueueFull:
                delivered = False
                self.stats.messages_dropped += 1
                if self.stats.messages_dropped % 100 == 0:
                    logger.warning(
                        f"Stream backpressure: dropped {self.stats.messages_dropped} messages"
                    )

        self.stats.messages_published += 1
        return delivered

    async def publish(self, data: TickResult) -> bool:
        return self.publish_nowait(data)

    # ========================================================================
    # SUBSCRIBING
    # ========================================================================

    async def subscribe(self) -> AsyncIterator[TickResult]:
        """
        Subscribe to the stream (creates an independent queue).
        Iteration ends when the stream is closed.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.maxsize)
        self._subscribers.add(queue)
        self.stats.active_subscribers = len(self._subscribers)

        try:
            while True:
                data = await queue.get()
                if data is None:  # Shutdown signal
                    break
                yield data
        finally:
            self._subscribers.discard(queue)
            self.stats.active_subscribers = len(self._subscribers)

    # ========================================================================
    # UTILITIES
    # ========================================================================

    def get_stats(self) -> StreamStats:
        self.stats.queue_size = max((q.qsize() for q in self._subscribers), default=0)
        return self.stats

    async def close(self):
        """Close stream and notify all subscribers"""
        self._closed = True
        for queue in self._subscribers:
            try:
                queue.put_nowait(None)
            except asyncio.QueueFull:
                # Make room for the shutdown signal
                queue.get_nowait()
                queue.put_nowait(None)
