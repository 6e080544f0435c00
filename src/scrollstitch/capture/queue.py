"""
Capture Request Queue
=====================

Bounded queue of capture requests between scroll intake and a
session's capture worker.

Design Rules:
    - Fixed maximum depth (coalesces by dropping the oldest request)
    - Exactly one consumer per queue
    - join() resolves once every request put so far has been processed
      or dropped

A request is a scroll position token. The worker re-reads the live
position before capturing, so dropping the oldest token when the queue
is full loses no information; it only caps the backlog.
"""

import asyncio
import logging


logger = logging.getLogger(__name__)


class CaptureRequestQueue:
    """
    Async bounded queue of pending capture requests.

    Attributes:
        maxsize: Backlog ceiling
        coalesced_count: Requests dropped because the queue was full

    Example:
        queue = CaptureRequestQueue(maxsize=20)

        # Producer (scroll intake)
        queue.put(observed_position)

        # Consumer (capture worker)
        position = await queue.get()
        try:
            ...
        finally:
            queue.task_done()
    """

    def __init__(self, maxsize: int = 20) -> None:
        """
        Initialize request queue.

        Args:
            maxsize: Maximum pending requests. Must be >= 1.
        """
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        self._queue: asyncio.Queue[int] = asyncio.Queue(maxsize=maxsize)
        self._coalesced_count: int = 0
        self._total_put: int = 0

    @property
    def maxsize(self) -> int:
        """Maximum queue depth."""
        return self._maxsize

    @property
    def size(self) -> int:
        """Current number of pending requests."""
        return self._queue.qsize()

    @property
    def coalesced_count(self) -> int:
        """Requests dropped due to overflow."""
        return self._coalesced_count

    @property
    def total_put(self) -> int:
        """Total requests ever enqueued."""
        return self._total_put

    def put(self, scroll_position: int) -> bool:
        """
        Enqueue a request, dropping the oldest pending one if full.

        Returns:
            True if added without dropping, False if a request was coalesced.
        """
        self._total_put += 1
        coalesced = False

        if self._queue.full():
            try:
                self._queue.get_nowait()
                self._queue.task_done()
                self._coalesced_count += 1
                coalesced = True
                logger.debug(
                    f"Capture backlog full ({self._maxsize}), coalesced oldest request"
                )
            except asyncio.QueueEmpty:
                pass

        self._queue.put_nowait(scroll_position)
        return not coalesced

    async def get(self) -> int:
        """Wait for the next request."""
        return await self._queue.get()

    def task_done(self) -> None:
        """Mark one request obtained from get() as processed."""
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every enqueued request has been processed or dropped."""
        await self._queue.join()

    def clear(self) -> int:
        """
        Drop all pending requests.

        Returns:
            Number of requests dropped.
        """
        cleared = 0
        while True:
            try:
                self._queue.get_nowait()
                self._queue.task_done()
                cleared += 1
            except asyncio.QueueEmpty:
                break
        return cleared

    def metrics(self) -> dict:
        """
        Get queue metrics for observability.

        Returns:
            Dict with size, maxsize, coalesced_count, total_put
        """
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "coalesced_count": self._coalesced_count,
            "total_put": self._total_put,
        }
