"""Single-producer / multi-consumer job channel.

Each job is delivered to exactly one reader (work sharing, not broadcast).
Readers are cheap handles onto the shared buffer; a worker takes one with
``JobQueue.reader()`` and releases it when it stops.

All methods must be called from the event loop that runs the pipeline.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Deque, Generic, Optional, TypeVar

from ..exceptions import QueueClosedError

logger = logging.getLogger('aemeye.job_queue')

T = TypeVar('T')


class JobQueue(Generic[T]):
    """Bounded FIFO buffer with an explicit end-of-input signal.

    ``maxsize <= 0`` means unbounded.
    """

    def __init__(self, maxsize: int = 0):
        self.maxsize = maxsize
        self._items: Deque[T] = deque()
        self._closed = False
        self._readers = 0
        self._readers_seen = False
        # one lock, two wait queues: readers wait on not_empty, the producer
        # on not_full, so a put or get wakes a single waiter of the right kind
        self._lock = asyncio.Lock()
        self._not_empty = asyncio.Condition(self._lock)
        self._not_full = asyncio.Condition(self._lock)
        self._notify_task: Optional[asyncio.Future] = None

    def __len__(self) -> int:
        return len(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def readers(self) -> int:
        return self._readers

    def _abandoned(self) -> bool:
        return self._readers_seen and self._readers == 0

    def _full(self) -> bool:
        return 0 < self.maxsize <= len(self._items)

    async def put(self, item: T) -> None:
        """Append ``item``, waiting while the buffer is full.

        Raises QueueClosedError once the queue is closed or every reader has
        been released, since nobody would ever receive the item.
        """
        async with self._lock:
            while True:
                if self._closed:
                    raise QueueClosedError('queue closed')
                if self._abandoned():
                    raise QueueClosedError('no readers left')
                if not self._full():
                    break
                await self._not_full.wait()
            self._items.append(item)
            self._not_empty.notify()

    async def close(self) -> None:
        """Mark end of input. Buffered items are still delivered."""
        async with self._lock:
            if not self._closed:
                self._closed = True
                logger.debug('job queue closed with %d buffered item(s)', len(self._items))
            self._not_empty.notify_all()
            self._not_full.notify_all()

    def reader(self) -> 'JobReader[T]':
        """Register and return a new receive handle."""
        self._readers += 1
        self._readers_seen = True
        return JobReader(self)

    async def _get(self) -> Optional[T]:
        async with self._lock:
            while not self._items:
                if self._closed:
                    return None
                await self._not_empty.wait()
            item = self._items.popleft()
            self._not_full.notify()
            return item

    def _release(self) -> None:
        self._readers -= 1
        if self._abandoned():
            logger.debug('all job readers released')
            # wake a producer blocked on a full buffer
            self._notify_task = asyncio.ensure_future(self._notify())

    async def _notify(self) -> None:
        async with self._lock:
            self._not_full.notify_all()


class JobReader(Generic[T]):
    """Receive handle for one consumer. Supports ``async for``."""

    __slots__ = ('_queue', '_released')

    def __init__(self, queue: JobQueue[T]):
        self._queue = queue
        self._released = False

    async def get(self) -> Optional[T]:
        """Next job, or None once the queue is closed and drained."""
        if self._released:
            return None
        return await self._queue._get()

    def release(self) -> None:
        if not self._released:
            self._released = True
            self._queue._release()

    def __aiter__(self):
        return self

    async def __anext__(self) -> T:
        item = await self.get()
        if item is None:
            raise StopAsyncIteration
        return item
