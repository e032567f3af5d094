"""Result sinks.

A sink receives ``JobResult`` values from workers. Delivery is best effort: a
sink that cannot keep up may drop results, but must not hold a worker for
long.
"""
from __future__ import annotations

import asyncio
import logging
import sys
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, TextIO

from ..models import JobResult

logger = logging.getLogger('aemeye.sink')


class ResultSink(ABC):
    """Consumer of matched targets."""

    @abstractmethod
    async def deliver(self, result: JobResult) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        """Called once after the worker pool has finished."""


class StdoutSink(ResultSink):
    """Prints one line per result: the target, nothing else.

    Writes go through the loop's default executor so a slow reader on the
    other end of a pipe blocks a scheduler thread, not the event loop.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream
        self._lock = threading.Lock()

    def _write(self, line: str) -> None:
        stream = self._stream or sys.stdout
        with self._lock:
            stream.write(line)
            stream.flush()

    async def deliver(self, result: JobResult) -> None:
        await asyncio.get_running_loop().run_in_executor(None, self._write, result.target + '\n')


class CallbackSink(ResultSink):
    def __init__(self, callback: Callable[[JobResult], None]):
        self._callback = callback

    async def deliver(self, result: JobResult) -> None:
        self._callback(result)


class MemorySink(ResultSink):
    """Collects results in a list (library use, tests)."""

    def __init__(self):
        self.results: List[JobResult] = []

    @property
    def targets(self) -> List[str]:
        return [r.target for r in self.results]

    async def deliver(self, result: JobResult) -> None:
        self.results.append(result)


class QueueSink(ResultSink):
    """Forwards results to an ``asyncio.Queue`` drained by someone else.

    Waits at most ``put_timeout`` seconds on a full queue, then drops the
    result. ``None`` is put on the queue when the pipeline finishes.
    """

    def __init__(self, queue: asyncio.Queue, put_timeout: float = 1.0):
        self.queue = queue
        self.put_timeout = put_timeout
        self.dropped = 0

    async def deliver(self, result: JobResult) -> None:
        try:
            await asyncio.wait_for(self.queue.put(result), timeout=self.put_timeout)
        except asyncio.TimeoutError:
            self.dropped += 1
            logger.warning('result queue full, dropped result target=%s (dropped=%d)', result.target, self.dropped)

    async def close(self) -> None:
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            logger.warning('result queue full, consumer will not see end-of-results marker')
