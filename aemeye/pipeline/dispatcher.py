"""Turns host lines into rate-limited jobs."""
from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterable, AsyncIterator, Callable, Iterable, Optional, Set, Union

from ..exceptions import InvalidTargetError, QueueClosedError
from ..models import Job
from ..patterns import PatternSet
from ..utils.targets import normalize_target
from .job_queue import JobQueue
from .ratelimit import RateLimiter
from .stats import RunStats

logger = logging.getLogger('aemeye.dispatcher')

HostSource = Union[Iterable[str], AsyncIterable[str]]


async def _iterate(source: HostSource) -> AsyncIterator[str]:
    if hasattr(source, '__aiter__'):
        async for item in source:
            yield item
    else:
        for item in source:
            yield item


class Dispatcher:
    """Sole producer of the job queue.

    Each usable, not yet seen target costs one rate-limiter admission and
    becomes one job. The queue is closed when input runs out, when the queue
    stops accepting jobs (no workers left) or when ``cancelled`` is set.
    """

    def __init__(
        self,
        queue: JobQueue[Job],
        limiter: RateLimiter,
        patterns: PatternSet,
        *,
        normalizer: Optional[Callable[[str], str]] = normalize_target,
        stats: Optional[RunStats] = None,
        cancelled: Optional[asyncio.Event] = None,
    ):
        self._queue = queue
        self._limiter = limiter
        self._patterns = patterns
        self._normalizer = normalizer
        self._stats = stats if stats is not None else RunStats()
        self._cancelled = cancelled or asyncio.Event()
        self._seen: Set[str] = set()

    def _prepare(self, line: str) -> Optional[str]:
        self._stats.target_read()
        if self._normalizer is None:
            target = line.strip()
            if not target:
                self._stats.target_invalid()
                return None
        else:
            try:
                target = self._normalizer(line)
            except InvalidTargetError as exc:
                self._stats.target_invalid()
                logger.debug('skipping target: %s', exc.message)
                return None
        if target in self._seen:
            self._stats.target_duplicate()
            return None
        self._seen.add(target)
        return target

    async def run(self, source: HostSource) -> int:
        """Dispatch every target in ``source``. Returns the number of jobs queued."""
        try:
            async for line in _iterate(source):
                if self._cancelled.is_set():
                    logger.info('dispatch cancelled after %d job(s)', self._stats.dispatched)
                    break
                target = self._prepare(line)
                if target is None:
                    continue
                await self._limiter.admit()
                try:
                    await self._queue.put(Job(target=target, patterns=self._patterns))
                except QueueClosedError:
                    # workers are gone; nothing left to feed
                    break
                self._stats.job_dispatched()
        finally:
            await self._queue.close()
        return self._stats.dispatched
