"""Probe workers.

A worker pulls jobs from its reader until the queue is closed and drained.
For every job it tries the patterns in order, one GET per pattern, and
reports the target on the first match only. Every per-target failure is
absorbed here: a dead host costs one skipped pattern, never the worker.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import threading
from concurrent.futures import Executor
from typing import Callable, Optional

import requests

from ..logging_utils import log_suppressed
from ..metrics import track_active_fetch
from ..models import Job, JobResult
from . import network
from .job_queue import JobReader
from .sink import ResultSink
from .stats import RunStats

logger = logging.getLogger('aemeye.worker')

# per-target failures; anything else is a bug and propagates
FETCH_ERRORS = (requests.RequestException, ValueError)


class WorkerState(str, enum.Enum):
    IDLE = 'idle'
    FETCHING = 'fetching'
    MATCHING = 'matching'
    REPORTING = 'reporting'
    CLOSED = 'closed'


class Worker:
    """One member of the pool. Owns a private HTTP session."""

    def __init__(
        self,
        worker_id: int,
        reader: JobReader[Job],
        sink: ResultSink,
        *,
        timeout: float,
        max_body_bytes: int,
        executor: Optional[Executor] = None,
        stats: Optional[RunStats] = None,
        session_factory: Optional[Callable[[], requests.Session]] = None,
    ):
        self.worker_id = worker_id
        self.state = WorkerState.IDLE
        self.processed = 0
        self._reader = reader
        self._sink = sink
        self._timeout = timeout
        self._max_body_bytes = max_body_bytes
        self._executor = executor
        self._stats = stats if stats is not None else RunStats()
        self._session_factory = session_factory or network.build_session
        self._session: Optional[requests.Session] = None
        # fetch threads outlive a cancelled task; the session is closed by
        # whichever side finishes last
        self._session_lock = threading.Lock()
        self._inflight = 0
        self._closing = False

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = self._session_factory()
        return self._session

    async def run(self) -> int:
        """Process jobs until the queue reports closed. Returns jobs handled."""
        try:
            async for job in self._reader:
                await self.process(job)
                self.processed += 1
        finally:
            self.state = WorkerState.CLOSED
            self._reader.release()
            self._close_session()
        logger.debug('worker %d closed after %d job(s)', self.worker_id, self.processed)
        return self.processed

    def _close_session(self) -> None:
        with self._session_lock:
            self._closing = True
            busy = self._inflight > 0
        if self._session is not None and not busy:
            self._session.close()

    def _fetch_blocking(self, session: requests.Session, target: str) -> str:
        """Runs on an executor thread."""
        try:
            return network.fetch_body(session, target, self._timeout, self._max_body_bytes)
        finally:
            with self._session_lock:
                self._inflight -= 1
                close = self._closing and self._inflight == 0
            if close:
                session.close()

    async def fetch(self, target: str) -> Optional[str]:
        """Body of ``target``, or None when the probe failed for any reason."""
        self.state = WorkerState.FETCHING
        loop = asyncio.get_running_loop()
        session = self.session
        with self._session_lock:
            self._inflight += 1
        with track_active_fetch() as tracker:
            try:
                body = await loop.run_in_executor(self._executor, self._fetch_blocking, session, target)
            except FETCH_ERRORS as exc:
                kind = network.classify_error(exc)
                self._stats.fetch_done(tracker.duration, kind)
                log_suppressed(logger, exc, f'fetch:{kind}')
                return None
        self._stats.fetch_done(tracker.duration)
        return body

    async def process(self, job: Job) -> Optional[JobResult]:
        """Probe one target; report and return the result on first match."""
        result = None
        for name in job.patterns:
            body = await self.fetch(job.target)
            if body is None:
                continue
            self.state = WorkerState.MATCHING
            if job.patterns.compiled(name).search(body):
                result = JobResult(target=job.target, pattern=name)
                break
        if result is not None:
            self.state = WorkerState.REPORTING
            self._stats.target_matched(result.pattern)
            await self.report(result)
        self.state = WorkerState.IDLE
        return result

    async def report(self, result: JobResult) -> None:
        try:
            await self._sink.deliver(result)
        except Exception as exc:
            log_suppressed(logger, exc, 'sink:deliver', level=logging.WARNING)
