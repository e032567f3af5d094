"""Pipeline lifecycle: wires limiter, queue, dispatcher, workers and sink.

Normal shutdown: input exhausted -> dispatcher closes the queue -> workers
drain it and exit -> sink closed. ``Pipeline.cancel()`` (or ``max_runtime``)
stops everything early without waiting for in-flight requests to time out.

Blocking fetches run on a pool of ``concurrency`` threads, one per worker.
``thread_count`` sizes the loop's default executor (see
``install_scheduler_executor``).
"""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

import requests

from ..config import ProbeConfig
from ..models import Job
from ..patterns import PatternSet, default_patterns
from ..utils.targets import normalize_target
from .dispatcher import Dispatcher, HostSource
from .job_queue import JobQueue
from .ratelimit import RateLimiter
from .sink import ResultSink, StdoutSink
from .stats import RunStats
from .worker import Worker

logger = logging.getLogger('aemeye.pipeline')


class Pipeline:
    """One probe run. Instances are single use."""

    def __init__(
        self,
        config: Optional[ProbeConfig] = None,
        patterns: Optional[PatternSet] = None,
        sink: Optional[ResultSink] = None,
        *,
        normalizer: Optional[Callable[[str], str]] = normalize_target,
        session_factory: Optional[Callable[[], requests.Session]] = None,
        limiter: Optional[RateLimiter] = None,
    ):
        self.config = config or ProbeConfig()
        self.patterns = patterns if patterns is not None else default_patterns()
        self.sink = sink or StdoutSink()
        self.stats = RunStats()
        self.workers: List[Worker] = []
        self._normalizer = normalizer
        self._session_factory = session_factory
        self._limiter = limiter
        self._cancelled: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._started = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled is not None and self._cancelled.is_set()

    def cancel(self) -> None:
        """Request an early stop. Safe to call from any thread or signal handler."""
        if self._cancelled is None or self._loop is None:
            return
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._cancelled.set)

    async def run(self, source: HostSource) -> RunStats:
        if self._started:
            raise RuntimeError('Pipeline instances are single use')
        self._started = True
        cfg = self.config
        self._loop = asyncio.get_running_loop()
        self._cancelled = asyncio.Event()
        self.stats = RunStats()
        logger.info('probe starting %s patterns=%s', cfg.describe(), ','.join(self.patterns))

        queue: JobQueue[Job] = JobQueue(maxsize=cfg.effective_queue_size)
        limiter = self._limiter or RateLimiter(cfg.rate)
        # one thread per worker: the blocking GET is the worker's only suspension point
        executor = ThreadPoolExecutor(max_workers=cfg.concurrency, thread_name_prefix='aemeye-fetch')

        # readers are registered before the dispatcher starts so an early
        # put() never sees an abandoned queue
        self.workers = [
            Worker(
                i, queue.reader(), self.sink,
                timeout=cfg.timeout,
                max_body_bytes=cfg.max_body_bytes,
                executor=executor,
                stats=self.stats,
                session_factory=self._session_factory,
            )
            for i in range(cfg.concurrency)
        ]
        dispatcher = Dispatcher(
            queue, limiter, self.patterns,
            normalizer=self._normalizer,
            stats=self.stats,
            cancelled=self._cancelled,
        )

        dispatch_task = asyncio.create_task(dispatcher.run(source), name='aemeye-dispatcher')
        worker_tasks = [asyncio.create_task(w.run(), name=f'aemeye-worker-{w.worker_id}') for w in self.workers]
        pool = asyncio.gather(*worker_tasks, return_exceptions=True)
        cancel_wait = asyncio.create_task(self._cancelled.wait(), name='aemeye-cancel-watch')
        timeout = cfg.max_runtime or None

        stop_reason = 'completed'
        try:
            done, _ = await asyncio.wait({pool, cancel_wait}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
            if pool not in done:
                if cancel_wait in done:
                    stop_reason = 'cancelled'
                    logger.warning('probe cancelled, stopping workers')
                else:
                    stop_reason = 'deadline'
                    logger.warning('max runtime of %ss reached, stopping workers', cfg.max_runtime)
        except asyncio.CancelledError:
            stop_reason = 'cancelled'
            raise
        finally:
            cancel_wait.cancel()
            cancelled = stop_reason != 'completed'
            if cancelled:
                self._cancelled.set()
                for task in [dispatch_task, *worker_tasks]:
                    task.cancel()
            elif not dispatch_task.done():
                # every worker has exited; nothing would consume further jobs
                dispatch_task.cancel()
            dispatched, worker_results = await asyncio.gather(dispatch_task, pool, return_exceptions=True)
            executor.shutdown(wait=not cancelled, cancel_futures=cancelled)
            await self.sink.close()
            self.stats.finish(stop_reason)
            if not isinstance(worker_results, list):
                worker_results = [worker_results]
            for outcome in [dispatched, *worker_results]:
                if isinstance(outcome, Exception):
                    logger.error('pipeline task failed: %r', outcome, exc_info=outcome)
            logger.info('probe finished %s', self.stats.summary())
        return self.stats


def install_scheduler_executor(thread_count: int) -> ThreadPoolExecutor:
    """Size the running loop's default executor to ``thread_count`` threads.

    These scheduler threads serve ``run_in_executor(None, ...)`` work such as
    result output and asyncio's own blocking helpers. HTTP fetches use the
    pipeline's per-worker pool instead. Only call this on a loop you own:
    ``asyncio.run`` shuts the executor down when the loop finishes.
    """
    executor = ThreadPoolExecutor(max_workers=thread_count, thread_name_prefix='aemeye-sched')
    asyncio.get_running_loop().set_default_executor(executor)
    return executor


def run_probe(
    targets: HostSource,
    config: Optional[ProbeConfig] = None,
    patterns: Optional[PatternSet] = None,
    sink: Optional[ResultSink] = None,
    **kwargs,
) -> RunStats:
    """Synchronous convenience wrapper around ``Pipeline.run``."""
    pipeline = Pipeline(config, patterns, sink, **kwargs)

    async def _main():
        install_scheduler_executor(pipeline.config.thread_count)
        return await pipeline.run(targets)

    return asyncio.run(_main())
