"""Concurrent probe pipeline.

host lines -> Dispatcher (rate limited) -> JobQueue -> Worker pool -> ResultSink
"""

from .dispatcher import Dispatcher
from .job_queue import JobQueue, JobReader
from .ratelimit import RateLimiter
from .runner import Pipeline, install_scheduler_executor, run_probe
from .sink import CallbackSink, MemorySink, QueueSink, ResultSink, StdoutSink
from .stats import RunStats
from .worker import Worker, WorkerState

__all__ = [
    'Dispatcher',
    'JobQueue',
    'JobReader',
    'RateLimiter',
    'Pipeline',
    'run_probe',
    'install_scheduler_executor',
    'ResultSink',
    'StdoutSink',
    'CallbackSink',
    'MemorySink',
    'QueueSink',
    'RunStats',
    'Worker',
    'WorkerState',
]
