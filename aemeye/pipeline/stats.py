"""Per-run counters.

Only ever touched from the event-loop thread, so no lock is needed. The
process-wide Prometheus series are updated alongside (``aemeye.metrics``).
"""
from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from .. import metrics


@dataclass
class RunStats:
    started_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None
    read: int = 0
    invalid: int = 0
    duplicates: int = 0
    dispatched: int = 0
    requests: int = 0
    errors: Counter = field(default_factory=Counter)
    matched: int = 0
    matches_by_pattern: Counter = field(default_factory=Counter)
    stop_reason: str = 'completed'  # completed, cancelled, deadline

    def target_read(self):
        self.read += 1

    def target_invalid(self):
        self.invalid += 1
        metrics.record_skip('invalid')

    def target_duplicate(self):
        self.duplicates += 1
        metrics.record_skip('duplicate')

    def job_dispatched(self):
        self.dispatched += 1
        metrics.record_dispatch()

    def fetch_done(self, duration: float, error_type: Optional[str] = None):
        self.requests += 1
        if error_type is not None:
            self.errors[error_type] += 1
        metrics.record_fetch(duration, error_type)

    def target_matched(self, pattern: str):
        self.matched += 1
        self.matches_by_pattern[pattern] += 1
        metrics.record_match(pattern)

    def finish(self, stop_reason: str = 'completed'):
        self.finished_at = time.monotonic()
        self.stop_reason = stop_reason

    @property
    def cancelled(self) -> bool:
        return self.stop_reason != 'completed'

    @property
    def duration(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return max(0.0, end - self.started_at)

    @property
    def failed_requests(self) -> int:
        return sum(self.errors.values())

    def summary(self) -> str:
        errors = ' '.join(f'{k}={v}' for k, v in sorted(self.errors.items())) or 'none'
        return (f'read={self.read} invalid={self.invalid} duplicates={self.duplicates} '
                f'dispatched={self.dispatched} requests={self.requests} matched={self.matched} '
                f'errors=[{errors}] duration={self.duration:.2f}s stop={self.stop_reason}')
