"""Run configuration.

Every option has a documented default that is used whenever the supplied
value is missing, non-numeric or out of range. A bad value is never fatal and
never silently coerced: the fallback is announced with a warning.

Values come from (highest first) explicit arguments, ``AEMEYE_*`` environment
variables, then the defaults below.
"""
from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger('aemeye.config')

DEFAULT_RATE = 1000
DEFAULT_CONCURRENCY = 100
DEFAULT_TIMEOUT = 5.0
DEFAULT_THREAD_COUNT = 10
DEFAULT_MAX_RUNTIME = 0.0  # unlimited
DEFAULT_MAX_BODY_BYTES = 2_000_000
DEFAULT_METRICS_PORT = 0  # off

ENV_PREFIX = 'AEMEYE_'


def _coerce(name: str, raw: Any, default, cast: Callable, *, allow_zero: bool = False, maximum=None):
    """Parse ``raw`` with ``cast``; fall back to ``default`` with a warning."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    try:
        value = cast(raw.strip() if isinstance(raw, str) else raw)
    except (TypeError, ValueError):
        logger.warning('could not parse %s=%r, using default of %s', name, raw, default)
        return default
    if not math.isfinite(value) or value < 0 or (value == 0 and not allow_zero):
        logger.warning('invalid %s=%r (must be %s), using default of %s',
                       name, raw, 'non-negative' if allow_zero else 'positive', default)
        return default
    if maximum is not None and value > maximum:
        logger.warning('invalid %s=%r (must be at most %s), using default of %s', name, raw, maximum, default)
        return default
    return value


def _int(raw):
    if isinstance(raw, float):
        if not raw.is_integer():
            raise ValueError(raw)
        return int(raw)
    return int(raw)


def _env(name: str) -> Optional[str]:
    return os.environ.get(ENV_PREFIX + name.upper())


@dataclass(frozen=True)
class ProbeConfig:
    """Validated settings for one probe run."""

    rate: int = DEFAULT_RATE
    concurrency: int = DEFAULT_CONCURRENCY
    timeout: float = DEFAULT_TIMEOUT
    thread_count: int = DEFAULT_THREAD_COUNT
    max_runtime: float = DEFAULT_MAX_RUNTIME
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    queue_size: int = 0  # 0 -> 2 * concurrency
    metrics_port: int = DEFAULT_METRICS_PORT

    @property
    def effective_queue_size(self) -> int:
        return self.queue_size if self.queue_size > 0 else 2 * self.concurrency

    @classmethod
    def from_values(
        cls,
        rate: Any = None,
        concurrency: Any = None,
        timeout: Any = None,
        thread_count: Any = None,
        max_runtime: Any = None,
        max_body_bytes: Any = None,
        queue_size: Any = None,
        metrics_port: Any = None,
        *,
        use_env: bool = True,
    ) -> 'ProbeConfig':
        """Build a config from loosely typed values (CLI strings, env vars).

        ``None`` means "not given": the matching ``AEMEYE_*`` variable is
        consulted when ``use_env`` is set, then the default applies.
        """
        def pick(name, value):
            if value is None and use_env:
                return _env(name)
            return value

        return cls(
            rate=_coerce('rate', pick('rate', rate), DEFAULT_RATE, _int),
            concurrency=_coerce('concurrency', pick('concurrency', concurrency), DEFAULT_CONCURRENCY, _int),
            timeout=_coerce('timeout', pick('timeout', timeout), DEFAULT_TIMEOUT, float),
            thread_count=_coerce('workers', pick('workers', thread_count), DEFAULT_THREAD_COUNT, _int),
            max_runtime=_coerce('max-runtime', pick('max_runtime', max_runtime), DEFAULT_MAX_RUNTIME, float,
                                allow_zero=True),
            max_body_bytes=_coerce('max-body-bytes', pick('max_body_bytes', max_body_bytes),
                                   DEFAULT_MAX_BODY_BYTES, _int),
            queue_size=_coerce('queue-size', pick('queue_size', queue_size), 0, _int, allow_zero=True),
            metrics_port=_coerce('metrics-port', pick('metrics_port', metrics_port), DEFAULT_METRICS_PORT, _int,
                                 allow_zero=True, maximum=65535),
        )

    def describe(self) -> str:
        return (f'rate={self.rate}/s concurrency={self.concurrency} timeout={self.timeout}s '
                f'threads={self.thread_count} max_runtime={self.max_runtime or "unlimited"}')
