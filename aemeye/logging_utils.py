import logging
import threading
import time
from typing import Dict, Tuple

_SuppressionKey = Tuple[str, str, int]
_SuppressionState = Dict[str, float | int]

_SUPPRESSION_LOCK = threading.Lock()
_SUPPRESSION_STATE: Dict[_SuppressionKey, _SuppressionState] = {}


def log_suppressed(
    logger: logging.Logger,
    exc: Exception,
    context: str,
    *,
    level: int = logging.DEBUG,
    sample: int = 5,
    cooldown: float = 60.0,
    exc_info: bool = False,
) -> int:
    """Emit a throttled log entry for repeated soft-failures.

    Probing thousands of hosts produces the same failure (connection refused,
    DNS miss, timeout) over and over; this keeps the log readable.

    Parameters
    ----------
    logger: logging.Logger
        Target logger to write into.
    exc: Exception
        Exception instance that triggered the log entry.
    context: str
        Identifier used to aggregate per failure site, e.g. ``fetch:timeout``.
    level: int
        Logging level; defaults to ``DEBUG``.
    sample: int
        Emit the first ``sample`` occurrences before throttling kicks in.
    cooldown: float
        Minimum seconds between emissions once the sample budget is
        exhausted.
    exc_info: bool
        Attach the traceback to emitted records.

    Returns
    -------
    int
        Total number of times this ``context`` has requested logging
        (including suppressed writes).
    """
    now = time.monotonic()
    key: _SuppressionKey = (logger.name, context, level)
    with _SUPPRESSION_LOCK:
        state = _SUPPRESSION_STATE.setdefault(key, {'count': 0, 'last_emit': float('-inf')})
        state['count'] = int(state['count']) + 1
        count = int(state['count'])
        last_emit = float(state['last_emit'])
        should_emit = count <= sample or (now - last_emit) >= cooldown
        if should_emit:
            state['last_emit'] = now
    if should_emit:
        logger.log(level, '%s err=%s (suppressed=%d)', context, exc, max(0, count - 1), exc_info=exc_info)
    return count


def get_suppressed_snapshot() -> Dict[str, Dict[str, float | int]]:
    """Return a shallow copy of suppression counters."""
    with _SUPPRESSION_LOCK:
        snapshot: Dict[str, Dict[str, float | int]] = {}
        for (logger_name, context, level), state in _SUPPRESSION_STATE.items():
            key = f'{logger_name}:{context}:{level}'
            snapshot[key] = {
                'count': int(state.get('count', 0)),
                'last_emit': float(state.get('last_emit', 0.0)),
            }
    return snapshot


def reset_suppressed_state() -> None:
    """Clear suppression counters. Useful for unit tests."""
    with _SUPPRESSION_LOCK:
        _SUPPRESSION_STATE.clear()
