from __future__ import annotations

import sys
from typing import List, Optional, TextIO

from ..exceptions import InputSourceError


def read_host_lines(source: TextIO) -> List[str]:
    """Trimmed, non-empty, non-comment lines of ``source``."""
    out: List[str] = []
    for line in source:
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        out.append(line)
    return out


def read_hosts(path: Optional[str] = None, stdin: Optional[TextIO] = None) -> List[str]:
    """Read the host list from ``path`` (``None`` or ``-`` means stdin).

    The whole list is read before the pipeline starts so an unreadable source
    is reported before any job is dispatched.
    """
    if path in (None, '', '-'):
        stream = stdin if stdin is not None else sys.stdin
        try:
            return read_host_lines(stream)
        except (OSError, UnicodeDecodeError) as exc:
            raise InputSourceError('<stdin>', str(exc)) from exc
    try:
        with open(path, 'r', encoding='utf-8', errors='replace') as fh:
            return read_host_lines(fh)
    except OSError as exc:
        raise InputSourceError(path, exc.strerror or str(exc)) from exc
