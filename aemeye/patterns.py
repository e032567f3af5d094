"""Detection patterns.

A ``PatternSet`` is built once at startup and shared read-only by every job.
All sources are compiled on construction so a malformed expression fails the
run before any request is sent.

The defaults fingerprint Adobe Experience Manager: DAM asset links and the
``/etc.clientlibs`` proxy path both show up in markup rendered by AEM.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Dict, Iterable, Iterator, Optional

from .exceptions import InvalidPatternError

DEFAULT_PATTERNS: Dict[str, str] = {
    'dam': r'href="/content/dam.*',
    'clientlibs': r'href="/etc.clientlibs.*',
}

NAME_RE = re.compile(r'^[A-Za-z0-9_.-]+$')


class PatternSet(Mapping):
    """Immutable name -> regex source mapping with pre-compiled expressions.

    Iteration order is insertion order, which is also the order workers try
    patterns in.
    """

    __slots__ = ('_sources', '_compiled')

    def __init__(self, patterns: Mapping[str, str] | Iterable[tuple[str, str]]):
        items = patterns.items() if isinstance(patterns, Mapping) else patterns
        sources: Dict[str, str] = {}
        compiled: Dict[str, re.Pattern] = {}
        for name, source in items:
            if not isinstance(name, str) or not NAME_RE.match(name):
                raise InvalidPatternError(str(name), str(source), 'pattern name must match [A-Za-z0-9_.-]+')
            if name in sources:
                raise InvalidPatternError(name, source, 'duplicate pattern name')
            if not isinstance(source, str) or not source:
                raise InvalidPatternError(name, str(source), 'empty pattern')
            try:
                compiled[name] = re.compile(source)
            except re.error as exc:
                raise InvalidPatternError(name, source, f'does not compile: {exc}') from exc
            sources[name] = source
        if not sources:
            raise InvalidPatternError('-', '', 'at least one pattern is required')
        self._sources = sources
        self._compiled = compiled

    def __getitem__(self, name: str) -> str:
        return self._sources[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._sources)

    def __len__(self) -> int:
        return len(self._sources)

    def __repr__(self) -> str:
        return f'PatternSet({self._sources!r})'

    def compiled(self, name: str) -> re.Pattern:
        return self._compiled[name]


def default_patterns() -> PatternSet:
    return PatternSet(DEFAULT_PATTERNS)


def parse_pattern_args(values: Optional[Iterable[str]]) -> PatternSet:
    """Build a PatternSet from ``NAME=REGEX`` strings (CLI ``--pattern``).

    No values means the default set.
    """
    values = list(values or [])
    if not values:
        return default_patterns()
    pairs = []
    for raw in values:
        name, sep, source = raw.partition('=')
        if not sep:
            raise InvalidPatternError(raw, raw, 'expected NAME=REGEX')
        pairs.append((name.strip(), source))
    return PatternSet(pairs)
