"""Values passed through the probe pipeline."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .patterns import PatternSet


@dataclass(frozen=True)
class Job:
    """One unit of scan work: a normalized target plus the shared pattern set."""

    target: str
    patterns: PatternSet


@dataclass(frozen=True)
class JobResult:
    """A matched target. ``pattern`` names the first pattern that matched."""

    target: str
    pattern: Optional[str] = None
