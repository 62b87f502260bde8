"""Concurrency schedules for loadstage.

A schedule maps elapsed run time to the number of virtual users that should
be active.  All schedules implement :class:`LoadPattern`; the engine reads
them through :meth:`LoadPattern.iter_concurrency`.
"""

from __future__ import annotations

from loadstage.patterns.base import LoadPattern
from loadstage.patterns.constant import ConstantPattern
from loadstage.patterns.stages import Stage, StagesPattern

__all__ = [
    "ConstantPattern",
    "LoadPattern",
    "Stage",
    "StagesPattern",
]
