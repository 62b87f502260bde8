"""loadstage: ramped load scenarios with grouped HTTP steps and checks."""

from __future__ import annotations

from loadstage.dsl.checks import (
    Check,
    CheckResult,
    body_contains,
    duration_below,
    json_equals,
    json_has,
    status_is,
)
from loadstage.dsl.http_client import HttpClient, RequestMetric, Response
from loadstage.dsl.scenario import Group, Scenario, Step
from loadstage.engine.runner import LoadTestRunner
from loadstage.patterns.base import LoadPattern
from loadstage.patterns.constant import ConstantPattern
from loadstage.patterns.stages import Stage, StagesPattern

__version__ = "0.1.0"

__all__ = [
    "Check",
    "CheckResult",
    "ConstantPattern",
    "Group",
    "HttpClient",
    "LoadPattern",
    "LoadTestRunner",
    "RequestMetric",
    "Response",
    "Scenario",
    "Stage",
    "StagesPattern",
    "Step",
    "body_contains",
    "duration_below",
    "json_equals",
    "json_has",
    "status_is",
]
