"""Scenario, group and step definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loadstage._internal.errors import ScenarioError
from loadstage._internal.logging import get_logger
from loadstage.dsl.templating import placeholders
from loadstage.patterns.base import LoadPattern

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from loadstage._internal.types import ThinkTime
    from loadstage.dsl.checks import Check
    from loadstage.dsl.http_client import Response

    Extractor = str | Callable[[Response], Any]

logger = get_logger("dsl.scenario")

HTTP_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"})


def pause_range(think_time: ThinkTime | None, *, owner: str) -> tuple[float, float] | None:
    """Normalise a think time to a ``(min, max)`` range in seconds.

    Args:
        think_time: Fixed seconds, a ``(min, max)`` pair, or None.
        owner: Description of the step or group, for error messages.

    Returns:
        The range, or None when no pause is configured.

    Raises:
        ScenarioError: If the value is negative or the range is inverted.
    """
    if think_time is None:
        return None
    try:
        if isinstance(think_time, tuple | list):
            low, high = (float(v) for v in think_time)
        else:
            low = high = float(think_time)
    except (TypeError, ValueError):
        msg = f"{owner}: think_time must be seconds or a (min, max) pair, got {think_time!r}"
        raise ScenarioError(msg) from None
    if low < 0 or high < low:
        msg = f"{owner}: think_time must satisfy 0 <= min <= max, got {think_time!r}"
        raise ScenarioError(msg)
    return (low, high)


@dataclass
class Step:
    """One HTTP request plus the checks and extractions applied to its response.

    String fields (``url``, ``headers``, ``params``, ``json``, ``data``) may
    contain ``${name}`` placeholders, rendered from the iteration context
    just before the request is sent.

    Attributes:
        name: Logical name used for metrics and logs.
        url: Absolute URL or path relative to the scenario's base URL.
        method: HTTP method.
        headers: Extra request headers.
        params: Query string parameters.
        json: JSON body.  Mutually exclusive with *data*.
        data: Form fields (mapping) or raw body (string).
        checks: Assertions evaluated against the response.
        extract: Context variable name -> JSON selector (or callable taking
            the response) whose value is stored for later steps.
        think_time: Pause after the step: fixed seconds or ``(min, max)``.
    """

    name: str
    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)
    json: Any = None
    data: Any = None
    checks: list[Check] = field(default_factory=list)
    extract: dict[str, Extractor] = field(default_factory=dict)
    think_time: ThinkTime | None = None
    pause: tuple[float, float] | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        if not self.name:
            msg = f"step for {self.method} {self.url!r} needs a name"
            raise ScenarioError(msg)
        if self.method not in HTTP_METHODS:
            msg = f"step {self.name!r}: unsupported HTTP method {self.method!r}"
            raise ScenarioError(msg)
        if not self.url:
            msg = f"step {self.name!r}: url is required"
            raise ScenarioError(msg)
        if self.json is not None and self.data is not None:
            msg = f"step {self.name!r}: set either json or data, not both"
            raise ScenarioError(msg)
        if self.data is not None and not isinstance(self.data, dict | str | bytes):
            msg = (
                f"step {self.name!r}: data must be a mapping of form fields or a "
                f"string body, got {type(self.data).__name__}"
            )
            raise ScenarioError(msg)
        for var, source in self.extract.items():
            if not var.isidentifier():
                msg = f"step {self.name!r}: extract name {var!r} is not an identifier"
                raise ScenarioError(msg)
            if not (isinstance(source, str) or callable(source)):
                msg = f"step {self.name!r}: extract {var!r} must be a selector or callable"
                raise ScenarioError(msg)
        self.pause = pause_range(self.think_time, owner=f"step {self.name!r}")

    def referenced_variables(self) -> set[str]:
        """Names of context variables this step's request uses."""
        return placeholders([self.url, self.headers, self.params, self.json, self.data])


@dataclass
class Group:
    """A named, ordered run of steps, reported together.

    Attributes:
        name: Group name ("" for the implicit group of ungrouped steps).
        steps: Steps executed in order.
        think_time: Pause after the last step of the group.
    """

    name: str
    steps: list[Step]
    think_time: ThinkTime | None = None
    pause: tuple[float, float] | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.steps:
            msg = f"group {self.name!r} has no steps"
            raise ScenarioError(msg)
        self.pause = pause_range(self.think_time, owner=f"group {self.name!r}")


@dataclass
class Scenario:
    """Complete definition of a load test scenario.

    Attributes:
        name: Human-readable name.
        pattern: Concurrency schedule (stages or constant).
        groups: Groups executed in order by every iteration.
        base_url: Prepended to relative step URLs.
        default_headers: Headers sent with every request.
        request_timeout: Per-request timeout override in seconds.
    """

    name: str
    pattern: LoadPattern
    groups: list[Group]
    base_url: str = ""
    default_headers: dict[str, str] = field(default_factory=dict)
    request_timeout: float | None = None

    def __post_init__(self) -> None:
        if not self.name:
            msg = "scenario needs a name"
            raise ScenarioError(msg)
        if not isinstance(self.pattern, LoadPattern):
            msg = f"scenario {self.name!r}: pattern must be a LoadPattern"
            raise ScenarioError(msg)
        if not self.groups:
            msg = f"scenario {self.name!r} has no groups"
            raise ScenarioError(msg)
        if self.request_timeout is not None and self.request_timeout <= 0:
            msg = f"scenario {self.name!r}: request_timeout must be positive"
            raise ScenarioError(msg)
        self._warn_unbound_variables()

    def iter_steps(self) -> Iterator[tuple[Group, Step]]:
        """Yield ``(group, step)`` pairs in execution order."""
        for group in self.groups:
            for step in group.steps:
                yield group, step

    @property
    def step_count(self) -> int:
        return sum(len(g.steps) for g in self.groups)

    def _warn_unbound_variables(self) -> None:
        # Variables only come from earlier steps' extract maps; anything else
        # renders as an empty string at run time.
        bound: set[str] = {"__vu", "__iter"}
        for _group, step in self.iter_steps():
            missing = step.referenced_variables() - bound
            if missing:
                logger.warning(
                    "Scenario %r step %r uses %s before any step extracts it",
                    self.name,
                    step.name,
                    ", ".join(sorted(missing)),
                )
            bound |= set(step.extract)
