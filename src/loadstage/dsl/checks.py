"""Named response checks and the predicate helpers used to build them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from loadstage._internal.errors import ScenarioError
from loadstage._internal.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from loadstage.dsl.http_client import Response

    Predicate = Callable[[Response], bool]

logger = get_logger("dsl.checks")


@dataclass(frozen=True)
class Check:
    """A named boolean assertion over a response.

    Attributes:
        name: Label the result is reported under, e.g. ``"status is 200"``.
        predicate: Pure function from :class:`Response` to bool.
    """

    name: str
    predicate: Predicate


@dataclass(frozen=True)
class CheckResult:
    """Outcome of evaluating one check against one response.

    Attributes:
        name: The check's name.
        passed: Whether the predicate returned a truthy value.
        group: Group the step belongs to ("" for ungrouped steps).
        step: Name of the step that produced the response.
    """

    name: str
    passed: bool
    group: str = ""
    step: str = ""


def run_checks(
    response: Response,
    checks: Sequence[Check],
    *,
    group: str = "",
    step: str = "",
) -> list[CheckResult]:
    """Evaluate every check against *response*.

    Always returns exactly one result per check.  A predicate that raises
    is reported as failed; the exception never reaches the caller.

    Args:
        response: The response to assert on.
        checks: Checks to evaluate, in order.
        group: Group name recorded on each result.
        step: Step name recorded on each result.

    Returns:
        One :class:`CheckResult` per check, in the same order.
    """
    results: list[CheckResult] = []
    for check in checks:
        try:
            passed = bool(check.predicate(response))
        except Exception:  # noqa: BLE001
            logger.debug("Check %r raised; counting as failed", check.name, exc_info=True)
            passed = False
        results.append(CheckResult(name=check.name, passed=passed, group=group, step=step))
    return results


# ---------------------------------------------------------------------------
# Predicate helpers
# ---------------------------------------------------------------------------


def status_is(*codes: int) -> Predicate:
    """Pass when the response status is one of *codes*."""
    allowed = frozenset(codes)
    return lambda r: r.status in allowed


def json_has(selector: str) -> Predicate:
    """Pass when the JSON body has a non-null value at *selector*."""
    return lambda r: r.json(selector) is not None


def json_equals(selector: str, expected: Any) -> Predicate:
    """Pass when the JSON value at *selector* equals *expected*."""
    return lambda r: r.json(selector) == expected


def body_contains(text: str) -> Predicate:
    """Pass when the decoded body contains *text*."""
    return lambda r: text in r.text


def duration_below(max_ms: float) -> Predicate:
    """Pass when the request completed in under *max_ms* milliseconds."""
    return lambda r: r.error is None and r.latency_ms < max_ms


def all_of(predicates: Iterable[Predicate]) -> Predicate:
    """Combine predicates so that every one of them must pass."""
    combined = tuple(predicates)
    return lambda r: all(p(r) for p in combined)


# ---------------------------------------------------------------------------
# Declarative form used by YAML/JSON scenario documents
# ---------------------------------------------------------------------------


def _json_equals_all(expected: Mapping[str, Any]) -> list[Predicate]:
    return [json_equals(path, value) for path, value in expected.items()]


_DECLARATIVE: dict[str, Callable[[Any], list[Predicate]]] = {
    "status": lambda v: [status_is(int(v))],
    "status_in": lambda v: [status_is(*(int(c) for c in v))],
    "json_has": lambda v: [json_has(p) for p in ([v] if isinstance(v, str) else v)],
    "json_equals": _json_equals_all,
    "body_contains": lambda v: [body_contains(str(v))],
    "max_duration_ms": lambda v: [duration_below(float(v))],
}


def check_from_dict(raw: Mapping[str, Any]) -> Check:
    """Build a :class:`Check` from its document form.

    Example::

        check_from_dict({"name": "status is 200", "status": 200})
        check_from_dict({"name": "got token", "status": 200, "json_has": "access"})

    Every condition key present must hold for the check to pass.

    Raises:
        ScenarioError: If ``name`` is missing, no condition is given, or a
            key is unknown or malformed.
    """
    name = raw.get("name")
    if not isinstance(name, str) or not name:
        msg = f"check requires a non-empty 'name': {dict(raw)!r}"
        raise ScenarioError(msg)

    unknown = set(raw) - {"name"} - set(_DECLARATIVE)
    if unknown:
        msg = (
            f"check {name!r} has unknown keys {sorted(unknown)}; "
            f"supported: {sorted(_DECLARATIVE)}"
        )
        raise ScenarioError(msg)

    predicates: list[Predicate] = []
    for key, build in _DECLARATIVE.items():
        if key not in raw:
            continue
        try:
            predicates.extend(build(raw[key]))
        except (TypeError, ValueError, AttributeError) as exc:
            msg = f"check {name!r} has an invalid {key!r} value: {raw[key]!r}"
            raise ScenarioError(msg) from exc

    if not predicates:
        msg = f"check {name!r} defines no condition; use one of {sorted(_DECLARATIVE)}"
        raise ScenarioError(msg)

    predicate = predicates[0] if len(predicates) == 1 else all_of(predicates)
    return Check(name=name, predicate=predicate)
