"""Scenario loading from Python modules and YAML/JSON documents."""

from __future__ import annotations

import importlib.util
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from loadstage._internal.durations import parse_duration
from loadstage._internal.errors import ConfigError, ScenarioError
from loadstage._internal.logging import get_logger
from loadstage.dsl.checks import check_from_dict
from loadstage.dsl.scenario import Group, Scenario, Step
from loadstage.patterns.constant import ConstantPattern
from loadstage.patterns.stages import Stage, StagesPattern

if TYPE_CHECKING:
    from collections.abc import Mapping

    from loadstage.patterns.base import LoadPattern

logger = get_logger("dsl.loader")

_DOCUMENT_SUFFIXES = {".yaml", ".yml", ".json"}

_SCENARIO_KEYS = {
    "name",
    "base_url",
    "default_headers",
    "request_timeout",
    "stages",
    "start_users",
    "vus",
    "duration",
    "groups",
    "steps",
}
_GROUP_KEYS = {"name", "steps", "think_time"}
_STEP_KEYS = {
    "name",
    "method",
    "url",
    "headers",
    "params",
    "json",
    "data",
    "checks",
    "extract",
    "think_time",
}


def load_scenario(file_path: str | Path) -> Scenario:
    """Load a scenario from a ``.py``, ``.yaml``/``.yml`` or ``.json`` file.

    Python files are imported and their module globals scanned for a
    :class:`Scenario` instance.  Documents are parsed with
    :func:`parse_scenario`.

    Args:
        file_path: Path to the scenario file.

    Returns:
        The loaded scenario.

    Raises:
        ScenarioError: If the file does not exist, cannot be parsed, or
            does not define a valid scenario.
    """
    path = Path(file_path)

    if not path.exists():
        msg = f"Scenario file not found: {path}"
        raise ScenarioError(msg)

    if path.suffix == ".py":
        return _load_module(path)
    if path.suffix in _DOCUMENT_SUFFIXES:
        return _load_document(path)

    msg = f"Scenario file must be .py, .yaml, .yml or .json, got: {path}"
    raise ScenarioError(msg)


def _load_module(path: Path) -> Scenario:
    module_name = f"loadstage_scenario_{path.stem}"

    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        msg = f"Could not create module spec for: {path}"
        raise ScenarioError(msg)

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module

    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        msg = f"Failed to import scenario file {path}: {exc}"
        raise ScenarioError(msg) from exc

    scenarios = [obj for obj in vars(module).values() if isinstance(obj, Scenario)]
    if not scenarios:
        sys.modules.pop(module_name, None)
        msg = f"No Scenario instance found in {path}. Assign one to a module-level name."
        raise ScenarioError(msg)
    if len(scenarios) > 1:
        logger.warning(
            "%s defines %d scenarios; using %r",
            path,
            len(scenarios),
            scenarios[0].name,
        )
    return scenarios[0]


def _load_document(path: Path) -> Scenario:
    try:
        with path.open("r", encoding="utf-8") as handle:
            if path.suffix == ".json":
                document = json.load(handle)
            else:
                document = yaml.safe_load(handle)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        msg = f"Failed to parse scenario file {path}: {exc}"
        raise ScenarioError(msg) from exc

    if not isinstance(document, dict):
        msg = f"Scenario file {path} must contain a mapping at the top level"
        raise ScenarioError(msg)
    return parse_scenario(document)


def parse_scenario(document: Mapping[str, Any]) -> Scenario:
    """Build a :class:`Scenario` from its document form.

    Example document (YAML)::

        name: crocodiles
        base_url: https://test.k6.io
        stages:
          - {duration: 30s, target: 20}
          - {duration: 1m, target: 20}
          - {duration: 10s, target: 0}
        groups:
          - name: Private endpoints
            steps:
              - name: login
                method: POST
                url: /auth/token/login/
                data: {username: test, password: test}
                checks: [{name: login status is 200, status: 200}]
                extract: {token: access}
              - name: my crocodiles
                url: /my/crocodiles/
                headers: {Authorization: "Bearer ${token}"}
                checks: [{name: status is 200, status: 200}]
                think_time: 1s

    Top-level ``steps`` (without ``groups``) form a single unnamed group.

    Args:
        document: Decoded YAML/JSON mapping.

    Returns:
        The validated scenario.

    Raises:
        ScenarioError: If the document is malformed.
    """
    _reject_unknown(document, _SCENARIO_KEYS, "scenario")

    if "groups" in document and "steps" in document:
        msg = "scenario may define 'groups' or top-level 'steps', not both"
        raise ScenarioError(msg)

    if "steps" in document:
        groups = [Group(name="", steps=_parse_steps(document["steps"], where="scenario"))]
    else:
        raw_groups = _require_list(document.get("groups"), "scenario 'groups'")
        groups = [_parse_group(raw) for raw in raw_groups]

    try:
        pattern = pattern_from_dict(document)
        timeout = document.get("request_timeout")
        return Scenario(
            name=str(document.get("name") or ""),
            pattern=pattern,
            groups=groups,
            base_url=document.get("base_url", ""),
            default_headers=dict(document.get("default_headers") or {}),
            request_timeout=(
                parse_duration(timeout, name="request_timeout") if timeout is not None else None
            ),
        )
    except ConfigError as exc:
        msg = f"scenario {document.get('name', '')!r}: {exc}"
        raise ScenarioError(msg) from exc


def pattern_from_dict(document: Mapping[str, Any]) -> LoadPattern:
    """Build the load pattern from ``stages`` or ``vus`` + ``duration`` keys.

    Raises:
        ConfigError: If neither form is present, both are, or a value is
            invalid.
    """
    has_stages = "stages" in document
    has_constant = "vus" in document or "duration" in document

    if has_stages and has_constant:
        msg = "use either 'stages' or 'vus' + 'duration', not both"
        raise ConfigError(msg)

    if has_stages:
        raw_stages = document["stages"]
        if not isinstance(raw_stages, list) or not all(isinstance(s, dict) for s in raw_stages):
            msg = "'stages' must be a list of {duration, target} mappings"
            raise ConfigError(msg)
        return StagesPattern(
            [Stage.from_dict(raw) for raw in raw_stages],
            start_users=_as_int(document.get("start_users", 0), "start_users"),
        )

    if has_constant:
        if "vus" not in document or "duration" not in document:
            msg = "'vus' and 'duration' must be given together"
            raise ConfigError(msg)
        return ConstantPattern(
            users=_as_int(document["vus"], "vus"),
            duration=parse_duration(document["duration"], name="duration"),
        )

    msg = "scenario needs 'stages' or 'vus' + 'duration'"
    raise ConfigError(msg)


def _parse_group(raw: Any) -> Group:
    if not isinstance(raw, dict):
        msg = f"group must be a mapping, got {raw!r}"
        raise ScenarioError(msg)
    _reject_unknown(raw, _GROUP_KEYS, f"group {raw.get('name', '')!r}")
    name = str(raw.get("name", ""))
    return Group(
        name=name,
        steps=_parse_steps(raw.get("steps"), where=f"group {name!r}"),
        think_time=_parse_think_time(raw.get("think_time"), owner=f"group {name!r}"),
    )


def _parse_steps(raw_steps: Any, *, where: str) -> list[Step]:
    steps = []
    for raw in _require_list(raw_steps, f"{where} 'steps'"):
        if not isinstance(raw, dict):
            msg = f"{where}: step must be a mapping, got {raw!r}"
            raise ScenarioError(msg)
        steps.append(_parse_step(raw))
    return steps


def _parse_step(raw: Mapping[str, Any]) -> Step:
    name = str(raw.get("name") or raw.get("url", ""))
    _reject_unknown(raw, _STEP_KEYS, f"step {name!r}")

    raw_checks = raw.get("checks") or []
    if not isinstance(raw_checks, list) or not all(isinstance(c, dict) for c in raw_checks):
        msg = f"step {name!r}: 'checks' must be a list of mappings"
        raise ScenarioError(msg)
    checks = [check_from_dict(c) for c in raw_checks]
    extract = raw.get("extract") or {}
    if not isinstance(extract, dict) or not all(isinstance(v, str) for v in extract.values()):
        msg = f"step {name!r}: 'extract' must map variable names to JSON selectors"
        raise ScenarioError(msg)

    return Step(
        name=name,
        url=str(raw.get("url", "")),
        method=str(raw.get("method", "GET")),
        headers={str(k): str(v) for k, v in (raw.get("headers") or {}).items()},
        params={str(k): str(v) for k, v in (raw.get("params") or {}).items()},
        json=raw.get("json"),
        data=raw.get("data"),
        checks=checks,
        extract=dict(extract),
        think_time=_parse_think_time(raw.get("think_time"), owner=f"step {name!r}"),
    )


def _parse_think_time(raw: Any, *, owner: str) -> float | tuple[float, float] | None:
    if raw is None:
        return None
    try:
        if isinstance(raw, list):
            if len(raw) != 2:  # noqa: PLR2004
                msg = f"{owner}: think_time range must have two values, got {raw!r}"
                raise ScenarioError(msg)
            return (
                parse_duration(raw[0], name="think_time"),
                parse_duration(raw[1], name="think_time"),
            )
        return parse_duration(raw, name="think_time")
    except ConfigError as exc:
        msg = f"{owner}: {exc}"
        raise ScenarioError(msg) from exc


def _require_list(value: Any, what: str) -> list[Any]:
    if not isinstance(value, list) or not value:
        msg = f"{what} must be a non-empty list"
        raise ScenarioError(msg)
    return value


def _reject_unknown(raw: Mapping[str, Any], allowed: set[str], what: str) -> None:
    unknown = set(raw) - allowed
    if unknown:
        msg = f"{what} has unknown keys: {sorted(unknown)}"
        raise ScenarioError(msg)


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int | str):
        msg = f"{name} must be an integer, got {value!r}"
        raise ConfigError(msg)
    try:
        return int(value)
    except ValueError:
        msg = f"{name} must be an integer, got {value!r}"
        raise ConfigError(msg) from None
