"""Tests for loading scenarios from Python, YAML and JSON files."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from loadstage._internal.errors import ConfigError, ScenarioError
from loadstage.dsl.loader import load_scenario, parse_scenario, pattern_from_dict
from loadstage.dsl.scenario import Scenario
from loadstage.patterns.constant import ConstantPattern
from loadstage.patterns.stages import Stage, StagesPattern

if TYPE_CHECKING:
    from pathlib import Path


CROCODILES_YAML = """\
name: crocodiles
base_url: https://test.k6.io
default_headers:
  User-Agent: loadstage-tests
stages:
  - {duration: 30s, target: 20}
  - {duration: 1m, target: 20}
  - {duration: 10s, target: 0}
groups:
  - name: Public endpoints
    steps:
      - name: crocodile 1
        url: /public/crocodiles/1/
        checks:
          - {name: status is 200, status: 200}
        think_time: 1s
      - name: crocodiles
        url: /public/crocodiles/
        checks:
          - {name: status is 200, status: 200}
        think_time: 1s
  - name: Private endpoints
    think_time: [0.5, 1s]
    steps:
      - name: login
        method: post
        url: /auth/token/login/
        data: {username: test, password: test}
        checks:
          - {name: login status is 200, status: 200}
        extract:
          token: access
      - name: my crocodiles
        url: /my/crocodiles/
        headers:
          Authorization: "Bearer ${token}"
        checks:
          - {name: status is 200, status: 200}
"""


def _minimal(**overrides: object) -> dict[str, object]:
    document: dict[str, object] = {
        "name": "minimal",
        "stages": [{"duration": "10s", "target": 1}],
        "steps": [{"name": "home", "url": "/"}],
    }
    document.update(overrides)
    return document


class TestLoadScenarioFiles:
    """Tests for load_scenario."""

    def test_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "crocodiles.yaml"
        path.write_text(CROCODILES_YAML, encoding="utf-8")

        scenario = load_scenario(path)

        assert scenario.name == "crocodiles"
        assert scenario.base_url == "https://test.k6.io"
        assert scenario.default_headers == {"User-Agent": "loadstage-tests"}
        assert isinstance(scenario.pattern, StagesPattern)
        assert scenario.pattern.stages == (Stage(30.0, 20), Stage(60.0, 20), Stage(10.0, 0))
        assert [g.name for g in scenario.groups] == ["Public endpoints", "Private endpoints"]

        login, mine = scenario.groups[1].steps
        assert login.method == "POST"
        assert login.data == {"username": "test", "password": "test"}
        assert login.extract == {"token": "access"}
        assert [c.name for c in login.checks] == ["login status is 200"]
        assert mine.headers == {"Authorization": "Bearer ${token}"}
        assert scenario.groups[0].steps[0].pause == (1.0, 1.0)
        assert scenario.groups[1].pause == (0.5, 1.0)

    def test_yml_suffix(self, tmp_path: Path) -> None:
        path = tmp_path / "crocodiles.yml"
        path.write_text(CROCODILES_YAML, encoding="utf-8")
        assert load_scenario(path).name == "crocodiles"

    def test_json(self, tmp_path: Path) -> None:
        path = tmp_path / "minimal.json"
        path.write_text(json.dumps(_minimal()), encoding="utf-8")

        scenario = load_scenario(path)

        assert scenario.name == "minimal"
        assert len(scenario.groups) == 1
        assert scenario.groups[0].name == ""
        assert scenario.groups[0].steps[0].url == "/"

    def test_python_module(self, tmp_path: Path) -> None:
        path = tmp_path / "py_scenario.py"
        path.write_text(
            """\
from loadstage import Check, Group, Scenario, Stage, StagesPattern, Step, status_is

home = Step("home", "/", checks=[Check("status is 200", status_is(200))])
scenario = Scenario(
    name="from python",
    pattern=StagesPattern([Stage(5.0, 2)]),
    groups=[Group("main", [home])],
)
""",
            encoding="utf-8",
        )

        scenario = load_scenario(path)

        assert isinstance(scenario, Scenario)
        assert scenario.name == "from python"
        assert scenario.pattern.max_concurrency() == 2

    def test_python_module_without_scenario(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.py"
        path.write_text("x = 1\n", encoding="utf-8")
        with pytest.raises(ScenarioError, match="No Scenario instance"):
            load_scenario(path)

    def test_python_module_import_error(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.py"
        path.write_text("raise RuntimeError('nope')\n", encoding="utf-8")
        with pytest.raises(ScenarioError, match="Failed to import"):
            load_scenario(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ScenarioError, match="not found"):
            load_scenario(tmp_path / "missing.yaml")

    def test_unsupported_suffix(self, tmp_path: Path) -> None:
        path = tmp_path / "scenario.toml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ScenarioError, match=r"must be \.py"):
            load_scenario(path)

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("name: [unclosed\n", encoding="utf-8")
        with pytest.raises(ScenarioError, match="Failed to parse"):
            load_scenario(path)

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ScenarioError, match="mapping at the top level"):
            load_scenario(path)


class TestParseScenario:
    """Tests for parse_scenario document validation."""

    def test_constant_vus(self) -> None:
        document = _minimal(vus=3, duration="30s")
        del document["stages"]
        pattern = parse_scenario(document).pattern
        assert isinstance(pattern, ConstantPattern)
        assert pattern.users == 3
        assert pattern.duration_seconds == 30.0

    def test_request_timeout(self) -> None:
        assert parse_scenario(_minimal(request_timeout="5s")).request_timeout == 5.0

    def test_step_name_defaults_to_url(self) -> None:
        document = _minimal(steps=[{"url": "/health"}])
        assert parse_scenario(document).groups[0].steps[0].name == "/health"

    def test_unknown_scenario_key(self) -> None:
        with pytest.raises(ScenarioError, match="unknown keys"):
            parse_scenario(_minimal(threshold=1))

    def test_unknown_step_key(self) -> None:
        with pytest.raises(ScenarioError, match="unknown keys"):
            parse_scenario(_minimal(steps=[{"name": "a", "url": "/", "body": "x"}]))

    def test_groups_and_steps_exclusive(self) -> None:
        groups = [{"name": "g", "steps": [{"name": "a", "url": "/"}]}]
        with pytest.raises(ScenarioError, match="not both"):
            parse_scenario(_minimal(groups=groups))

    def test_requires_steps(self) -> None:
        document = _minimal()
        del document["steps"]
        with pytest.raises(ScenarioError, match="non-empty list"):
            parse_scenario(document)

    def test_requires_pattern(self) -> None:
        document = _minimal()
        del document["stages"]
        with pytest.raises(ScenarioError, match="needs 'stages'"):
            parse_scenario(document)

    def test_stages_and_vus_exclusive(self) -> None:
        with pytest.raises(ScenarioError, match="not both"):
            parse_scenario(_minimal(vus=1, duration="1s"))

    def test_invalid_stage(self) -> None:
        with pytest.raises(ScenarioError, match="stage duration"):
            parse_scenario(_minimal(stages=[{"duration": "forever", "target": 1}]))

    def test_checks_must_be_mappings(self) -> None:
        steps = [{"name": "a", "url": "/", "checks": ["status is 200"]}]
        with pytest.raises(ScenarioError, match="'checks' must be a list of mappings"):
            parse_scenario(_minimal(steps=steps))

    def test_extract_values_must_be_selectors(self) -> None:
        steps = [{"name": "a", "url": "/", "extract": {"token": 1}}]
        with pytest.raises(ScenarioError, match="'extract' must map"):
            parse_scenario(_minimal(steps=steps))

    def test_think_time_range_needs_two_values(self) -> None:
        steps = [{"name": "a", "url": "/", "think_time": [1, 2, 3]}]
        with pytest.raises(ScenarioError, match="two values"):
            parse_scenario(_minimal(steps=steps))


class TestPatternFromDict:
    """Tests for pattern_from_dict."""

    def test_start_users(self) -> None:
        pattern = pattern_from_dict(
            {"stages": [{"duration": "10s", "target": 10}], "start_users": 4}
        )
        assert pattern.concurrency_at(0.0) == 4

    def test_vus_requires_duration(self) -> None:
        with pytest.raises(ConfigError, match="must be given together"):
            pattern_from_dict({"vus": 2})

    def test_non_integer_vus(self) -> None:
        with pytest.raises(ConfigError, match="vus must be an integer"):
            pattern_from_dict({"vus": "two", "duration": "1s"})


class TestStepBodies:
    """Tests for step body validation at load time."""

    @pytest.mark.parametrize("data", [5, ["username", "test"], True])
    def test_rejects_non_form_data(self, data: object) -> None:
        steps = [
            {"name": "bad", "method": "POST", "url": "/echo", "data": data},
            {"name": "after", "url": "/"},
        ]
        with pytest.raises(ScenarioError, match="data must be a mapping"):
            parse_scenario(_minimal(steps=steps))

    @pytest.mark.parametrize("data", [{"username": "test"}, "raw=body"])
    def test_accepts_form_fields_and_text(self, data: object) -> None:
        steps = [{"name": "login", "method": "POST", "url": "/login/", "data": data}]
        assert parse_scenario(_minimal(steps=steps)).groups[0].steps[0].data == data
