"""Integration tests for the LoadTestRunner."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from loadstage._internal.config import LoadStageConfig
from loadstage._internal.errors import ScenarioError
from loadstage.dsl.checks import Check, status_is
from loadstage.dsl.scenario import Group, Scenario, Step
from loadstage.engine.runner import LoadTestRunner
from loadstage.patterns.constant import ConstantPattern
from loadstage.patterns.stages import Stage, StagesPattern

if TYPE_CHECKING:
    from pathlib import Path

    from loadstage.metrics.models import MetricSnapshot


@pytest.mark.timeout(30)
class TestLoadTestRunner:
    def test_run_yaml_scenario(self, crocodiles_yaml: Path):
        result = LoadTestRunner(crocodiles_yaml).run()

        assert result.scenario_name == "crocodiles"
        assert not result.aborted
        assert result.duration_seconds >= 1.0
        summary = result.final_summary
        assert summary is not None
        assert summary.total_requests > 0
        assert summary.iterations > 0
        assert summary.checks_failed == 0
        assert "::Private endpoints::login status is 200" in summary.checks
        assert "::Private endpoints::my crocodiles" in summary.endpoints

    def test_run_scenario_object(self, sync_test_server: str):
        snapshots: list[MetricSnapshot] = []
        scenario = Scenario(
            name="object",
            pattern=StagesPattern([Stage(0.3, 1)]),
            groups=[
                Group(
                    "",
                    [
                        Step(
                            "crocodile 2",
                            "/public/crocodiles/2/",
                            checks=[Check("status is 200", status_is(200))],
                            think_time=0.01,
                        )
                    ],
                )
            ],
            base_url=sync_test_server,
        )

        result = LoadTestRunner(
            scenario,
            config=LoadStageConfig(tick_interval=0.1, graceful_stop=2.0),
            on_snapshot=snapshots.append,
        ).run()

        assert snapshots
        assert result.final_summary is not None
        assert result.final_summary.checks["status is 200"].passes > 0

    def test_pattern_override(self, crocodiles_yaml: Path):
        result = LoadTestRunner(
            crocodiles_yaml,
            pattern=ConstantPattern(users=1, duration=0.3),
        ).run()

        assert result.pattern_description.startswith("Constant")
        assert max(s.active_users for s in result.snapshots) == 1

    def test_missing_scenario_file(self, tmp_path: Path):
        runner = LoadTestRunner(tmp_path / "missing.yaml")
        with pytest.raises(ScenarioError, match="not found"):
            runner.run()
