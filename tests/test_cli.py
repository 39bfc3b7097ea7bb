# tests/test_cli.py
"""CLI tests: exit codes and output formats."""

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from probity.api.agent import Agent
from probity.cli import main as cli_main
from probity.cli.main import EXIT_CONFIG_ERROR, EXIT_RUNTIME_ERROR, EXIT_SUCCESS, EXIT_VALIDATION_FAILED, app
from probity.version import VERSION

runner = CliRunner()


def write_plan(tmp_path: Path, data: str, steps, **extra) -> str:
    plan = {"name": "numbers", "data": data, "steps": steps, **extra}
    path = tmp_path / "plan.yml"
    path.write_text(yaml.safe_dump(plan, sort_keys=False), encoding="utf-8")
    return str(path)


PASSING = [{"kind": "col_exists", "columns": ["x", "y"]}, {"kind": "row_count_match", "params": {"count": 5}}]
FAILING = [{"kind": "col_vals_between", "columns": ["x"], "params": {"left": 0, "right": 10}}]


class TestInterrogateCommand:
    def test_version(self):
        """--version prints the version and exits 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"probity {VERSION}" in result.stdout

    def test_passing_plan(self, tmp_path, numbers_parquet):
        """A passing plan exits 0 and prints a summary."""
        plan = write_plan(tmp_path, numbers_parquet, PASSING)
        result = runner.invoke(app, ["interrogate", plan])
        assert result.exit_code == EXIT_SUCCESS, result.output
        assert "3/3 steps passed" in result.stdout

    def test_failure_without_stop_exits_zero_by_default(self, tmp_path, numbers_parquet):
        """Failures below the stop level keep exit code 0."""
        plan = write_plan(tmp_path, numbers_parquet, FAILING)
        result = runner.invoke(app, ["interrogate", plan])
        assert result.exit_code == EXIT_SUCCESS

    def test_fail_on_fail(self, tmp_path, numbers_parquet):
        """--fail-on fail exits 1 on any failing step."""
        plan = write_plan(tmp_path, numbers_parquet, FAILING)
        result = runner.invoke(app, ["interrogate", plan, "--fail-on", "fail"])
        assert result.exit_code == EXIT_VALIDATION_FAILED

    def test_stop_state_fails(self, tmp_path, numbers_parquet):
        """A triggered stop state exits 1."""
        plan = write_plan(tmp_path, numbers_parquet, FAILING, actions={"stop_at": 0.25})
        result = runner.invoke(app, ["interrogate", plan])
        assert result.exit_code == EXIT_VALIDATION_FAILED

    def test_halt_effect_is_reported(self, tmp_path, numbers_parquet):
        """A Halt reaction is reported and results are still printed."""
        plan = write_plan(tmp_path, numbers_parquet, FAILING, actions={"stop_at": 1, "fns": {"stop": ["halt"]}})
        result = runner.invoke(app, ["interrogate", plan, "--fail-on", "never"])
        assert result.exit_code == EXIT_SUCCESS
        assert "Stop threshold reached at step 1" in result.output

    def test_json_output(self, tmp_path, numbers_parquet):
        """-o json prints the agent as JSON."""
        plan = write_plan(tmp_path, numbers_parquet, FAILING)
        result = runner.invoke(app, ["interrogate", plan, "-o", "json"])
        payload = json.loads(result.stdout)
        assert payload["name"] == "numbers"
        step = payload["results"][0]
        assert (step["n_units"], step["n_fail"]) == (5, 2)

    def test_data_override(self, tmp_path, numbers_parquet, numbers_csv):
        """--data replaces the plan's data source."""
        plan = write_plan(tmp_path, numbers_parquet, PASSING)
        result = runner.invoke(app, ["interrogate", plan, "--data", numbers_csv, "-o", "json"])
        assert result.exit_code == EXIT_SUCCESS
        assert json.loads(result.stdout)["table"] == "numbers.csv"

    def test_pipeline_mode_flag(self, tmp_path, numbers_parquet):
        """--mode pipeline stops after the first stop state."""
        steps = FAILING + PASSING
        plan = write_plan(tmp_path, numbers_parquet, steps, actions={"stop_at": 1})
        result = runner.invoke(app, ["interrogate", plan, "--mode", "pipeline", "-o", "json"])
        assert result.exit_code == EXIT_VALIDATION_FAILED
        payload = json.loads(result.stdout)
        assert len(payload["results"]) == 1
        assert payload["summary"]["stopped_at"] == 1


class TestConfigErrors:
    def test_missing_plan(self, tmp_path):
        """A missing plan file is a config error."""
        result = runner.invoke(app, ["interrogate", str(tmp_path / "missing.yml")])
        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_invalid_step(self, tmp_path, numbers_parquet):
        """A malformed step is a config error."""
        plan = write_plan(tmp_path, numbers_parquet, [{"kind": "col_vals_between", "columns": ["x"]}])
        result = runner.invoke(app, ["interrogate", plan])
        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_missing_data_file(self, tmp_path):
        """A missing data file is a config error."""
        plan = write_plan(tmp_path, str(tmp_path / "missing.parquet"), PASSING)
        result = runner.invoke(app, ["interrogate", plan])
        assert result.exit_code == EXIT_CONFIG_ERROR

    @pytest.mark.parametrize("flags", [["-o", "xml"], ["--fail-on", "sometimes"], ["--mode", "eventually"]])
    def test_bad_options(self, tmp_path, numbers_parquet, flags):
        """Unknown option values are config errors."""
        plan = write_plan(tmp_path, numbers_parquet, PASSING)
        result = runner.invoke(app, ["interrogate", plan, *flags])
        assert result.exit_code == EXIT_CONFIG_ERROR


class TestRuntimeErrors:
    def test_agent_closed_when_rendering_fails(self, tmp_path, numbers_parquet, monkeypatch):
        """The plan's data connection is released even if output fails."""
        closed = []
        original_close = Agent.close

        def tracking_close(self):
            closed.append(self.name)
            original_close(self)

        def broken_render(agent, console=None):
            raise RuntimeError("terminal gone")

        monkeypatch.setattr(Agent, "close", tracking_close)
        monkeypatch.setattr(cli_main, "render_agent", broken_render)

        plan = write_plan(tmp_path, numbers_parquet, PASSING)
        result = runner.invoke(app, ["interrogate", plan])
        assert result.exit_code == EXIT_RUNTIME_ERROR
        assert closed == ["numbers"]
