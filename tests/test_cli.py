"""Smoke tests for the mlralph CLI."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from mlralph import __version__
from mlralph.cli import cli
from mlralph.config import config_path
from mlralph.project import init_project
from mlralph.session import runs_dir
from mlralph.stream.events import (
    DoneEvent,
    NormalizedEvent,
    TextEvent,
    ToolResultEvent,
    ToolStartEvent,
)


class ScriptedSession:
    """Replaces ClaudeSession: every iteration completes the project."""

    prompts: list[str] = []

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        pass

    async def execute(
        self, prompt: str, options: Any = None
    ) -> AsyncIterator[NormalizedEvent]:
        ScriptedSession.prompts.append(prompt)
        yield TextEvent(content="UNDERSTAND: looking at the data")
        yield ToolStartEvent(
            tool_id="t1", tool="Bash", input={"command": "python train.py"}
        )
        yield ToolResultEvent(tool_id="t1", output="auc=0.81")
        yield DoneEvent(result="<project_complete>", num_turns=2, cost_usd=0.01)

    def cancel(self) -> None:
        pass


@pytest.fixture
def scripted_session():
    ScriptedSession.prompts = []
    with patch("mlralph.orchestrator.runner.ClaudeSession", ScriptedSession):
        yield ScriptedSession


def test_help() -> None:
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "ML-Ralph" in result.output


def test_version() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert f"mlralph, version {__version__}" in result.output


class TestRunCommand:
    def test_not_initialized(self, tmp_path: Path, scripted_session: Any) -> None:
        result = CliRunner().invoke(cli, ["run", "-C", str(tmp_path)])
        assert result.exit_code == 1
        assert "Not initialized" in result.output
        assert scripted_session.prompts == []
        assert not runs_dir(tmp_path).exists()

    def test_runs_until_complete(self, tmp_path: Path, scripted_session: Any) -> None:
        init_project(tmp_path)
        result = CliRunner().invoke(
            cli, ["run", "-C", str(tmp_path), "-n", "3", "--hint", "try xgboost"]
        )
        assert result.exit_code == 0, result.output
        assert "Iteration 1" in result.output
        assert "python train.py" in result.output
        assert "Project complete." in result.output
        assert "Iteration 2" not in result.output
        assert len(scripted_session.prompts) == 1
        assert "try xgboost" in scripted_session.prompts[0]
        assert len(list(runs_dir(tmp_path).glob("*.jsonl"))) == 1

    def test_no_record(self, tmp_path: Path, scripted_session: Any) -> None:
        init_project(tmp_path)
        result = CliRunner().invoke(cli, ["run", "-C", str(tmp_path), "--no-record"])
        assert result.exit_code == 0, result.output
        assert not runs_dir(tmp_path).exists()

    def test_invalid_iterations(self, tmp_path: Path) -> None:
        result = CliRunner().invoke(cli, ["run", "-C", str(tmp_path), "-n", "0"])
        assert result.exit_code == 2

    def test_bad_config(self, tmp_path: Path, scripted_session: Any) -> None:
        init_project(tmp_path)
        config_path(tmp_path).write_text("colour: red\n", encoding="utf-8")
        result = CliRunner().invoke(cli, ["run", "-C", str(tmp_path)])
        assert result.exit_code == 1
        assert "Unknown setting" in result.output
        assert scripted_session.prompts == []


class TestReplayCommand:
    def test_replays_recorded_run(self, tmp_path: Path, scripted_session: Any) -> None:
        init_project(tmp_path)
        runner = CliRunner()
        assert runner.invoke(cli, ["run", "-C", str(tmp_path)]).exit_code == 0
        [run_file] = runs_dir(tmp_path).glob("*.jsonl")

        result = runner.invoke(cli, ["replay", str(run_file)])

        assert result.exit_code == 0, result.output
        assert "Iterations: 1" in result.output
        assert "Iteration 1" in result.output
        assert "UNDERSTAND" in result.output
        assert "Ended: project_complete" in result.output

    def test_lists_runs(self, tmp_path: Path, scripted_session: Any) -> None:
        init_project(tmp_path)
        runner = CliRunner()
        runner.invoke(cli, ["run", "-C", str(tmp_path)])

        result = runner.invoke(cli, ["replay", "-C", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert "1 iterations" in result.output
        assert "project_complete" in result.output

    def test_no_runs(self, tmp_path: Path) -> None:
        result = CliRunner().invoke(cli, ["replay", "-C", str(tmp_path)])
        assert result.exit_code == 0
        assert "No recorded runs" in result.output

    def test_truncated_file_warns(self, tmp_path: Path) -> None:
        run_file = tmp_path / "run.jsonl"
        run_file.write_text("{broken\n", encoding="utf-8")
        result = CliRunner().invoke(cli, ["replay", str(run_file)])
        assert result.exit_code == 0
        assert "Invalid JSON" in result.output
        assert "did not finish" in result.output
