"""Tests for the hroute CLI."""

import json

import pytest
from typer.testing import CliRunner

from pipeline import cli
from pipeline.config import Config

runner = CliRunner()


@pytest.fixture(autouse=True)
def default_config(monkeypatch):
    config = Config()
    monkeypatch.setattr(cli, "get_config", lambda: config)
    return config


def test_route_shows_decision():
    result = runner.invoke(cli.app, ["route", "Summarize the report", "-c", "simple", "-p", "low"])

    assert result.exit_code == 0
    assert "glm-45-air" in result.output
    assert "non-thinking" in result.output


def test_route_from_task_file(tmp_path):
    task_file = tmp_path / "claim.json"
    task_file.write_text(json.dumps({
        "description": "Review the claim",
        "domain": "healthcare",
        "complexity": "expert",
        "priority": "critical",
    }))

    result = runner.invoke(cli.app, ["route", "--task-file", str(task_file), "--explain"])

    assert result.exit_code == 0
    assert "glm-45-flagship" in result.output


def test_route_rejects_invalid_task_file(tmp_path):
    task_file = tmp_path / "bad.json"
    task_file.write_text(json.dumps({"description": "x", "complexity": "impossible"}))

    result = runner.invoke(cli.app, ["route", "--task-file", str(task_file)])
    assert result.exit_code == 1


def test_route_requires_a_task():
    assert runner.invoke(cli.app, ["route"]).exit_code == 1


@pytest.mark.parametrize("command", ["rules", "models", "modes", "version", "config-show"])
def test_listing_commands(command):
    assert runner.invoke(cli.app, [command]).exit_code == 0


def test_trace_needs_sessions_dir():
    result = runner.invoke(cli.app, ["trace", "ses-missing"])
    assert result.exit_code == 1


def test_metrics_reads_performance_log(tmp_path, default_config):
    from learning import PerformanceStore
    from schemas.performance import PerformanceRecord
    from schemas.routing import ModeCategory

    path = tmp_path / "performance.jsonl"
    PerformanceStore(path).append(PerformanceRecord(
        mode=ModeCategory.THINKING,
        model="gpt-4o",
        processing_time_ms=900,
        accuracy=0.9,
        success=True,
    ))
    default_config.learning.store_path = str(path)

    result = runner.invoke(cli.app, ["metrics"])

    assert result.exit_code == 0
    assert "Requests:" in result.output
