"""Tests for configuration loading and response parsing."""

import pytest

from pipeline.config import Config, load_config
from pipeline.prompts import assess_quality, parse_json_object, reasoning_prompt, synthesis_prompt
from schemas.task import Task

ENV_VARS = ["LLM_BACKEND", "LLM_BASE_URL", "LLM_TIMEOUT", "ROUTING_STRATEGY",
            "HROUTE_PERFORMANCE_LOG", "HROUTE_SESSIONS_DIR", "LOG_LEVEL"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = Config()
    assert config.routing.strategy == "balanced"
    assert config.thinking.max_depth == 3
    assert config.hybrid.confidence_threshold == 0.7
    assert config.ensemble.max_fan_out == 3


def test_load_from_toml(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        '[thinking]\nmax_depth = 5\n\n'
        '[routing]\nstrategy = "quality-optimized"\n\n'
        '[llm.providers]\nopenai = "openai"\n'
    )
    config = load_config(path)

    assert config.thinking.max_depth == 5
    assert config.routing.strategy == "quality-optimized"
    assert config.llm.providers == {"openai": "openai"}
    assert config.non_thinking.cache_enabled


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "config.toml"
    path.write_text('[routing]\nstrategy = "quality-optimized"\n')
    monkeypatch.setenv("ROUTING_STRATEGY", "cost-optimized")
    monkeypatch.setenv("HROUTE_SESSIONS_DIR", str(tmp_path / "sessions"))
    monkeypatch.setenv("LLM_TIMEOUT", "not-a-number")

    config = load_config(path)

    assert config.routing.strategy == "cost-optimized"
    assert config.execution.sessions_dir == str(tmp_path / "sessions")
    assert config.llm.timeout == 120


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(tmp_path / "absent.toml")
    assert config.llm.backend == "auto"


@pytest.mark.parametrize(
    "content,expected",
    [
        ('{"confidence": 0.4}', {"confidence": 0.4}),
        ('```json\n{"confidence": 0.4}\n```', {"confidence": 0.4}),
        ('Here you go: {"a": 1} hope it helps', {"a": 1}),
        ("no json here", None),
        ("[1, 2, 3]", None),
    ],
)
def test_parse_json_object(content, expected):
    assert parse_json_object(content) == expected


def test_assess_quality():
    assert assess_quality('{"confidence": 0.3}') == 0.3
    assert assess_quality('{"confidence": 7}') == 1.0
    assert assess_quality('{"confidence": true}') == 0.8
    assert assess_quality("plain text") == 0.8


def test_prompts_carry_context():
    task = Task(id="t", name="Check", description="Check the contract", input={"clause": 4})
    prompt = reasoning_prompt(task, ["analyze-input"], {"lookup": {"rows": 3}}, ["be precise"])

    assert "Check the contract" in prompt
    assert '"clause": 4' in prompt
    assert "1. analyze-input" in prompt
    assert "- be precise" in prompt
    assert "--- gpt-4o ---" in synthesis_prompt(task, [("gpt-4o", "yes"), ("gemini-pro", "no")])
