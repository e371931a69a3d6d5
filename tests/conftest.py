"""Shared fixtures: a scripted model backend, tasks and run contexts."""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import pytest

from learning import SnapshotStore
from llm_backend import Completion, LLMBackend, TokenUsage
from orchestrator import CancellationToken, HybridReasoningService, RunContext, SessionStateMachine
from pipeline.config import Config
from pipeline.prompts import (
    DIRECT_SYSTEM_PROMPT,
    REASONING_SYSTEM_PROMPT,
    REFLECTION_SYSTEM_PROMPT,
    SYNTHESIS_SYSTEM_PROMPT,
)
from routing import ModelRegistry
from routing.catalog import DEFAULT_PROFILES
from schemas.task import Complexity, Priority, Task, TaskType

SYSTEM_KINDS = {
    DIRECT_SYSTEM_PROMPT: "direct",
    REASONING_SYSTEM_PROMPT: "reasoning",
    REFLECTION_SYSTEM_PROMPT: "reflection",
    SYNTHESIS_SYSTEM_PROMPT: "synthesis",
}

DEFAULT_REPLIES = {
    "direct": "A direct answer.",
    "reasoning": "A reasoned answer.",
    "reflection": '{"confidence": 0.9, "improvements": []}',
    "synthesis": "A reconciled answer.",
}


@dataclass
class Call:
    model: str
    kind: str
    prompt: str
    kwargs: dict[str, Any] = field(default_factory=dict)


class FakeBackend(LLMBackend):
    """Scripted backend.

    Replies are looked up by call kind (direct, reasoning, reflection,
    synthesis); a reply may be a string or a callable taking the model id.
    """

    def __init__(
        self,
        replies: dict[str, Any] | None = None,
        fail: set[str] | None = None,
        block: dict[str, threading.Event] | None = None,
        delays: dict[str, float] | None = None,
    ):
        self.replies = {**DEFAULT_REPLIES, **(replies or {})}
        self.fail = set(fail or ())
        self.block = dict(block or {})
        self.delays = dict(delays or {})
        self.calls: list[Call] = []
        self._lock = threading.Lock()

    def complete(self, messages, model=None, temperature=0.7, max_tokens=None, **kwargs):
        system = next((m["content"] for m in messages if m["role"] == "system"), "")
        kind = SYSTEM_KINDS.get(system, "other")
        with self._lock:
            self.calls.append(Call(model, kind, messages[-1]["content"], kwargs))

        if model in self.block:
            self.block[model].wait(timeout=5)
        if model in self.delays:
            time.sleep(self.delays[model])
        if model in self.fail:
            raise ConnectionError(f"{model} unavailable")

        reply = self.replies.get(kind, "")
        content = reply(model) if callable(reply) else reply
        return Completion(content, TokenUsage(prompt_tokens=10, completion_tokens=20))

    def list_models(self):
        return [p.id for p in DEFAULT_PROFILES]

    def is_available(self):
        return True

    def calls_of(self, kind: str) -> list[Call]:
        return [c for c in self.calls if c.kind == kind]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def registry():
    return ModelRegistry(DEFAULT_PROFILES)


@pytest.fixture
def snapshots():
    return SnapshotStore()


@pytest.fixture
def make_task():
    def _make(**overrides) -> Task:
        fields = {
            "id": "task-1",
            "name": "Summarize",
            "description": "Summarize the quarterly report",
            "type": TaskType.ANALYSIS,
            "complexity": Complexity.SIMPLE,
            "priority": Priority.LOW,
            "submitted_at": datetime(2024, 1, 1, 12, 0),
        }
        fields.update(overrides)
        return Task(**fields)

    return _make


@pytest.fixture
def make_ctx(registry):
    def _make(backend, task, token=None, deadline=None) -> RunContext:
        machine = SessionStateMachine.create(task.id)
        machine.start()
        return RunContext(
            task=task,
            machine=machine,
            backend=backend,
            registry=registry,
            token=token or CancellationToken(),
            deadline=deadline,
        )

    return _make


@pytest.fixture
def make_service(config):
    services = []

    def _make(backend, **kwargs) -> HybridReasoningService:
        service = HybridReasoningService(kwargs.pop("config", config), backend=backend, **kwargs)
        services.append(service)
        return service

    yield _make
    for service in services:
        service.close()
