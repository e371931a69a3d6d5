"""Tests for model and tool backends."""

import json

import pytest
import requests

from llm_backend import BackendPool, OllamaBackend, get_backend
from pipeline.errors import ProviderError
from tools import HttpToolBackend, ToolCatalog, ToolCategory, ToolSpec, ToolStatus
from tools.catalog import tool_relevance
from schemas.task import Complexity, TaskType

from conftest import FakeBackend


class FakeResponse:
    def __init__(self, body, status_code=200, reason="OK"):
        self._body = body
        self.status_code = status_code
        self.reason = reason

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body

    def raise_for_status(self):
        if not self.ok:
            raise requests.exceptions.HTTPError(f"{self.status_code} {self.reason}")


def test_invoke_wraps_backend_errors():
    backend = FakeBackend(fail={"gpt-4o"})
    with pytest.raises(ProviderError) as excinfo:
        backend.invoke("hello", "gpt-4o")
    assert excinfo.value.model_id == "gpt-4o"


def test_invoke_wraps_malformed_responses():
    backend = FakeBackend({"other": lambda model: json.loads("<html>502</html>")})
    with pytest.raises(ProviderError) as excinfo:
        backend.invoke("hello", "gpt-4o")
    assert isinstance(excinfo.value.__cause__, ValueError)
    assert "JSONDecodeError" in excinfo.value.message


def test_invoke_builds_messages_and_passes_extras():
    backend = FakeBackend()
    response = backend.invoke("hello", "gpt-4o", {"system": "be brief", "temperature": 0.1, "json_mode": True})

    assert response.model_id == "gpt-4o"
    assert response.usage.total_tokens == 30
    assert backend.calls[0].prompt == "hello"
    assert backend.calls[0].kwargs == {"json_mode": True}


def test_pool_dispatches_by_provider():
    openai, fallback = FakeBackend({"other": "from openai"}), FakeBackend({"other": "from default"})
    providers = {"gpt-4o": "openai", "glm-45-air": "zhipu"}
    pool = BackendPool({"openai": openai}, provider_of=providers.get, default=fallback)

    assert pool.invoke("hi", "gpt-4o").content == "from openai"
    assert pool.invoke("hi", "glm-45-air").content == "from default"
    assert len(openai.calls) == len(fallback.calls) == 1


def test_pool_without_default_fails_for_unknown_provider():
    pool = BackendPool({"openai": FakeBackend()}, provider_of=lambda m: None)
    with pytest.raises(ProviderError):
        pool.invoke("hi", "mystery")


def test_unknown_backend_kind():
    with pytest.raises(ValueError):
        get_backend("carrier-pigeon")


def test_ollama_maps_aliases_and_json_mode(monkeypatch):
    sent = {}

    def fake_post(url, json, timeout):
        sent.update(json)
        return FakeResponse({"message": {"content": "hi"}, "prompt_eval_count": 5, "eval_count": 7})

    monkeypatch.setattr(requests, "post", fake_post)
    backend = OllamaBackend(aliases={"glm-45-air": "qwen2.5:7b"})
    completion = backend.complete([{"role": "user", "content": "x"}], model="glm-45-air",
                                  max_tokens=50, json_mode=True)

    assert sent["model"] == "qwen2.5:7b"
    assert sent["format"] == "json"
    assert sent["options"]["num_predict"] == 50
    assert completion.usage.total_tokens == 12


def test_ollama_connection_error_becomes_provider_error(monkeypatch):
    def refuse(*args, **kwargs):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(requests, "post", refuse)
    with pytest.raises(ProviderError):
        OllamaBackend().invoke("x", "glm-45-air")


def test_http_tool_success_and_failure(monkeypatch):
    replies = {
        "lookup": FakeResponse({"success": True, "result": {"rows": 3}}),
        "broken": FakeResponse({"success": False, "error": "bad input"}),
        "missing": FakeResponse({}, status_code=404, reason="Not Found"),
    }
    monkeypatch.setattr(requests, "post", lambda url, **kwargs: replies[url.rsplit("/", 1)[-1]])
    tools = HttpToolBackend("http://tools.local/")

    assert tools.execute("lookup", {}).output == {"rows": 3}
    assert tools.execute("broken", {}).error == "bad input"
    assert tools.execute("missing", {}).error == "HTTP 404: Not Found"


def test_http_tool_timeout(monkeypatch):
    def slow(*args, **kwargs):
        raise requests.exceptions.Timeout()

    monkeypatch.setattr(requests, "post", slow)
    assert HttpToolBackend("http://tools.local").execute("lookup", {}).status == ToolStatus.TIMEOUT


def test_http_tool_listing(monkeypatch):
    body = [
        {"id": "lookup", "category": "analysis", "domains": ["legal"]},
        {"id": "odd", "category": "unheard-of"},
    ]
    monkeypatch.setattr(requests, "get", lambda url, **kwargs: FakeResponse(body))

    specs = HttpToolBackend("http://tools.local").available_tools()
    assert [s.id for s in specs] == ["lookup", "odd"]
    assert specs[0].domains == ("legal",)
    assert specs[1].category == ToolCategory.SYSTEM


def test_catalog_selection(make_task):
    catalog = ToolCatalog([
        ToolSpec("search", category=ToolCategory.SEARCH),
        ToolSpec("statute", category=ToolCategory.DOMAIN, domains=("legal",)),
        ToolSpec("shell", category=ToolCategory.SYSTEM),
    ])
    task = make_task(domain="legal", complexity=Complexity.EXPERT, optional_tools=("unregistered",))

    selected = catalog.select(task, max_tools=3)

    assert [s.spec.id for s in selected] == ["unregistered", "statute", "search"]
    assert selected[0].explicit and not selected[0].required
    assert selected[1].relevance == 1.0
    assert tool_relevance(ToolSpec("shell"), make_task(type=TaskType.GENERATION)) == pytest.approx(0.8)
