"""Tests for the localchat command line."""

from __future__ import annotations

import click
import httpx
import pytest
from click.testing import CliRunner

from conftest import FakeServer, make_transport, sse, sse_delta
from localchat.cli import main
from localchat.core import session as session_mod
from localchat.events.lifecycle import LifecycleRegistry
from localchat.llm.client import InferenceClient

BASE = "http://localhost:11434"


@pytest.fixture
def serve(tmp_path, monkeypatch):
    """Route every client the CLI builds to a fake server."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setattr(session_mod, "get_lifecycle_registry", lambda: LifecycleRegistry([]))

    def _serve(handler) -> FakeServer:
        server = FakeServer(handler)
        monkeypatch.setattr(
            InferenceClient, "from_config",
            classmethod(lambda cls, config: cls(make_transport(server))),
        )
        return server

    return _serve


def _run(*args: str):
    return CliRunner().invoke(main, ["--url", BASE, "--model", "llama3", *args])


class TestChat:
    def test_streams_answer(self, serve):
        server = serve(lambda r: httpx.Response(
            200, content=sse(sse_delta("<think>plan</think>"), sse_delta("answer")),
        ))
        result = _run("chat", "hello")
        assert result.exit_code == 0, result.output
        assert "plan" in result.output
        assert "answer" in result.output
        assert server.payload()["messages"][-1] == {"role": "user", "content": "hello"}

    def test_single_break_between_thinking_and_answer(self, serve):
        serve(lambda r: httpx.Response(
            200, content=sse(sse_delta("<think>plan</think>"), sse_delta("answer")),
        ))
        result = _run("chat", "hello")
        assert "plan\nanswer" in click.unstyle(result.output)

    def test_no_thinking(self, serve):
        serve(lambda r: httpx.Response(
            200, content=sse(sse_delta("<think>plan</think>"), sse_delta("answer")),
        ))
        result = _run("chat", "--no-thinking", "hello")
        assert "plan" not in result.output
        assert "answer" in result.output

    def test_error_exits_nonzero(self, serve):
        serve(lambda r: httpx.Response(404))
        result = _run("chat", "hello")
        assert result.exit_code == 1
        assert "Model endpoint not found" in result.output

    def test_requires_model(self, serve):
        serve(lambda r: httpx.Response(200))
        result = CliRunner().invoke(main, ["chat", "hello"])
        assert result.exit_code == 1
        assert "No model configured" in result.output


class TestModels:
    def test_lists_models(self, serve):
        serve(lambda r: httpx.Response(200, json={"models": [{"name": "llama3"}, {"name": "phi4"}]}))
        result = _run("models")
        assert result.exit_code == 0, result.output
        assert "llama3" in result.output
        assert "phi4" in result.output

    def test_listing_failure(self, serve):
        serve(lambda r: httpx.Response(500))
        result = _run("models")
        assert result.exit_code == 1
        assert "Server error (HTTP 500)" in result.output


class TestPing:
    def test_online(self, serve):
        serve(lambda r: httpx.Response(200, json={}))
        result = _run("ping")
        assert result.exit_code == 0
        assert "online" in result.output

    def test_offline(self, serve):
        serve(lambda r: httpx.Response(503))
        result = _run("ping")
        assert result.exit_code == 1
        assert "offline" in result.output
