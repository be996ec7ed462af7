"""Shared fixtures: fake inference servers built on ``httpx.MockTransport``."""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Callable

import httpx
import pytest

from localchat.llm.client import InferenceClient
from localchat.llm.transport import ResilientTransport


def sse(*objs: Any, done: bool = True) -> bytes:
    """Encode objects as an OpenAI-style SSE body."""
    lines = [f"data: {json.dumps(o)}" for o in objs]
    if done:
        lines.append("data: [DONE]")
    return ("\n".join(lines) + "\n").encode()


def ndjson(*objs: Any) -> bytes:
    """Encode objects as an Ollama-style NDJSON body."""
    return ("\n".join(json.dumps(o) for o in objs) + "\n").encode()


def sse_delta(content: str) -> dict[str, Any]:
    return {"choices": [{"delta": {"content": content}}]}


async def chunked(*parts: bytes, hang: asyncio.Event | None = None) -> AsyncIterator[bytes]:
    """Yield *parts* one by one; optionally block forever afterwards."""
    for part in parts:
        yield part
        await asyncio.sleep(0)
    if hang is not None:
        await hang.wait()


class FakeServer:
    """Records requests and answers them with a handler."""

    def __init__(self, handler: Callable[[httpx.Request], Any]) -> None:
        self.handler = handler
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        result = self.handler(request)
        if asyncio.iscoroutine(result):
            result = await result
        return result

    def payload(self, index: int = -1) -> dict[str, Any]:
        return json.loads(self.requests[index].content)


def make_transport(server: FakeServer, offline: bool = False, **kwargs: Any) -> ResilientTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(server))
    return ResilientTransport(client, offline_probe=lambda: offline, **kwargs)


@pytest.fixture
def make_client():
    def _make(handler: Callable[[httpx.Request], Any], **kwargs: Any) -> tuple[InferenceClient, FakeServer]:
        server = FakeServer(handler)
        transport_kwargs = {k: kwargs.pop(k) for k in ("offline", "local_timeout", "remote_timeout") if k in kwargs}
        client = InferenceClient(make_transport(server, **transport_kwargs), **kwargs)
        return client, server

    return _make
