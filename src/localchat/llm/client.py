"""Streaming chat client for Ollama and OpenAI-compatible servers.

Talks to whichever backend the configured URL points at: the endpoint
resolver picks the path and the decoder auto-detects the wire format, so
callers never need to know which flavour they are using.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import Any, AsyncGenerator, Callable

from localchat.config import ChatConfig
from localchat.core.cancellation import CancellationToken
from localchat.types import ConnectionTestResult, ModelListResult, StreamDelta, StreamRequest

from .decoder import StreamDecoder
from .endpoints import Endpoint, resolve_chat_url, resolve_url
from .errors import ErrorKind, NetworkError
from .transport import CONNECTION_TEST_TIMEOUT, STREAM_FIRST_BYTE_TIMEOUT, ResilientTransport

_logger = logging.getLogger(__name__)

TextCallback = Callable[[str], Any]


class InferenceClient:
    """Single-attempt chat streaming, model discovery and connection tests."""

    def __init__(
        self,
        transport: ResilientTransport | None = None,
        *,
        stream_timeout: float = STREAM_FIRST_BYTE_TIMEOUT,
        probe_timeout: float = CONNECTION_TEST_TIMEOUT,
    ) -> None:
        self._owns_transport = transport is None
        self.transport = transport or ResilientTransport()
        self.stream_timeout = stream_timeout
        self.probe_timeout = probe_timeout

    # ------------------------------------------------------------------
    # Streaming chat
    # ------------------------------------------------------------------

    async def iter_deltas(
        self, request: StreamRequest,
    ) -> AsyncGenerator[StreamDelta, None]:
        """Yield decoded deltas in stream order.  Raises ``NetworkError``."""
        url = resolve_chat_url(request.base_url)
        decoder = StreamDecoder()
        chunks = self.transport.stream(
            "POST",
            url,
            json=request.to_payload(),
            timeout=self.stream_timeout,
            cancel=request.cancel,
        )
        async with aclosing(chunks):
            async for chunk in chunks:
                for delta in decoder.feed(chunk):
                    yield delta
        for delta in decoder.finish():
            yield delta

    async def stream_chat(
        self,
        request: StreamRequest,
        *,
        on_chunk: TextCallback,
        on_thinking: TextCallback | None = None,
        on_complete: Callable[[], Any] | None = None,
        on_error: Callable[[NetworkError], Any] | None = None,
    ) -> None:
        """Stream one answer through callbacks.

        ``on_chunk`` receives visible content, ``on_thinking`` reasoning.
        Every failure reaches ``on_error`` as a ``NetworkError``; without an
        ``on_error`` it is raised instead.
        """
        try:
            async with aclosing(self.iter_deltas(request)) as deltas:
                async for delta in deltas:
                    if delta.content:
                        on_chunk(delta.content)
                    if delta.reasoning and on_thinking is not None:
                        on_thinking(delta.reasoning)
        except NetworkError as exc:
            _logger.info("Stream failed: %s (%s)", exc.kind.value, exc.message)
            if on_error is None:
                raise
            on_error(exc)
            return
        except Exception as exc:
            _logger.exception("Unexpected error while streaming")
            err = NetworkError(ErrorKind.UNKNOWN, str(exc) or type(exc).__name__)
            if on_error is None:
                raise err from exc
            on_error(err)
            return

        if on_complete is not None:
            on_complete()

    # ------------------------------------------------------------------
    # Discovery / health
    # ------------------------------------------------------------------

    async def list_models(
        self, base_url: str, cancel: CancellationToken | None = None,
    ) -> ModelListResult:
        """List models: Ollama ``/api/tags`` first, then ``/v1/models``."""
        native_url = resolve_url(base_url, Endpoint.NATIVE_MODELS)
        try:
            resp = await self.transport.request("GET", native_url, cancel=cancel)
            data = resp.json()
            names = [
                m.get("name") or m.get("id") or ""
                for m in data.get("models") or []
                if isinstance(m, dict)
            ]
            return ModelListResult(success=True, models=[n for n in names if n])
        except (NetworkError, ValueError, AttributeError) as exc:
            _logger.debug("%s failed (%s); trying OpenAI listing", native_url, exc)

        openai_url = resolve_url(base_url, Endpoint.OPENAI_MODELS)
        try:
            resp = await self.transport.request("GET", openai_url, cancel=cancel)
            data = resp.json()
            ids = [m["id"] for m in data.get("data") or [] if isinstance(m, dict) and "id" in m]
        except NetworkError as exc:
            return ModelListResult(success=False, error=exc.user_message)
        except (ValueError, AttributeError) as exc:
            return ModelListResult(success=False, error=f"Invalid model list: {exc}")
        return ModelListResult(success=True, models=ids)

    async def test_connection(
        self, base_url: str, model: str, cancel: CancellationToken | None = None,
    ) -> ConnectionTestResult:
        """Send a one-token, non-streaming probe to the chat endpoint."""
        payload = {
            "model": model,
            "messages": [{"role": "user", "content": "test"}],
            "max_tokens": 1,
            "stream": False,
        }
        try:
            await self.transport.request(
                "POST",
                resolve_chat_url(base_url),
                json=payload,
                timeout=self.probe_timeout,
                cancel=cancel,
            )
        except NetworkError as exc:
            return ConnectionTestResult(success=False, error=exc.user_message)
        return ConnectionTestResult(success=True)

    @classmethod
    def from_config(cls, config: ChatConfig) -> InferenceClient:
        """Build a client with the timeouts from *config*."""
        t = config.timeouts
        client = cls(
            ResilientTransport(local_timeout=t.local, remote_timeout=t.remote),
            stream_timeout=t.stream_first_byte,
            probe_timeout=t.connection_test,
        )
        client._owns_transport = True
        return client

    async def close(self) -> None:
        if self._owns_transport:
            await self.transport.close()
