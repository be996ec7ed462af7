"""Incremental decoding of streamed chat responses.

Two line-oriented wire formats are accepted without being told which one is
in use:

* SSE (OpenAI-compatible): ``data: {json}`` lines, ending with
  ``data: [DONE]``.
* NDJSON (Ollama native ``/api/chat``): one bare ``{json}`` per line, the
  last one carrying ``"done": true``.

Reasoning arrives either in a dedicated field or inline in the content as a
``<think>...</think>`` span.  Both end up in ``StreamDelta.reasoning``; the
visible ``StreamDelta.content`` never contains the markup.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any

from localchat.types import StreamDelta

_logger = logging.getLogger(__name__)

_SSE_PREFIX = "data:"
_DONE_SENTINEL = "[DONE]"

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"


# ---------------------------------------------------------------------------
# Field extraction
# ---------------------------------------------------------------------------

def _first_text(*candidates: Any) -> str:
    for value in candidates:
        if isinstance(value, str) and value:
            return value
    return ""


def _delta(obj: dict[str, Any]) -> dict[str, Any]:
    choices = obj.get("choices")
    if not isinstance(choices, list) or not choices:
        return {}
    first = choices[0]
    if not isinstance(first, dict):
        return {}
    delta = first.get("delta")
    return delta if isinstance(delta, dict) else {}


def _message(obj: dict[str, Any]) -> dict[str, Any]:
    message = obj.get("message")
    return message if isinstance(message, dict) else {}


def extract_content(obj: dict[str, Any]) -> str:
    """Content text: chat-completion delta, then native message, then legacy ``response``."""
    return _first_text(
        _delta(obj).get("content"),
        _message(obj).get("content"),
        obj.get("response"),
    )


def extract_reasoning(obj: dict[str, Any]) -> str:
    """Out-of-band reasoning text, if the backend sends any."""
    delta = _delta(obj)
    return _first_text(
        delta.get("thinking"),
        delta.get("reasoning_content"),
        delta.get("reasoning"),
        _message(obj).get("thinking"),
        obj.get("thinking"),
    )


# ---------------------------------------------------------------------------
# ThinkTagSplitter
# ---------------------------------------------------------------------------

def _partial_tag_len(text: str, tag: str) -> int:
    """Length of the longest suffix of *text* that is a proper prefix of *tag*."""
    for n in range(min(len(text), len(tag) - 1), 0, -1):
        if text.endswith(tag[:n]):
            return n
    return 0


class ThinkTagSplitter:
    """Separate inline ``<think>`` spans from visible content.

    Text is released as soon as it is unambiguous.  Only a trailing piece
    that could still become a tag is held back, so splitting the input at
    any point yields the same concatenated output.
    """

    def __init__(self) -> None:
        self._pending = ""
        self._in_think = False

    @property
    def in_think(self) -> bool:
        return self._in_think

    def feed(self, text: str) -> tuple[str, str]:
        """Return ``(content, reasoning)`` released by *text*."""
        self._pending += text
        content: list[str] = []
        reasoning: list[str] = []

        while self._pending:
            tag = THINK_CLOSE if self._in_think else THINK_OPEN
            out = reasoning if self._in_think else content
            idx = self._pending.find(tag)
            if idx >= 0:
                out.append(self._pending[:idx])
                self._pending = self._pending[idx + len(tag):]
                self._in_think = not self._in_think
                continue
            held = _partial_tag_len(self._pending, tag)
            out.append(self._pending[: len(self._pending) - held])
            self._pending = self._pending[len(self._pending) - held:]
            break

        return "".join(content), "".join(reasoning)

    def finish(self) -> tuple[str, str]:
        """Release whatever is held at end of stream."""
        rest, self._pending = self._pending, ""
        if self._in_think:
            return "", rest
        return rest, ""


# ---------------------------------------------------------------------------
# StreamDecoder
# ---------------------------------------------------------------------------

class StreamDecoder:
    """Turn raw body chunks into ``StreamDelta`` values.

    One decoder per response; it owns its buffers.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._splitter = ThinkTagSplitter()
        self.done = False

    def feed(self, chunk: bytes | str) -> list[StreamDelta]:
        """Consume a chunk and return the deltas of every completed line."""
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self._buffer += chunk

        *lines, self._buffer = self._buffer.split("\n")
        deltas: list[StreamDelta] = []
        for line in lines:
            delta = self._decode_line(line)
            if delta:
                deltas.append(delta)
        return deltas

    def finish(self) -> list[StreamDelta]:
        """End of stream.  An unterminated trailing line is dropped."""
        if self._buffer.strip():
            _logger.debug("Discarding incomplete trailing line: %.80r", self._buffer)
        self._buffer = ""
        content, reasoning = self._splitter.finish()
        delta = StreamDelta(content=content, reasoning=reasoning)
        return [delta] if delta else []

    # ------------------------------------------------------------------

    def _decode_line(self, raw_line: str) -> StreamDelta | None:
        line = raw_line.strip()
        if not line:
            return None

        if line.startswith(_SSE_PREFIX):
            payload = line[len(_SSE_PREFIX):].strip()
            if payload == _DONE_SENTINEL:
                self.done = True
                return None
        elif line.startswith("{"):
            payload = line
        else:
            return None

        try:
            obj = json.loads(payload)
        except json.JSONDecodeError as e:
            _logger.warning("Skipping malformed stream line (%s): %.80r", e, line)
            return None
        if not isinstance(obj, dict):
            _logger.warning("Skipping non-object stream line: %.80r", line)
            return None

        text = extract_content(obj)
        field_reasoning = extract_reasoning(obj)
        if obj.get("done") is True:
            self.done = True
            if not text and not field_reasoning:
                return None

        content, inline_reasoning = self._splitter.feed(text) if text else ("", "")
        return StreamDelta(
            content=content,
            reasoning=inline_reasoning + field_reasoning,
        )
