"""Backend URL resolution.

Users paste all kinds of URLs into the settings screen: a bare server
(``http://localhost:11434``), a full OpenAI-compatible path
(``.../v1/chat/completions``) or Ollama's native chat path
(``.../api/chat``).  Everything here is pure string work.
"""

from __future__ import annotations

import enum
import re

CHAT_COMPLETIONS_PATH = "/v1/chat/completions"
NATIVE_CHAT_PATH = "/api/chat"
NATIVE_MODELS_PATH = "/api/tags"
OPENAI_MODELS_PATH = "/v1/models"

_CHAT_COMPLETIONS_RE = re.compile(r"/chat/completions$", re.IGNORECASE)
_KNOWN_SUFFIX_RE = re.compile(
    r"/(v1/chat/completions|api/chat|v1/models|api/tags)$", re.IGNORECASE,
)


class Endpoint(enum.Enum):
    CHAT = "chat"
    NATIVE_MODELS = "native_models"
    OPENAI_MODELS = "openai_models"


def resolve_chat_url(base_url: str) -> str:
    """Return the chat request URL for *base_url*.

    Full chat-completion and native chat URLs are returned as-is (minus
    trailing slashes); anything else gets the OpenAI-compatible path.
    """
    clean = base_url.rstrip("/")
    if _CHAT_COMPLETIONS_RE.search(clean):
        return clean
    if clean.endswith(NATIVE_CHAT_PATH):
        return clean
    return clean + CHAT_COMPLETIONS_PATH


def server_root(base_url: str) -> str:
    """Strip any known API path to recover the bare server address."""
    return _KNOWN_SUFFIX_RE.sub("", base_url.rstrip("/"))


def resolve_url(base_url: str, endpoint: Endpoint) -> str:
    if endpoint is Endpoint.CHAT:
        return resolve_chat_url(base_url)
    root = server_root(base_url)
    if endpoint is Endpoint.NATIVE_MODELS:
        return root + NATIVE_MODELS_PATH
    return root + OPENAI_MODELS_PATH
