"""Inference backend client: endpoints, transport, stream decoding."""

from localchat.llm.client import InferenceClient
from localchat.llm.decoder import StreamDecoder, ThinkTagSplitter
from localchat.llm.endpoints import Endpoint, resolve_chat_url, resolve_url, server_root
from localchat.llm.errors import ErrorKind, NetworkError
from localchat.llm.transport import ResilientTransport

__all__ = [
    "Endpoint",
    "ErrorKind",
    "InferenceClient",
    "NetworkError",
    "ResilientTransport",
    "StreamDecoder",
    "ThinkTagSplitter",
    "resolve_chat_url",
    "resolve_url",
    "server_root",
]
