"""Streaming client core for local-first chat."""

from localchat.core.cancellation import CancellationToken
from localchat.core.context import HeuristicEstimator, estimate_tokens, truncate_to_fit
from localchat.events.lifecycle import LifecycleRegistry, get_lifecycle_registry
from localchat.llm.client import InferenceClient
from localchat.llm.errors import ErrorKind, NetworkError
from localchat.types import ChatMessage, Role, StreamDelta, StreamRequest, TruncationResult

__version__ = "0.3.0"

__all__ = [
    "CancellationToken",
    "ChatMessage",
    "ErrorKind",
    "HeuristicEstimator",
    "InferenceClient",
    "LifecycleRegistry",
    "NetworkError",
    "Role",
    "StreamDelta",
    "StreamRequest",
    "TruncationResult",
    "estimate_tokens",
    "get_lifecycle_registry",
    "truncate_to_fit",
]
