"""Core building blocks: cancellation, context window, chat session."""

from localchat.core.cancellation import CancellationToken
from localchat.core.context import HeuristicEstimator, TokenEstimator, truncate_to_fit
from localchat.core.session import ChatSession, TurnResult

__all__ = [
    "CancellationToken",
    "ChatSession",
    "HeuristicEstimator",
    "TokenEstimator",
    "TurnResult",
    "truncate_to_fit",
]
