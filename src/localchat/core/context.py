"""Token estimation and sliding-window history truncation.

Token counts are a character-count heuristic, not a real tokenizer.  English
prose runs about 4 characters per token and code about 3.5; the estimator
uses 3.5 so the estimate errs on the high side.  Swap in a model-exact
tokenizer by passing any ``TokenEstimator`` to ``truncate_to_fit``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Protocol, Sequence

from localchat.types import ChatMessage, Role, TruncationResult

_logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 3.5
PER_MESSAGE_OVERHEAD = 4  # role, delimiters
RESPONSE_RESERVE_RATIO = 0.25


# ---------------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------------

class TokenEstimator(Protocol):
    def estimate(self, text: str) -> int:
        ...


@dataclass(frozen=True)
class HeuristicEstimator:
    """``ceil(len(text) / chars_per_token) + per_message_overhead``."""

    chars_per_token: float = CHARS_PER_TOKEN
    per_message_overhead: int = PER_MESSAGE_OVERHEAD

    def estimate(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token) + self.per_message_overhead


_DEFAULT_ESTIMATOR = HeuristicEstimator()


def estimate_tokens(text: str, estimator: TokenEstimator | None = None) -> int:
    """Rough token count for a single message body."""
    return (estimator or _DEFAULT_ESTIMATOR).estimate(text)


def estimate_messages_tokens(
    messages: Sequence[ChatMessage],
    estimator: TokenEstimator | None = None,
) -> int:
    est = estimator or _DEFAULT_ESTIMATOR
    return sum(est.estimate(m.content) for m in messages)


# ---------------------------------------------------------------------------
# Truncation
# ---------------------------------------------------------------------------

def truncate_to_fit(
    system_prompt: str,
    history: Sequence[ChatMessage],
    context_length: int,
    estimator: TokenEstimator | None = None,
) -> TruncationResult:
    """Fit *history* into *context_length* tokens.

    The system prompt (index 0) and the newest message (last) are always
    kept.  A quarter of the window is reserved for the response; the rest
    is filled with history from newest to oldest, stopping at the first
    message that does not fit.  Counts in the result refer to history
    messages and exclude the system prompt.
    """
    est = estimator or _DEFAULT_ESTIMATOR
    system_message = ChatMessage(role=Role.SYSTEM, content=system_prompt)
    system_tokens = est.estimate(system_prompt)
    original_count = len(history)

    if original_count == 0:
        return TruncationResult(
            messages=[system_message],
            truncated=False,
            original_count=0,
            final_count=0,
            estimated_tokens=system_tokens,
        )

    max_input_tokens = math.floor(context_length * (1 - RESPONSE_RESERVE_RATIO))
    last_message = history[-1]
    last_tokens = est.estimate(last_message.content)
    remaining = max_input_tokens - system_tokens - last_tokens

    if remaining <= 0:
        # Send them anyway; the backend truncates internally.
        return TruncationResult(
            messages=[system_message, last_message],
            truncated=original_count > 1,
            original_count=original_count,
            final_count=1,
            estimated_tokens=system_tokens + last_tokens,
        )

    kept: list[ChatMessage] = []
    for message in reversed(history[:-1]):
        tokens = est.estimate(message.content)
        if tokens > remaining:
            break
        kept.append(message)
        remaining -= tokens
    kept.reverse()

    final_messages = [system_message, *kept, last_message]
    final_count = len(kept) + 1
    return TruncationResult(
        messages=final_messages,
        truncated=final_count < original_count,
        original_count=original_count,
        final_count=final_count,
        estimated_tokens=estimate_messages_tokens(final_messages, est),
    )
