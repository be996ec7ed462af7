"""Shared data types for localchat."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from localchat.core.cancellation import CancellationToken


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class Role(str, enum.Enum):
    """Speaker of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    """One turn of a conversation.  Ordering is owned by the caller."""

    role: Role
    content: str

    def __post_init__(self) -> None:
        # Accept plain strings ("user") for convenience
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))

    def to_wire(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class StreamDelta:
    """A decoded unit of streamed output."""

    content: str = ""
    reasoning: str = ""

    def __bool__(self) -> bool:
        return bool(self.content or self.reasoning)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

@dataclass
class UserProfile:
    """Who the assistant is talking to.  Injected into the system prompt."""

    display_name: str = ""
    role: str = ""
    bio: str = ""
    location: str = ""

    def identity_context(self) -> str:
        """Return ``[User Info: ...]`` or an empty string if nothing is set."""
        parts = []
        if self.display_name:
            parts.append(f"Name={self.display_name}")
        if self.role:
            parts.append(f"Role={self.role}")
        if self.bio:
            parts.append(f"Bio={self.bio}")
        if self.location:
            parts.append(f"Location={self.location}")
        if not parts:
            return ""
        return f"[User Info: {', '.join(parts)}.]"


@dataclass
class StreamRequest:
    """Everything needed for one streamed chat call.

    Built per call and owned by the call that created it.
    """

    base_url: str
    model: str
    system_prompt: str
    temperature: float
    messages: list[ChatMessage] = field(default_factory=list)
    top_p: float | None = None
    context_length: int | None = None
    cancel: CancellationToken | None = None
    user_profile: UserProfile | None = None

    def resolved_system_prompt(self) -> str:
        if self.user_profile is None:
            return self.system_prompt
        identity = self.user_profile.identity_context()
        if not identity:
            return self.system_prompt
        return f"{identity}\n\n{self.system_prompt}"

    def to_payload(self) -> dict[str, Any]:
        """Build the JSON body for a streamed chat request."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": Role.SYSTEM.value, "content": self.resolved_system_prompt()},
                *(m.to_wire() for m in self.messages),
            ],
            "temperature": self.temperature,
        }
        if self.top_p is not None:
            payload["top_p"] = self.top_p
        payload["stream"] = True
        if self.context_length:
            payload["num_ctx"] = self.context_length
        return payload


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TruncationResult:
    """Outcome of fitting a history into a context window."""

    messages: list[ChatMessage]
    truncated: bool
    original_count: int
    final_count: int
    estimated_tokens: int


@dataclass
class ModelListResult:
    success: bool
    models: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class ConnectionTestResult:
    success: bool
    error: str | None = None
