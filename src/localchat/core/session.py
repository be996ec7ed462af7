"""Chat session: one conversation's turn orchestration.

Wires the pieces together the way a chat UI uses them: fit the history into
the context window, stream the answer while accumulating content and
reasoning, let the user stop it, and abort it if the app was suspended
mid-stream.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from localchat.config import ChatConfig
from localchat.core.cancellation import CancellationToken
from localchat.core.context import truncate_to_fit
from localchat.events.lifecycle import LifecycleRegistry, get_lifecycle_registry
from localchat.llm.client import InferenceClient
from localchat.llm.errors import ErrorKind, NetworkError
from localchat.types import ChatMessage, Role, StreamRequest, TruncationResult

_logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """Accumulated output of one assistant turn."""

    content: str = ""
    thinking: str = ""
    error: NetworkError | None = None
    truncation: TruncationResult | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def aborted(self) -> bool:
        return self.error is not None and self.error.kind is ErrorKind.STREAM_ABORT


UpdateCallback = Callable[[TurnResult], Any]


class ChatSession:
    """Run chat turns against the configured backend.

    The session does not serialize turns for the caller: ``send()`` refuses
    to start while another turn is streaming.
    """

    def __init__(
        self,
        config: ChatConfig,
        client: InferenceClient | None = None,
        lifecycle: LifecycleRegistry | None = None,
    ) -> None:
        self.config = config
        self._owns_client = client is None
        self.client = client or InferenceClient.from_config(config)
        self.status = "unknown"  # "online" | "offline" | "unknown"

        self._active: CancellationToken | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._lifecycle = lifecycle or get_lifecycle_registry()
        self._subscription = self._lifecycle.subscribe(self._on_lifecycle)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def busy(self) -> bool:
        return self._active is not None

    async def send(
        self,
        history: Sequence[ChatMessage],
        on_update: UpdateCallback | None = None,
    ) -> TurnResult:
        """Stream the assistant's reply to *history* (newest message last)."""
        if self._active is not None:
            raise RuntimeError("A turn is already streaming; stop() it first")

        cfg = self.config
        truncation = truncate_to_fit(cfg.system_prompt, history, cfg.context_length)
        if truncation.truncated:
            _logger.info(
                "Context truncated: %d -> %d messages (~%d tokens)",
                truncation.original_count,
                truncation.final_count,
                truncation.estimated_tokens,
            )

        token = CancellationToken()
        self._active = token
        self._loop = asyncio.get_running_loop()

        request = StreamRequest(
            base_url=cfg.api_url,
            model=cfg.model_name,
            system_prompt=cfg.system_prompt,
            temperature=cfg.temperature,
            # The request re-adds the system prompt itself
            messages=[m for m in truncation.messages if m.role is not Role.SYSTEM],
            top_p=cfg.top_p,
            context_length=cfg.context_length,
            cancel=token,
            user_profile=cfg.user_profile.to_profile() if cfg.user_profile else None,
        )
        result = TurnResult(truncation=truncation)

        def _on_chunk(text: str) -> None:
            result.content += text
            if on_update is not None:
                on_update(result)

        def _on_thinking(text: str) -> None:
            if not cfg.thinking_enabled:
                return
            result.thinking += text
            if on_update is not None:
                on_update(result)

        def _on_error(err: NetworkError) -> None:
            result.error = err

        try:
            await self.client.stream_chat(
                request,
                on_chunk=_on_chunk,
                on_thinking=_on_thinking,
                on_error=_on_error,
            )
        finally:
            if self._active is token:
                self._active = None

        if result.error is None:
            self.status = "online"
        elif not result.aborted:
            self.status = "offline"
        return result

    def stop(self) -> bool:
        """Cancel the streaming turn.  Returns False if nothing was running."""
        token = self._active
        if token is None:
            return False
        token.cancel("user")
        return True

    async def refresh_status(self) -> str:
        """Probe the backend and update ``status``."""
        cfg = self.config
        if not cfg.api_url or not cfg.model_name:
            return self.status
        result = await self.client.test_connection(cfg.api_url, cfg.model_name)
        self.status = "online" if result.success else "offline"
        return self.status

    async def close(self) -> None:
        self._subscription.unsubscribe()
        self.stop()
        for task in list(self._background):
            task.cancel()
        if self._owns_client:
            await self.client.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _on_lifecycle(self, is_active: bool) -> None:
        if not is_active:
            return
        token = self._active
        if token is None:
            return
        # The connection froze with the process; it will not recover.
        _logger.info("Resumed with a stream in flight; aborting it")
        token.cancel("lifecycle")
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self._schedule_refresh)

    def _schedule_refresh(self) -> None:
        task = asyncio.ensure_future(self.refresh_status())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
