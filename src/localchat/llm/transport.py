"""Timeout-bounded, cancellable HTTP transport with failure classification.

Every call makes exactly one attempt.  The wait for a response is bounded by
an internal timeout that is merged with the caller's ``CancellationToken``;
whichever fires first ends the call.  For streamed responses the timeout
only covers the wait for the response head: once the server starts
answering, only the caller can stop the stream (model output on slow
hardware can legitimately pause for a long time).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, Awaitable, TypeVar

import httpx

from localchat.core.cancellation import CancellationToken

from .connectivity import OfflineProbe, is_device_offline, is_local_network_url
from .errors import ErrorKind, NetworkError

_logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default bounds in seconds
LOCAL_TIMEOUT = 3.0     # LAN / loopback servers answer fast or not at all
REMOTE_TIMEOUT = 10.0
STREAM_FIRST_BYTE_TIMEOUT = 15.0  # cold model loads
CONNECTION_TEST_TIMEOUT = 5.0


class _Interrupted(Exception):
    """The merged cancellation token fired while a call was suspended."""


class ResilientTransport:
    """Single-attempt HTTP calls over a shared ``httpx.AsyncClient``.

    Parameters
    ----------
    client:
        Optional pre-built client (tests pass one with ``httpx.MockTransport``).
        Its own timeouts should be disabled; this class manages them.
    offline_probe:
        Returns True when the device has no connectivity.  Consulted before
        every call and again when a connection fails.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        offline_probe: OfflineProbe | None = None,
        local_timeout: float = LOCAL_TIMEOUT,
        remote_timeout: float = REMOTE_TIMEOUT,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=None,
        )
        self._is_offline = offline_probe or is_device_offline
        self.local_timeout = local_timeout
        self.remote_timeout = remote_timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_offline(self) -> bool:
        return self._is_offline()

    def effective_timeout(self, url: str, override: float | None = None) -> float:
        """Timeout for *url* in seconds.  ``0`` means unbounded."""
        if override is not None:
            return override
        if is_local_network_url(url):
            return self.local_timeout
        return self.remote_timeout

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        timeout: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> httpx.Response:
        """Send one request and read the full body.

        Raises ``NetworkError`` for every failure, including non-2xx.
        """
        self._check_online()
        limit = self.effective_timeout(url, timeout)
        token = CancellationToken.linked(cancel)
        timer = token.cancel_after(limit) if limit > 0 else None
        _logger.debug("%s %s (timeout=%ss)", method, url, limit or "none")

        try:
            request = self._client.build_request(method, url, json=json)
            response = await self._race(self._client.send(request, stream=True), token)
            try:
                await self._race(response.aread(), token)
            finally:
                await response.aclose()
            self._raise_for_status(response)
            return response
        except NetworkError:
            raise
        except _Interrupted:
            raise self._interrupted(cancel, limit) from None
        except Exception as exc:
            raise self._classify(url, exc) from exc
        finally:
            if timer is not None:
                timer.cancel()
            token.dispose()

    async def stream(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        timeout: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[bytes]:
        """Send one request and yield decoded body chunks as they arrive.

        *timeout* bounds the wait for the response head only.
        """
        self._check_online()
        limit = self.effective_timeout(url, timeout)
        token = CancellationToken.linked(cancel)
        timer = token.cancel_after(limit) if limit > 0 else None
        response: httpx.Response | None = None
        _logger.debug("%s %s stream (first-byte timeout=%ss)", method, url, limit or "none")

        try:
            request = self._client.build_request(method, url, json=json)
            response = await self._race(self._client.send(request, stream=True), token)
            # Headers are in; from here on only the caller can stop us.
            if timer is not None:
                timer.cancel()
                timer = None
            self._raise_for_status(response)

            chunks = response.aiter_bytes()
            while True:
                chunk = await self._race(_next_chunk(chunks), token)
                if chunk is None:
                    break
                if chunk:
                    yield chunk
        except NetworkError:
            raise
        except _Interrupted:
            # The timer is disarmed after the head arrives, so a mid-stream
            # interruption can only come from the caller.
            raise self._interrupted(cancel, limit) from None
        except Exception as exc:
            raise self._classify(url, exc) from exc
        finally:
            if timer is not None:
                timer.cancel()
            token.dispose()
            if response is not None:
                await response.aclose()

    async def close(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_online(self) -> None:
        if self._is_offline():
            raise NetworkError(ErrorKind.OFFLINE, "Device is offline")

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        raise NetworkError(
            ErrorKind.HTTP_ERROR,
            f"HTTP {response.status_code}: {response.reason_phrase}",
            status_code=response.status_code,
        )

    @staticmethod
    def _interrupted(
        cancel: CancellationToken | None, limit: float,
    ) -> NetworkError:
        if cancel is not None and cancel.cancelled:
            return NetworkError(
                ErrorKind.STREAM_ABORT,
                f"Request aborted ({cancel.reason or 'cancelled'})",
            )
        return NetworkError(ErrorKind.TIMEOUT, f"Request timed out after {limit}s")

    def _classify(self, url: str, exc: Exception) -> NetworkError:
        if isinstance(exc, httpx.TimeoutException):
            return NetworkError(ErrorKind.TIMEOUT, f"Request timed out: {exc}")
        if isinstance(exc, httpx.TransportError):
            if self._is_offline():
                return NetworkError(ErrorKind.OFFLINE, "Device went offline during request")
            host = httpx.URL(url).host or url
            return NetworkError(ErrorKind.UNREACHABLE, f"Cannot reach {host}: {exc}")
        return NetworkError(ErrorKind.UNKNOWN, str(exc) or type(exc).__name__)

    @staticmethod
    async def _race(awaitable: Awaitable[T], token: CancellationToken) -> T:
        """Await *awaitable* unless *token* fires first."""
        if token.cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise _Interrupted()

        work = asyncio.ensure_future(awaitable)
        stop = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
            if not work.done():
                work.cancel()

        if work.done() and not work.cancelled():
            return work.result()
        await asyncio.gather(work, return_exceptions=True)
        raise _Interrupted()


async def _next_chunk(chunks: AsyncIterator[bytes]) -> bytes | None:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None
