"""HTTP transport for the streaming chat endpoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from .config import API_BASE_URL, API_TOKEN, CHAT_ENDPOINT, CONNECT_TIMEOUT, REQUEST_TIMEOUT

logger = logging.getLogger(__name__)

_CATEGORY_LABELS = {
    "timeout": "Request timed out",
    "network": "No connection to server",
    "server": "Server error",
}


class TransportError(Exception):
    """A chat request failed before or while streaming the response body.

    `category` is one of `timeout`, `network` or `server`; the underlying
    detail is kept in the message for diagnostics.
    """

    def __init__(self, category: str, detail: str):
        self.category = category
        self.detail = detail
        super().__init__(f"{self.label}: {detail}")

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS.get(self.category, "Connection error")


def _map_error(exc: httpx.HTTPError) -> TransportError:
    if isinstance(exc, httpx.TimeoutException):
        return TransportError("timeout", str(exc) or type(exc).__name__)
    if isinstance(exc, httpx.HTTPStatusError):
        return TransportError("server", f"HTTP {exc.response.status_code}")
    if isinstance(exc, (httpx.NetworkError, httpx.ProxyError, httpx.UnsupportedProtocol)):
        return TransportError("network", str(exc) or type(exc).__name__)
    return TransportError("server", str(exc) or type(exc).__name__)


class ChatClient:
    """Issues chat requests and yields the raw NDJSON response body.

    Each call is a single attempt; retrying is left to the caller.
    """

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        token: str | None = API_TOKEN,
        timeout: float = REQUEST_TIMEOUT,
        endpoint: str = CHAT_ENDPOINT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Accept": "application/x-ndjson"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.endpoint = endpoint
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=CONNECT_TIMEOUT),
            transport=transport,
        )

    async def stream_chat(self, payload: dict[str, Any]) -> AsyncIterator[bytes]:
        """POST the payload and yield body chunks as they arrive.

        Raises TransportError on connection, timeout or HTTP status failures.
        Closing the generator (e.g. by cancelling the consuming task) closes
        the response.
        """
        try:
            async with self._client.stream("POST", self.endpoint, json=payload) as response:
                if response.is_error:
                    await response.aread()
                response.raise_for_status()
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as exc:
            error = _map_error(exc)
            logger.warning("Chat request failed (%s): %s", error.category, exc)
            raise error from exc

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self) -> ChatClient:
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
