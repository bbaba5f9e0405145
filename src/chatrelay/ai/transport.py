"""HTTP wire transport used by vendor adapters.

Adapters only depend on the ``Transport`` protocol. ``HttpxTransport`` is
the production implementation; tests substitute scripted fakes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping, Protocol

import httpx

from ..timeouts import DEFAULT_TIMEOUT_SEC, build_ai_httpx_timeout
from .cancellation import CancellationToken

SSE_DATA_PREFIX = "data:"
SSE_DONE_SENTINEL = "[DONE]"


class TransportError(Exception):
    """Network-level failure below HTTP semantics."""

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


class TransportStatusError(TransportError):
    """Non-2xx HTTP response."""

    def __init__(self, status_code: int, text: str, headers: Mapping[str, str]) -> None:
        super().__init__(f"HTTP {status_code}: {text[:500]}")
        self.status_code = status_code
        self.text = text
        self.headers = {k.lower(): v for k, v in headers.items()}


class TransportCancelledError(TransportError):
    """The cancellation token fired while the call was in flight."""

    def __init__(self, message: str = "Request cancelled") -> None:
        super().__init__(message)


@dataclass(slots=True, frozen=True)
class HttpResponse:
    """Buffered HTTP response."""

    status_code: int
    text: str
    headers: dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        return json.loads(self.text)


class Transport(Protocol):
    """Structural interface for the wire transport."""

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        json_body: Any | None = None,
        cancel: CancellationToken | None = None,
    ) -> HttpResponse:
        ...

    def stream(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        json_body: Any | None = None,
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        ...


def parse_sse_line(line: str) -> str | None:
    """Return the data payload of one SSE line, or ``None`` for other lines.

    Comment lines, ``event:``/``id:``/``retry:`` fields and blank separators
    carry nothing the adapters need.
    """
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    data = line[len(SSE_DATA_PREFIX):]
    if data.startswith(" "):
        data = data[1:]
    data = data.rstrip("\r")
    return data or None


def _raise_if_cancelled(cancel: CancellationToken | None) -> None:
    if cancel is not None and cancel.cancelled:
        raise TransportCancelledError(cancel.reason or "Request cancelled")


class HttpxTransport:
    """Transport backed by a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout_sec: int | float = DEFAULT_TIMEOUT_SEC,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=build_ai_httpx_timeout(timeout_sec)
        )

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        json_body: Any | None = None,
        cancel: CancellationToken | None = None,
    ) -> HttpResponse:
        _raise_if_cancelled(cancel)
        try:
            response = await self._client.request(
                method, url, headers=dict(headers), json=json_body
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out: {e}", timed_out=True) from e
        except httpx.TransportError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

        _raise_if_cancelled(cancel)
        if response.status_code >= 400:
            raise TransportStatusError(
                response.status_code, response.text, dict(response.headers)
            )
        return HttpResponse(
            status_code=response.status_code,
            text=response.text,
            headers={k.lower(): v for k, v in response.headers.items()},
        )

    async def stream(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        json_body: Any | None = None,
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        """Yield SSE data payloads until ``[DONE]`` or end of body."""
        _raise_if_cancelled(cancel)
        request_headers = {"Accept": "text/event-stream", **headers}
        try:
            async with self._client.stream(
                method, url, headers=request_headers, json=json_body
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise TransportStatusError(
                        response.status_code, body, dict(response.headers)
                    )
                async for line in response.aiter_lines():
                    _raise_if_cancelled(cancel)
                    data = parse_sse_line(line)
                    if data is None:
                        continue
                    if data == SSE_DONE_SENTINEL:
                        return
                    yield data
        except httpx.TimeoutException as e:
            raise TransportError(f"Stream timed out: {e}", timed_out=True) from e
        except httpx.TransportError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
