"""HTTP stream transport using httpx.

Sends the job-creating ``POST`` and decides, explicitly and consistently,
whether the response is an event stream.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from jobstream.errors import (
    PrerequisiteRequiredError,
    StreamConnectionError,
    StreamTransportError,
    raise_for_status,
)
from jobstream.transport.base import EVENT_STREAM_MEDIA_TYPE, StreamTransport

logger = logging.getLogger("jobstream.transport")

_JSON_CONTENT_TYPE = "application/json"


def is_event_stream(response: httpx.Response, *, force_stream: bool = False) -> bool:
    """Return True if ``response`` should be consumed as an event stream.

    A response is a stream iff it succeeded, carries a body, and either
    declares ``text/event-stream`` or the caller asked for streaming.
    """
    if not response.is_success or response.status_code == 204:
        return False
    content_type = response.headers.get("content-type", "")
    return force_stream or EVENT_STREAM_MEDIA_TYPE in content_type.lower()


class HTTPStreamTransport(StreamTransport):
    """Stream transport using httpx.AsyncClient.

    Args:
        base_url: Server base URL (e.g., "http://localhost:8080").
        timeout: Connect/read timeout in seconds. ``None`` disables it,
            which suits long-lived streams; use the client deadline instead.
        headers: Additional HTTP headers to include in all requests.
        cookies: Session cookies sent with every request.
        auth: Optional httpx auth flow (see ``jobstream.auth``).
        client: Optional pre-configured httpx.AsyncClient to use.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
        cookies: dict[str, str] | httpx.Cookies | None = None,
        auth: httpx.Auth | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._auth = auth
        default_headers = {
            "Content-Type": _JSON_CONTENT_TYPE,
            "Accept": EVENT_STREAM_MEDIA_TYPE,
            "Cache-Control": "no-cache",
        }
        if headers:
            default_headers.update(headers)

        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            headers=default_headers,
            cookies=cookies,
        )

    @asynccontextmanager
    async def stream(
        self,
        endpoint: str,
        payload: Any,
        *,
        force_stream: bool = False,
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        request_kwargs: dict[str, Any] = {
            "json": payload,
            "headers": {"Content-Type": _JSON_CONTENT_TYPE, "Accept": EVENT_STREAM_MEDIA_TYPE},
        }
        if self._auth is not None:
            request_kwargs["auth"] = self._auth

        try:
            async with self._client.stream("POST", endpoint, **request_kwargs) as response:
                logger.debug(
                    "POST %s -> %d (%s)",
                    endpoint,
                    response.status_code,
                    response.headers.get("content-type", ""),
                )
                if not response.is_success:
                    body = await _read_json(response)
                    raise_for_status(response.status_code, body)
                if not is_event_stream(response, force_stream=force_stream):
                    await _reject_non_stream(response)
                yield response.aiter_bytes()
        except httpx.TimeoutException as e:
            raise StreamConnectionError(f"Request to {endpoint} timed out: {e}") from e
        except httpx.TransportError as e:
            raise StreamConnectionError(
                f"Connection to {self._base_url or endpoint} failed: {e}"
            ) from e

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


async def _read_json(response: httpx.Response) -> dict[str, Any] | None:
    raw = await response.aread()
    if not raw:
        return None
    try:
        body = json.loads(raw)
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


async def _reject_non_stream(response: httpx.Response) -> None:
    if response.status_code == 204:
        raise StreamTransportError(
            "Server returned no response body", status_code=response.status_code
        )
    body = await _read_json(response)
    if body and body.get("redirectUrl"):
        raise PrerequisiteRequiredError(str(body["redirectUrl"]))
    content_type = response.headers.get("content-type", "") or "unknown content type"
    raise StreamTransportError(
        f"Expected an event stream but received {content_type}",
        status_code=response.status_code,
        body=body,
    )
