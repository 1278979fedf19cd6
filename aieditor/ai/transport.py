"""Server-sent-event streaming transport built on httpx."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

import httpx

from aieditor.ai.cancellation import AiCancellationToken, AiTaskHandle
from aieditor.ai.errors import AiTransportError

__all__ = [
    "DONE_SENTINEL",
    "EVENT_PREFIX",
    "SseClient",
    "SseListener",
    "describe_error_body",
    "parse_event_line",
]

logger = logging.getLogger(__name__)

EVENT_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
_USER_AGENT = "aieditor-core/0.3"


def parse_event_line(
    line: str,
    *,
    prefix: str = EVENT_PREFIX,
    sentinel: str = DONE_SENTINEL,
) -> Optional[str]:
    """Return the event payload of ``line`` or ``None`` when it carries none."""

    stripped = line.strip()
    if not stripped.startswith(prefix):
        return None
    body = stripped[len(prefix):].strip()
    if not body or body == sentinel:
        return None
    return body


def describe_error_body(body: str) -> str:
    """Extract the most useful message from a vendor error payload."""

    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return body.strip()
    if isinstance(payload, dict):
        detail = payload.get("error", payload)
        if isinstance(detail, dict) and "message" in detail:
            return str(detail["message"])
        if isinstance(detail, str):
            return detail
        if "message" in payload:
            return str(payload["message"])
    return body.strip()


@dataclass
class SseListener:
    """Callbacks driven by :class:`SseClient`."""

    on_message: Callable[[str], None]
    on_start: Optional[Callable[[Any], None]] = None
    on_stop: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[AiTransportError], None]] = None


class SseClient:
    """POST a payload and feed each ``data:`` line of the response to a decoder."""

    def __init__(
        self,
        url: str,
        listener: SseListener,
        *,
        headers: Optional[Mapping[str, str]] = None,
        method: str = "POST",
        timeout: Optional[float] = None,
        transport: "httpx.AsyncBaseTransport | None" = None,
        prefix: str = EVENT_PREFIX,
        sentinel: str = DONE_SENTINEL,
    ) -> None:
        self._url = url
        self._listener = listener
        self._method = method.upper()
        self._timeout = timeout
        self._transport = transport
        self._prefix = prefix
        self._sentinel = sentinel
        self._headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "User-Agent": _USER_AGENT,
        }
        if headers:
            self._headers.update(headers)
        self._handle: AiTaskHandle | None = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def is_running(self) -> bool:
        return self._handle is not None and self._handle.is_running()

    async def start(self, payload: str | bytes) -> None:
        """Send ``payload`` and consume the event stream until it ends."""

        if self.is_running():
            raise AiTransportError("SSE client is already streaming.")

        token = AiCancellationToken()
        if self._listener.on_start is not None:
            self._listener.on_start(self)

        task = asyncio.ensure_future(self._consume(payload, token))
        handle = AiTaskHandle(token, task)
        self._handle = handle
        try:
            await handle.wait()
            if token.cancelled():
                logger.debug("SSE stream to %s cancelled", self._url)
        except AiTransportError as exc:
            logger.warning("SSE request to %s failed: %s", self._url, exc)
            if self._listener.on_error is not None:
                self._listener.on_error(exc)
        finally:
            if self._handle is handle:
                self._handle = None
            if self._listener.on_stop is not None:
                self._listener.on_stop()

    def stop(self) -> None:
        """Cancel the in-flight request, if any."""

        handle = self._handle
        if handle is not None:
            handle.cancel()

    async def _consume(self, payload: str | bytes, token: AiCancellationToken) -> None:
        content = payload.encode("utf-8") if isinstance(payload, str) else payload
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                async with client.stream(
                    self._method,
                    self._url,
                    content=content,
                    headers=self._headers,
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise AiTransportError(
                            f"{response.status_code}: {describe_error_body(body)}",
                            status_code=response.status_code,
                        )
                    async for line in response.aiter_lines():
                        if token.cancelled():
                            break
                        self._dispatch_line(line)
        except httpx.HTTPError as exc:
            raise AiTransportError(str(exc) or exc.__class__.__name__) from exc

    def _dispatch_line(self, line: str) -> None:
        body = parse_event_line(line, prefix=self._prefix, sentinel=self._sentinel)
        if body is None:
            return
        try:
            self._listener.on_message(body)
        except (ValueError, TypeError, KeyError) as exc:
            logger.warning("Skipping undecodable SSE event: %s", exc)
