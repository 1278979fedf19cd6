"""Helpers shared by the AI provider tests."""
from __future__ import annotations

import json
from collections import Counter
from typing import Any, Callable, Iterable

import httpx

from aieditor.ai.models import ChatMessage, MessageStatus


class RecordingListener:
    """Listener capturing every callback in order."""

    def __init__(self) -> None:
        self.events: list[str] = []
        self.messages: list[ChatMessage] = []
        self.clients: list[Any] = []

    def on_start(self, client: Any) -> None:
        self.events.append("start")
        self.clients.append(client)

    def on_message(self, message: ChatMessage) -> None:
        self.events.append("message")
        self.messages.append(message)

    def on_stop(self) -> None:
        self.events.append("stop")

    @property
    def text(self) -> str:
        return "".join(message.content for message in self.messages)

    @property
    def statuses(self) -> list[MessageStatus]:
        return [message.status for message in self.messages]

    @property
    def indexes(self) -> list[int]:
        return [message.index for message in self.messages]


class RecordingSink:
    """Document sink remembering each write."""

    def __init__(self) -> None:
        self.writes: list[tuple[str, dict[str, Any]]] = []

    def write(self, text: str, **kwargs: Any) -> bool:
        self.writes.append((text, kwargs))
        return True


def sse_body(*events: Any, done: bool = True) -> bytes:
    """Encode ``events`` as an SSE body; dicts are JSON encoded."""

    lines = []
    for event in events:
        payload = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {payload}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def sse_response(*events: Any, done: bool = True) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"Content-Type": "text/event-stream"},
        content=sse_body(*events, done=done),
    )


def delta(content: str, finish_reason: str | None = None) -> dict[str, Any]:
    return {"choices": [{"delta": {"content": content}, "finish_reason": finish_reason}]}


def make_transport(
    responders: Iterable[Callable[[httpx.Request], httpx.Response]],
) -> httpx.MockTransport:
    """Serve the responders in order; the last one repeats."""

    bucket = list(responders)
    counter: Counter[str] = Counter()
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        counter[request.url.path] += 1
        if not bucket:
            raise AssertionError(f"Unexpected request to {request.url}")
        responder = bucket[min(len(requests) - 1, len(bucket) - 1)]
        return responder(request)

    transport = httpx.MockTransport(handler)
    transport.call_count = counter  # type: ignore[attr-defined]
    transport.requests = requests  # type: ignore[attr-defined]
    return transport


def request_json(request: httpx.Request) -> dict[str, Any]:
    return json.loads(request.content.decode("utf-8"))

