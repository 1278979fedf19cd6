"""Tests for the resilient Agent Zero client."""
from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from aieditor.ai.agent import AgentOptions, AgentState, AgentZeroClient, AgentZeroProvider
from aieditor.ai.agent.client import EXHAUSTED_NOTICE, FREE_MODEL_KEY, SWITCHING_NOTICE
from aieditor.ai.agent.memory import MEMORY_KEY, AgentMemory
from aieditor.ai.config import ProviderConfig
from aieditor.ai.models import MessageStatus
from aieditor.ai.ports import InMemoryStorage
from aieditor.ai.providers import ProviderContext

from .helpers import RecordingListener, RecordingSink, delta, make_transport, request_json, sse_response

FREE = "deepseek/deepseek-r1-zero:free"
USER = [{"role": "user", "content": "Tell me about otters"}]


def _quota_error(request: httpx.Request) -> httpx.Response:
    return httpx.Response(402, json={"error": {"message": "More credits are required to run this request."}})


def _client(storage: InMemoryStorage, sink: RecordingSink, transport: httpx.MockTransport | None, **options) -> AgentZeroClient:
    options.setdefault("api_key", "or-key")
    options.setdefault("latency_scale", 0)
    return AgentZeroClient(AgentOptions(**options), storage=storage, sink=sink, transport=transport)


def _assert_well_formed(listener: RecordingListener) -> None:
    assert listener.events[0] == "start"
    assert listener.events[-1] == "stop"
    assert listener.events.count("stop") == 1
    assert listener.indexes == sorted(listener.indexes)
    assert listener.messages[-1].status is MessageStatus.FINAL
    assert [m.is_final for m in listener.messages].count(True) == 1


@pytest.mark.asyncio
async def test_successful_stream(storage, sink, listener) -> None:
    transport = make_transport([lambda request: sse_response(delta("Otters "), delta("swim."), delta("", "stop"))])
    client = _client(storage, sink, transport)

    await client.chat(USER, listener)

    _assert_well_formed(listener)
    assert listener.text == "Otters swim."
    assert listener.statuses == [MessageStatus.START, MessageStatus.CONTINUE, MessageStatus.FINAL]
    assert client.state is AgentState.DONE

    request = transport.requests[0]  # type: ignore[attr-defined]
    assert str(request.url) == "https://openrouter.ai/api/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer or-key"
    payload = request_json(request)
    assert payload["model"] == "openai/gpt-4o"
    assert payload["stream"] is True
    assert payload["messages"] == USER


@pytest.mark.asyncio
async def test_stream_chunks_are_written_to_document(storage, sink, listener) -> None:
    transport = make_transport([lambda request: sse_response(delta("One "), delta("two"))])
    client = _client(storage, sink, transport)

    await client.chat(USER, listener)

    assert [text for text, _ in sink.writes] == ["One ", "two"]
    assert sink.writes[0][1]["append"] is False
    assert sink.writes[1][1]["append"] is True
    assert all(kwargs["typing"] is True and kwargs["typing_speed"] == 1 for _, kwargs in sink.writes)


@pytest.mark.asyncio
async def test_quota_error_retries_once_on_free_model(storage, sink, listener) -> None:
    transport = make_transport([_quota_error, lambda request: sse_response(delta("Free answer"))])
    client = _client(storage, sink, transport, max_tokens=4096, free_max_tokens=1024)

    await client.chat(USER, listener)

    requests = transport.requests  # type: ignore[attr-defined]
    assert len(requests) == 2
    assert request_json(requests[0])["model"] == "openai/gpt-4o"
    retry = request_json(requests[1])
    assert retry["model"] == FREE
    assert retry["max_tokens"] == 1024
    assert storage.get(FREE_MODEL_KEY) == "true"
    assert sink.writes[0] == (SWITCHING_NOTICE, {
        "append": False, "typing": False, "typing_speed": 1, "highlight": False,
    })
    assert listener.text == "Free answer"
    _assert_well_formed(listener)


@pytest.mark.asyncio
async def test_quota_retry_halves_small_budgets(storage, sink, listener) -> None:
    transport = make_transport([_quota_error, lambda request: sse_response(delta("ok"))])
    client = _client(storage, sink, transport)

    await client.chat(USER, listener, max_tokens=300)

    assert request_json(transport.requests[1])["max_tokens"] == 150  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_stored_preference_starts_on_free_model(sink, listener) -> None:
    storage = InMemoryStorage({FREE_MODEL_KEY: "true"})
    transport = make_transport([lambda request: sse_response(delta("hi"))])
    client = _client(storage, sink, transport)

    assert client.prefers_free_model
    await client.chat(USER, listener)

    assert request_json(transport.requests[0])["model"] == FREE  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_quota_error_on_free_model_simulates_without_requests(sink, listener) -> None:
    storage = InMemoryStorage({FREE_MODEL_KEY: "true"})
    transport = make_transport([_quota_error])
    client = _client(storage, sink, transport)

    await client.chat(USER, listener)

    assert len(transport.requests) == 1  # type: ignore[attr-defined]
    assert client.state is AgentState.DONE
    assert sink.writes[0][0] == EXHAUSTED_NOTICE
    assert "Tell me about otters" in listener.text
    _assert_well_formed(listener)


@pytest.mark.asyncio
async def test_failed_free_retry_falls_back_to_simulation(storage, sink, listener) -> None:
    transport = make_transport([_quota_error, lambda request: httpx.Response(500, text="upstream down")])
    client = _client(storage, sink, transport)

    await client.chat(USER, listener)

    assert len(transport.requests) == 2  # type: ignore[attr-defined]
    assert listener.text.startswith("I'll help you with:")
    _assert_well_formed(listener)


@pytest.mark.asyncio
async def test_quota_error_inside_stream_triggers_retry(storage, sink, listener) -> None:
    transport = make_transport([
        lambda request: sse_response({"error": {"message": "Insufficient credits: credits are required"}}),
        lambda request: sse_response(delta("recovered")),
    ])
    client = _client(storage, sink, transport)

    await client.chat(USER, listener)

    assert len(transport.requests) == 2  # type: ignore[attr-defined]
    assert listener.text == "recovered"


@pytest.mark.asyncio
async def test_retry_after_partial_stream_starts_a_fresh_document(storage, sink, listener) -> None:
    transport = make_transport([
        lambda request: sse_response(delta("Otters "), {"error": {"message": "credits are required"}}),
        lambda request: sse_response(delta("Free answer")),
    ])
    client = _client(storage, sink, transport)

    await client.chat(USER, listener)

    assert [(text, kwargs["append"]) for text, kwargs in sink.writes] == [
        ("Otters ", False),
        (SWITCHING_NOTICE, False),
        ("Free answer", False),
    ]
    assert [item.content for item in client.memory] == ["Free answer"]
    assert [m.status for m in listener.messages] == [
        MessageStatus.START,
        MessageStatus.START,
        MessageStatus.FINAL,
    ]
    _assert_well_formed(listener)


@pytest.mark.asyncio
async def test_stop_chunk_with_content_is_final(storage, sink, listener) -> None:
    transport = make_transport([lambda request: sse_response(delta("Hi "), delta("bye", "stop"), delta("late"))])
    client = _client(storage, sink, transport)

    await client.chat(USER, listener)

    assert [(m.content, m.status) for m in listener.messages] == [
        ("Hi ", MessageStatus.START),
        ("bye", MessageStatus.FINAL),
    ]
    assert [text for text, _ in sink.writes] == ["Hi ", "bye"]
    assert [item.content for item in client.memory] == ["Hi bye"]
    _assert_well_formed(listener)


@pytest.mark.asyncio
async def test_stop_chunk_runs_the_tool_it_completes(storage, sink, listener) -> None:
    transport = make_transport([
        lambda request: sse_response(delta("Running [tool:ter"), delta("minal]echo hi[/tool]", "stop")),
    ])
    client = _client(storage, sink, transport)

    await client.chat(USER, listener)

    contents = [m.content for m in listener.messages]
    assert "Executing command: echo hi\n\n" in contents
    assert listener.messages[-1].content == "minal]echo hi[/tool]"
    _assert_well_formed(listener)


@pytest.mark.asyncio
async def test_other_http_errors_are_surfaced_once(storage, sink, listener) -> None:
    transport = make_transport([lambda request: httpx.Response(500, text="boom")])
    client = _client(storage, sink, transport)

    await client.chat(USER, listener)

    assert len(transport.requests) == 1  # type: ignore[attr-defined]
    assert [(m.content, m.status) for m in listener.messages] == [
        ("Error: API request failed: 500 boom", MessageStatus.FINAL),
    ]
    assert storage.get(FREE_MODEL_KEY) is None
    _assert_well_formed(listener)


@pytest.mark.asyncio
async def test_streamed_vendor_error_is_surfaced(storage, sink, listener) -> None:
    transport = make_transport([
        lambda request: sse_response(delta("partial"), {"error": {"message": "Rate limit exceeded"}}, delta("lost")),
    ])
    client = _client(storage, sink, transport)

    await client.chat(USER, listener)

    assert listener.messages[-1].content == "Error: Rate limit exceeded"
    assert "lost" not in listener.text
    _assert_well_formed(listener)


@pytest.mark.asyncio
async def test_network_failure_is_surfaced(storage, sink, listener) -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(storage, sink, make_transport([refuse]))

    await client.chat(USER, listener)

    assert listener.messages[-1].content == "Error: connection refused"
    _assert_well_formed(listener)


@pytest.mark.asyncio
async def test_streamed_tool_tag_is_dispatched(storage, sink, listener) -> None:
    transport = make_transport([
        lambda request: sse_response(delta("Let me check. [too"), delta("l:search]cats[/tool]"), delta("", "stop")),
    ])
    client = _client(storage, sink, transport)

    await client.chat(USER, listener)

    contents = [m.content for m in listener.messages]
    assert "Searching for: cats\n\n" in contents
    tool_messages = listener.messages[2:-1]
    assert tool_messages
    assert all(m.status is MessageStatus.CONTINUE for m in tool_messages)
    _assert_well_formed(listener)


@pytest.mark.asyncio
async def test_transcript_is_saved_to_memory(storage, sink, listener) -> None:
    transport = make_transport([lambda request: sse_response(delta("Otters "), delta("hold hands."))])
    client = _client(storage, sink, transport)

    await client.chat(USER, listener)

    assert [item.content for item in client.memory] == ["Otters hold hands."]
    assert client.memory[0].tags == {"response"}
    stored = json.loads(storage.get(MEMORY_KEY) or "[]")
    assert stored[0]["content"] == "Otters hold hands."

    reloaded = AgentMemory(storage)
    reloaded.load()
    assert len(reloaded) == 1


@pytest.mark.asyncio
async def test_memory_disabled_saves_nothing(storage, sink, listener) -> None:
    transport = make_transport([lambda request: sse_response(delta("text"))])
    client = _client(storage, sink, transport, memory=False)

    await client.chat(USER, listener)

    assert client.memory == ()
    assert storage.get(MEMORY_KEY) is None


def test_corrupt_memory_resets_to_empty(sink) -> None:
    storage = InMemoryStorage({MEMORY_KEY: "{not json"})

    client = _client(storage, sink, None)

    assert client.memory == ()


@pytest.mark.asyncio
async def test_provider_without_key_simulates_locally(listener) -> None:
    transport = make_transport([])
    provider = AgentZeroProvider(
        "agentZero",
        ProviderConfig("agentZero", extra={"latency_scale": 0}),
        ProviderContext(transport=transport),
    )

    await provider.chat("", "hello", listener)

    assert transport.requests == []  # type: ignore[attr-defined]
    assert listener.messages[0].status is MessageStatus.START
    assert "hello" in listener.text
    assert listener.text.startswith("I'll help you with:")
    _assert_well_formed(listener)
    assert provider.agent.state is AgentState.DONE


@pytest.mark.asyncio
async def test_provider_payload_carries_prompts_and_tools(listener) -> None:
    transport = make_transport([lambda request: sse_response(delta("ok"))])
    provider = AgentZeroProvider(
        "agentZero",
        ProviderConfig("agentZero", api_key="or-key", extra={"latency_scale": 0, "browser_agent": True}),
        ProviderContext(transport=transport),
    )

    await provider.chat("selected", "Summarise {content}", listener)

    payload = request_json(transport.requests[0])  # type: ignore[attr-defined]
    assert [m["role"] for m in payload["messages"]] == ["system", "user"]
    assert "Summarise selected" in payload["messages"][1]["content"]
    assert payload["max_tokens"] == 4096
    tool_names = [tool["function"]["name"] for tool in payload["tools"]]
    assert tool_names == ["search", "code", "terminal", "memory", "browser"]


@pytest.mark.asyncio
async def test_stop_interrupts_simulated_delays(storage, sink, listener) -> None:
    client = _client(storage, sink, None, api_key=None, latency_scale=1.0)

    task = asyncio.ensure_future(client.chat(USER, listener))
    await asyncio.sleep(0.01)
    client.stop()
    await asyncio.wait_for(task, timeout=1.0)

    assert len(listener.messages) < 5
    _assert_well_formed(listener)
    assert not client.is_running()
