"""Resilient Agent Zero client.

A turn goes through the following states::

    IDLE -> REQUESTING -> STREAMING -> DONE
                       -> QUOTA_ERROR -> REQUESTING(free) -> STREAMING -> DONE
                                                          -> EXHAUSTED -> SIMULATING -> DONE

A quota error on the primary model persists the free model preference and
retries exactly once on the free model with a reduced token budget. A quota
error on the free model, or any failure of the retry, ends in the local
simulator. Without an API key every turn is simulated.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence, Union

import httpx

from aieditor.ai.agent.memory import AgentMemory
from aieditor.ai.agent.options import AgentOptions
from aieditor.ai.agent.quota import QuotaPolicy
from aieditor.ai.agent.session import StreamSession
from aieditor.ai.agent.simulator import ResponseSimulator
from aieditor.ai.agent.tool_scanner import ToolTagScanner
from aieditor.ai.agent.tools import ToolDispatcher
from aieditor.ai.cancellation import AiTaskHandle
from aieditor.ai.errors import AiProviderError, AiQuotaExceededError, AiTransportError
from aieditor.ai.models import MemoryItem, MessageStatus
from aieditor.ai.ports import AiMessageListener, DocumentSink, KeyValueStorage, NullDocumentSink
from aieditor.ai.providers.base import extract_delta, extract_total_tokens
from aieditor.ai.transport import describe_error_body, parse_event_line

__all__ = ["AgentState", "AgentZeroClient", "FREE_MODEL_KEY"]

logger = logging.getLogger(__name__)

FREE_MODEL_KEY = "agentZeroUseFreeModel"

SWITCHING_NOTICE = "Switching to free Deepseek model due to OpenRouter credit limits..."
EXHAUSTED_NOTICE = (
    "Even with the free model, you have reached OpenRouter API limits. "
    "Falling back to simulation mode.\n\n"
    "To use the AI capabilities, please try again later or upgrade your account at: "
    "https://openrouter.ai/settings/credits"
)


class AgentState(Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    QUOTA_ERROR = "quota_error"
    EXHAUSTED = "exhausted"
    SIMULATING = "simulating"
    DONE = "done"


class AgentZeroClient:
    """Streaming client with quota fallback, simulation and tool dispatch."""

    def __init__(
        self,
        options: Optional[AgentOptions] = None,
        *,
        storage: KeyValueStorage,
        sink: Optional[DocumentSink] = None,
        transport: "httpx.AsyncBaseTransport | None" = None,
        token_consumer: Optional[Callable[[int], None]] = None,
    ) -> None:
        self._options = options or AgentOptions()
        self._storage = storage
        self._sink = sink or NullDocumentSink()
        self._transport = transport
        self._token_consumer = token_consumer
        self._quota = QuotaPolicy(self._options.quota_phrases)
        self._memory = AgentMemory(storage, enabled=self._options.memory)
        self._memory.load()
        self._dispatcher = ToolDispatcher(self._memory, latency_scale=self._options.latency_scale)
        self._simulator = ResponseSimulator(self._dispatcher, latency_scale=self._options.latency_scale)
        self._state = AgentState.IDLE
        self._handle: Optional[AiTaskHandle] = None
        self.endpoint = self._options.endpoint

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def options(self) -> AgentOptions:
        return self._options

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def memory(self) -> tuple[MemoryItem, ...]:
        return self._memory.items

    @property
    def sub_agents(self) -> frozenset[str]:
        return self._dispatcher.sub_agents

    @property
    def prefers_free_model(self) -> bool:
        try:
            return self._storage.get(FREE_MODEL_KEY) == "true"
        except Exception as exc:  # noqa: BLE001 - storage is host supplied
            logger.warning("Failed to read free model preference: %s", exc)
            return False

    def is_running(self) -> bool:
        return self._handle is not None and self._handle.is_running()

    # ------------------------------------------------------------------
    # Turn API
    # ------------------------------------------------------------------
    def build_payload(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tools: Optional[list[Mapping[str, Any]]] = None,
    ) -> dict[str, Any]:
        """Assemble the streaming request body of one turn."""

        options = self._options
        return {
            "model": model or options.model,
            "messages": [dict(message) for message in messages],
            "stream": True,
            "temperature": temperature if temperature is not None else options.temperature,
            "max_tokens": max_tokens or options.max_tokens,
            "tools": list(tools or []),
        }

    async def chat(
        self,
        messages: Sequence[Mapping[str, Any]],
        listener: AiMessageListener,
        **overrides: Any,
    ) -> None:
        """Run one turn for ``messages``."""

        await self.start(self.build_payload(messages, **overrides), listener)

    async def start(self, payload: Union[str, Mapping[str, Any]], listener: AiMessageListener) -> None:
        """Run one turn for a pre-built request body.

        The listener sees exactly one ``on_start`` and one ``on_stop``, and the
        last message before ``on_stop`` is always ``FINAL``.
        """

        session = StreamSession(listener, self._sink)
        listener.on_start(self)
        try:
            data = json.loads(payload) if isinstance(payload, (str, bytes)) else dict(payload)
        except ValueError as exc:
            logger.warning("Invalid agent payload: %s", exc)
            session.emit(f"Error: {exc}", MessageStatus.FINAL)
            self._state = AgentState.DONE
            listener.on_stop()
            return

        task = asyncio.ensure_future(self._run_turn(data, session))
        handle = AiTaskHandle(session.token, task)
        self._handle = handle
        try:
            await handle.wait()
            if session.cancelled():
                logger.debug("Agent turn cancelled")
        except Exception as exc:  # noqa: BLE001 - errors never escape a turn
            logger.error("Agent turn failed: %s", exc, exc_info=True)
            session.emit(f"Error: {exc}", MessageStatus.FINAL)
        finally:
            if self._handle is handle:
                self._handle = None
            session.finish()
            self._remember_transcript(session)
            self._state = AgentState.DONE
            listener.on_stop()

    def stop(self) -> None:
        """Cancel the running turn, including network I/O and simulated delays."""

        handle = self._handle
        if handle is not None:
            handle.cancel()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------
    async def _run_turn(self, payload: dict[str, Any], session: StreamSession) -> None:
        options = self._options
        if not options.api_key:
            logger.debug("No API key configured, simulating the response")
            await self._simulate(payload, session)
            return

        if self.prefers_free_model and payload.get("model") != options.free_model:
            logger.info("Using free model %s due to stored preference", options.free_model)
            payload = {**payload, "model": options.free_model}

        try:
            await self._request(payload, session)
            return
        except AiQuotaExceededError as exc:
            self._state = AgentState.QUOTA_ERROR
            logger.warning("Quota exhausted on model %s: %s", exc.model, exc)
            on_free = payload.get("model") == options.free_model
        except AiProviderError as exc:
            self._report_error(str(exc), session)
            return

        if on_free:
            await self._exhausted(payload, session)
            return

        retry = self._downgrade(payload, session)
        try:
            await self._request(retry, session)
        except AiProviderError as exc:
            logger.warning("Free model retry failed: %s", exc)
            await self._exhausted(retry, session)

    def _downgrade(self, payload: dict[str, Any], session: StreamSession) -> dict[str, Any]:
        options = self._options
        try:
            self._storage.set(FREE_MODEL_KEY, "true")
        except Exception as exc:  # noqa: BLE001 - storage is host supplied
            logger.warning("Failed to persist free model preference: %s", exc)
        session.discard_transcript()
        session.write_document(SWITCHING_NOTICE, append=False)

        max_tokens = int(payload.get("max_tokens") or options.max_tokens)
        budget = min(max(1, max_tokens // 2), options.free_max_tokens)
        logger.info("Retrying with free model %s (max_tokens=%d)", options.free_model, budget)
        return {**payload, "model": options.free_model, "max_tokens": budget}

    async def _exhausted(self, payload: Mapping[str, Any], session: StreamSession) -> None:
        self._state = AgentState.EXHAUSTED
        session.discard_transcript()
        session.write_document(EXHAUSTED_NOTICE, append=False)
        await self._simulate(payload, session)

    async def _simulate(self, payload: Mapping[str, Any], session: StreamSession) -> None:
        self._state = AgentState.SIMULATING
        messages = payload.get("messages") or []
        await self._simulator.run(messages, session)

    def _report_error(self, text: str, session: StreamSession) -> None:
        message = f"Error: {text}"
        logger.warning("Agent request failed: %s", text)
        session.write_document(message, append=False)
        session.emit(message, MessageStatus.FINAL)

    # ------------------------------------------------------------------
    # Network
    # ------------------------------------------------------------------
    async def _request(self, payload: dict[str, Any], session: StreamSession) -> None:
        """Stream one request; raise on quota and transport failures."""

        self._state = AgentState.REQUESTING
        model = payload.get("model")
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "Authorization": f"Bearer {self._options.api_key}",
        }
        if self._options.site_url:
            headers["HTTP-Referer"] = self._options.site_url

        logger.debug("Agent request to %s with model %s", self.endpoint, model)
        scanner = ToolTagScanner()
        try:
            async with httpx.AsyncClient(timeout=self._options.timeout, transport=self._transport) as client:
                async with client.stream("POST", self.endpoint, json=payload, headers=headers) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        text = describe_error_body(body)
                        if self._quota.matches(text, body):
                            raise AiQuotaExceededError(text, model=model)
                        raise AiTransportError(
                            f"API request failed: {response.status_code} {text}",
                            status_code=response.status_code,
                        )

                    self._state = AgentState.STREAMING
                    async for line in response.aiter_lines():
                        if session.cancelled() or session.finished:
                            break
                        event = parse_event_line(line)
                        if event is None:
                            continue
                        await self._handle_event(event, session, scanner, model)
        except httpx.HTTPError as exc:
            text = str(exc) or exc.__class__.__name__
            if self._quota.matches(text):
                raise AiQuotaExceededError(text, model=model) from exc
            raise AiTransportError(text) from exc

    async def _handle_event(
        self,
        event: str,
        session: StreamSession,
        scanner: ToolTagScanner,
        model: Optional[str],
    ) -> None:
        try:
            chunk = json.loads(event)
        except json.JSONDecodeError:
            if self._quota.matches(event):
                raise AiQuotaExceededError(event, model=model) from None
            if '"error"' in event:
                raise AiProviderError(f"Error in API response: {event}") from None
            logger.warning("Skipping undecodable agent event: %.80s", event)
            return
        if not isinstance(chunk, dict):
            logger.warning("Skipping unexpected agent event: %.80s", event)
            return

        error = chunk.get("error")
        if error:
            text = error.get("message") if isinstance(error, dict) else None
            text = str(text or json.dumps(error))
            if self._quota.matches(text):
                raise AiQuotaExceededError(text, model=model)
            raise AiProviderError(text)

        total = extract_total_tokens(chunk)
        if total is not None and self._token_consumer is not None:
            self._token_consumer(total)

        choices = chunk.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            logger.warning("Skipping malformed agent event: %.80s", event)
            return
        choice = choices[0]
        content = extract_delta(choice)
        stopped = choice.get("finish_reason") == "stop"
        if not content:
            if stopped:
                session.finish()
            elif content is None:
                logger.debug("Skipping agent event without content")
            return

        status = session.record_chunk(content)
        invocations = scanner.feed(content)
        if stopped:
            # Tools completed by the closing chunk run before it becomes FINAL
            for invocation in invocations:
                await self._dispatcher.dispatch(invocation, session, closing=False)
            session.emit(content, MessageStatus.FINAL)
            return
        session.emit(content, status)
        for invocation in invocations:
            await self._dispatcher.dispatch(invocation, session, closing=False)

    def _remember_transcript(self, session: StreamSession) -> None:
        transcript = session.transcript
        if not transcript or not self._memory.enabled:
            return
        self._memory.append(transcript, {"response"})
