"""Base provider abstractions shared by the vendor adapters."""

from __future__ import annotations

import inspect
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Optional, Union

from aieditor.ai.errors import AiTransportError
from aieditor.ai.models import ChatMessage, MessageRole, MessageStatus
from aieditor.ai.ports import (
    AiMessageListener,
    DocumentSink,
    InMemoryStorage,
    KeyValueStorage,
    NullDocumentSink,
)
from aieditor.ai.transport import SseClient, SseListener

if TYPE_CHECKING:  # pragma: no cover - typing only
    import httpx

    from aieditor.ai.config import ProviderConfig

__all__ = [
    "BaseProvider",
    "ChunkTranslator",
    "ProviderContext",
    "compose_prompt",
    "extract_delta",
    "extract_total_tokens",
]

logger = logging.getLogger(__name__)

UrlResolver = Callable[[str, "ProviderConfig"], Union[str, Awaitable[str]]]
TokenConsumer = Callable[[str, "ProviderConfig", int], None]

_CONTENT_TOKEN = "{content}"


@dataclass
class ProviderContext:
    """Collaborators injected into every provider by the composition root."""

    storage: KeyValueStorage = field(default_factory=InMemoryStorage)
    sink: DocumentSink = field(default_factory=NullDocumentSink)
    url_resolver: Optional[UrlResolver] = None
    token_consumer: Optional[TokenConsumer] = None
    transport: "httpx.AsyncBaseTransport | None" = None
    timeout: Optional[float] = None


def compose_prompt(selected_text: str, prompt: str) -> str:
    """Merge the selected text into a prompt template."""

    if _CONTENT_TOKEN in prompt:
        return prompt.replace(_CONTENT_TOKEN, selected_text or "")
    if selected_text:
        return f"{selected_text}\n{prompt}"
    return prompt


def extract_delta(choice: Mapping[str, Any]) -> Optional[str]:
    """Return the text fragment of a streamed choice, or ``None`` if absent.

    Vendors disagree on where the fragment lives, so the known locations are
    tried in a fixed order: ``delta.content``, ``delta.text``, ``text``,
    ``content`` and finally ``message.content``.
    """

    delta = choice.get("delta")
    if isinstance(delta, Mapping):
        for key in ("content", "text"):
            value = delta.get(key)
            if value is not None:
                return str(value)
    for key in ("text", "content"):
        value = choice.get(key)
        if value is not None:
            return str(value)
    message = choice.get("message")
    if isinstance(message, Mapping) and isinstance(message.get("content"), str):
        return message["content"]
    return None


def extract_total_tokens(chunk: Mapping[str, Any]) -> Optional[int]:
    """Return ``usage.total_tokens`` from the chunk or its first choice."""

    candidates: list[Any] = [chunk.get("usage")]
    choices = chunk.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], Mapping):
        candidates.append(choices[0].get("usage"))
    for usage in candidates:
        if isinstance(usage, Mapping):
            total = usage.get("total_tokens")
            if isinstance(total, int) and total > 0:
                return total
    return None


class ChunkTranslator:
    """Turn decoded SSE events of one turn into :class:`ChatMessage` objects."""

    def __init__(self, provider: "BaseProvider", listener: AiMessageListener) -> None:
        self._provider = provider
        self._listener = listener
        self._index = 0
        self._final_sent = False

    @property
    def final_sent(self) -> bool:
        return self._final_sent

    def on_start(self, client: Any) -> None:
        self._listener.on_start(client)

    def on_message(self, body: str) -> None:
        chunk = json.loads(body)
        if not isinstance(chunk, dict):
            raise TypeError(f"Unexpected SSE payload type: {type(chunk).__name__}")

        total = extract_total_tokens(chunk)
        if total is not None:
            self._provider.report_tokens(total)

        message = self._provider.decode_chunk(chunk, self._index)
        if message is None:
            return
        self._deliver(message)

    def on_error(self, exc: AiTransportError) -> None:
        if self._final_sent:
            return
        self._deliver(ChatMessage(f"Error: {exc}", self._index, MessageStatus.FINAL))

    def on_stop(self) -> None:
        if not self._final_sent:
            self._deliver(ChatMessage("", self._index, MessageStatus.FINAL))
        self._listener.on_stop()

    def _deliver(self, message: ChatMessage) -> None:
        if self._final_sent:
            logger.debug("Dropping message after final: %r", message.content[:40])
            return
        self._index = max(self._index, message.index) + 1
        self._final_sent = message.is_final
        self._listener.on_message(message)


class BaseProvider(ABC):
    """Base class of the vendor adapters.

    An adapter knows its vendor URL, headers and payload shape, and translates
    the vendor's streamed chunks into :class:`ChatMessage` objects. The turn
    itself is driven by :class:`SseClient`.
    """

    default_endpoint: str = ""
    default_model: Optional[str] = None
    default_temperature: Optional[float] = None

    def __init__(
        self,
        name: str,
        config: "ProviderConfig",
        context: Optional[ProviderContext] = None,
    ) -> None:
        self._name = name
        self._config = config
        self._context = context or ProviderContext()
        self._client: Optional[SseClient] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> "ProviderConfig":
        return self._config

    @property
    def context(self) -> ProviderContext:
        return self._context

    @property
    def endpoint(self) -> str:
        return (self._config.endpoint or self.default_endpoint).rstrip("/")

    @property
    def model(self) -> Optional[str]:
        return self._config.effective_model(self.default_model)

    # ------------------------------------------------------------------
    # Vendor hooks
    # ------------------------------------------------------------------
    @abstractmethod
    def build_url(self) -> str:
        """Return the vendor endpoint of a chat turn."""

    def build_headers(self) -> dict[str, str]:
        """Return vendor specific request headers."""

        return {}

    def wrap_payload(self, prompt: str) -> dict[str, Any]:
        """Wrap ``prompt`` into a streaming chat-completion request body."""

        config = self._config
        temperature = config.temperature if config.temperature is not None else self.default_temperature
        payload: dict[str, Any] = {
            "messages": [{"role": MessageRole.USER.value, "content": prompt}],
            "max_tokens": config.max_tokens,
            "temperature": temperature,
            "stream": True,
        }
        model = self.model
        if model:
            payload["model"] = model
        return payload

    def build_client(self, url: str, listener: AiMessageListener) -> SseClient:
        """Create the transport of one turn, wired to a fresh translator."""

        translator = ChunkTranslator(self, listener)
        timeout = self._config.timeout if self._config.timeout is not None else self._context.timeout
        return SseClient(
            url,
            SseListener(
                on_message=translator.on_message,
                on_start=translator.on_start,
                on_stop=translator.on_stop,
                on_error=translator.on_error,
            ),
            headers=self.build_headers(),
            timeout=timeout,
            transport=self._context.transport,
        )

    def decode_chunk(self, chunk: Mapping[str, Any], index: int) -> Optional[ChatMessage]:
        """Translate one vendor chunk; ``None`` means the chunk is skipped."""

        choices = chunk.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], Mapping):
            return None
        choice = choices[0]
        finished = choice.get("finish_reason") == "stop"
        content = extract_delta(choice)
        if content is None:
            if not finished:
                return None
            content = ""
        status = MessageStatus.FINAL if finished else MessageStatus.CONTINUE
        return ChatMessage(content, index, status)

    # ------------------------------------------------------------------
    # Chat API
    # ------------------------------------------------------------------
    async def chat(self, selected_text: str, prompt: str, listener: AiMessageListener) -> None:
        """Run one turn for ``prompt`` merged with ``selected_text``."""

        url = await self.resolve_url(listener)
        if url is None:
            return
        payload = self.wrap_payload(compose_prompt(selected_text, prompt))
        await self._start(url, payload, listener)

    async def chat_with_payload(
        self,
        payload: Union[str, Mapping[str, Any]],
        listener: AiMessageListener,
    ) -> None:
        """Run one turn with a request body built by the caller."""

        url = await self.resolve_url(listener)
        if url is None:
            return
        await self._start(url, payload, listener)

    async def resolve_url(self, listener: AiMessageListener) -> Optional[str]:
        """Return the turn URL, consulting the injected resolver when present.

        When the resolver or :meth:`build_url` fails, the listener's
        ``on_stop`` is delivered and ``None`` is returned.
        """

        resolver = self._context.url_resolver
        try:
            if resolver is None:
                result: Any = self.build_url()
            else:
                result = resolver(self._name, self._config)
                if inspect.isawaitable(result):
                    result = await result
        except Exception as exc:  # noqa: BLE001 - resolver and custom URLs are caller supplied
            logger.warning("Resolving the URL of '%s' failed: %s", self._name, exc)
            listener.on_stop()
            return None
        if not result:
            logger.warning("URL resolver for '%s' returned no URL", self._name)
            listener.on_stop()
            return None
        return str(result)

    def stop(self) -> None:
        """Stop the active turn, if any."""

        client = self._client
        if client is not None:
            client.stop()

    def report_tokens(self, total: int) -> None:
        """Forward token usage to the injected consumer."""

        consumer = self._context.token_consumer
        if consumer is None:
            return
        try:
            consumer(self._name, self._config, total)
        except Exception as exc:  # noqa: BLE001 - consumer is caller supplied
            logger.warning("Token consumer for '%s' failed: %s", self._name, exc)

    async def _start(
        self,
        url: str,
        payload: Union[str, Mapping[str, Any]],
        listener: AiMessageListener,
    ) -> None:
        body = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
        client = self.build_client(url, listener)
        self._client = client
        logger.debug("Starting '%s' turn against %s", self._name, url)
        try:
            await client.start(body)
        finally:
            if self._client is client:
                self._client = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self._name!r}, model={self.model!r})"
