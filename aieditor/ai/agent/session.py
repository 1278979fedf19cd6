"""Per-turn state of the Agent Zero client."""

from __future__ import annotations

import logging
from typing import Optional

from aieditor.ai.cancellation import AiCancellationToken
from aieditor.ai.models import ChatMessage, MessageStatus
from aieditor.ai.ports import AiMessageListener, DocumentSink

__all__ = ["StreamSession"]

logger = logging.getLogger(__name__)


class StreamSession:
    """Index counter, transcript and cancellation token of one chat turn."""

    def __init__(
        self,
        listener: AiMessageListener,
        sink: DocumentSink,
        token: Optional[AiCancellationToken] = None,
    ) -> None:
        self._listener = listener
        self._sink = sink
        self._token = token or AiCancellationToken()
        self._index = 0
        self._chunks: list[str] = []
        self._last_status: Optional[MessageStatus] = None

    @property
    def token(self) -> AiCancellationToken:
        return self._token

    @property
    def message_index(self) -> int:
        return self._index

    @property
    def last_status(self) -> Optional[MessageStatus]:
        return self._last_status

    @property
    def finished(self) -> bool:
        return self._last_status is MessageStatus.FINAL

    @property
    def streamed_chunks(self) -> int:
        return len(self._chunks)

    @property
    def transcript(self) -> str:
        return "".join(self._chunks)

    def cancelled(self) -> bool:
        return self._token.cancelled()

    async def sleep(self, delay: float) -> bool:
        """Wait ``delay`` seconds; ``False`` when the turn was cancelled."""

        return await self._token.sleep(delay)

    def emit(self, content: str, status: MessageStatus = MessageStatus.CONTINUE) -> Optional[ChatMessage]:
        """Deliver one message to the listener with the next index."""

        if self.finished:
            logger.debug("Turn already final, dropping %d chars", len(content))
            return None
        message = ChatMessage(content, self._index, status)
        self._index += 1
        self._last_status = message.status
        self._listener.on_message(message)
        return message

    def finish(self) -> None:
        """Close the turn with an empty ``FINAL`` unless one was delivered."""

        if not self.finished:
            self.emit("", MessageStatus.FINAL)

    def record_chunk(self, content: str) -> MessageStatus:
        """Append streamed ``content`` to the transcript and the document."""

        first = not self._chunks
        self._chunks.append(content)
        self.write_document(content, append=not first, typing=True)
        return MessageStatus.START if first else MessageStatus.CONTINUE

    def discard_transcript(self) -> None:
        """Forget streamed content; the next chunk starts the document afresh."""

        if self._chunks:
            logger.debug("Discarding %d streamed chunk(s)", len(self._chunks))
        self._chunks.clear()

    def write_document(self, text: str, *, append: bool = True, typing: bool = False) -> bool:
        try:
            written = self._sink.write(
                text,
                append=append,
                typing=typing,
                typing_speed=1,
                highlight=False,
            )
        except Exception as exc:  # noqa: BLE001 - sink is host supplied
            logger.warning("Document sink failed: %s", exc)
            return False
        if not written:
            logger.debug("Document sink did not accept %d chars", len(text))
        return bool(written)
