"""Ports connecting the provider layer to its host environment.

The core never touches editor documents, browser storage or UI widgets
directly. Everything it needs from the outside world arrives through the
small protocols below:

* :class:`KeyValueStorage` persists the agent memory and model preference.
* :class:`DocumentSink` receives live text for the editor document.
* :class:`AiMessageListener` receives the incremental chat messages.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional, Protocol

if TYPE_CHECKING:  # pragma: no cover - typing only
    from aieditor.ai.models import ChatMessage

__all__ = [
    "AiMessageListener",
    "CallbackListener",
    "DocumentSink",
    "InMemoryStorage",
    "JsonFileStorage",
    "KeyValueStorage",
    "NullDocumentSink",
]

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    """String key-value persistence supplied by the host environment."""

    def get(self, key: str) -> Optional[str]:  # pragma: no cover - typing aid
        ...

    def set(self, key: str, value: str) -> None:  # pragma: no cover - typing aid
        ...


class DocumentSink(Protocol):
    """Fire-and-forget writer for the editor document."""

    def write(
        self,
        text: str,
        *,
        append: bool = True,
        typing: bool = False,
        typing_speed: int = 1,
        highlight: bool = False,
    ) -> bool:  # pragma: no cover - typing aid
        ...


class AiMessageListener(Protocol):
    """Receiver of the messages produced during one chat turn."""

    def on_start(self, client: Any) -> None:  # pragma: no cover - typing aid
        ...

    def on_message(self, message: "ChatMessage") -> None:  # pragma: no cover - typing aid
        ...

    def on_stop(self) -> None:  # pragma: no cover - typing aid
        ...


@dataclass
class CallbackListener:
    """Listener assembled from optional plain callables."""

    start: Optional[Callable[[Any], None]] = None
    message: Optional[Callable[["ChatMessage"], None]] = None
    stop: Optional[Callable[[], None]] = None

    def on_start(self, client: Any) -> None:
        if self.start is not None:
            self.start(client)

    def on_message(self, message: "ChatMessage") -> None:
        if self.message is not None:
            self.message(message)

    def on_stop(self) -> None:
        if self.stop is not None:
            self.stop()


class InMemoryStorage:
    """Process-local storage, the default when the host provides none."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def as_dict(self) -> dict[str, str]:
        return dict(self._values)


class JsonFileStorage:
    """Storage backed by a single JSON object on disk."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._path.parent.mkdir(parents=True, exist_ok=True)
            staging = self._path.with_suffix(self._path.suffix + ".tmp")
            with staging.open("w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2)
            staging.replace(self._path)

    def _read(self) -> dict[str, Any]:
        if not self._path.is_file():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable storage file: %s", self._path)
            return {}
        return data if isinstance(data, dict) else {}


class NullDocumentSink:
    """Sink that only logs, used when no editor document is attached."""

    def write(
        self,
        text: str,
        *,
        append: bool = True,
        typing: bool = False,
        typing_speed: int = 1,
        highlight: bool = False,
    ) -> bool:
        logger.debug("Document write skipped (%d chars, append=%s)", len(text), append)
        return False
