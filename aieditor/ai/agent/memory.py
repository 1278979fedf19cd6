"""Persistent memory of the Agent Zero client."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from pydantic import ValidationError

from aieditor.ai.models import MemoryItem, memory_list_adapter
from aieditor.ai.ports import KeyValueStorage

__all__ = ["AgentMemory", "MEMORY_KEY", "extract_hashtags"]

logger = logging.getLogger(__name__)

MEMORY_KEY = "agentZeroMemory"

_HASHTAG_RE = re.compile(r"#([A-Za-z0-9_]+)")


def extract_hashtags(text: str) -> set[str]:
    """Return the ``#tag`` names found in ``text`` without the hash."""

    return set(_HASHTAG_RE.findall(text or ""))


class AgentMemory:
    """Append-only list of :class:`MemoryItem` mirrored into a storage port."""

    def __init__(self, storage: KeyValueStorage, *, enabled: bool = True, key: str = MEMORY_KEY) -> None:
        self._storage = storage
        self._enabled = enabled
        self._key = key
        self._items: list[MemoryItem] = []

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def items(self) -> tuple[MemoryItem, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def load(self) -> None:
        """Read the stored list, resetting to empty on any failure."""

        if not self._enabled:
            self._items = []
            return
        try:
            raw = self._storage.get(self._key)
            self._items = memory_list_adapter.validate_json(raw) if raw else []
        except ValidationError as exc:
            logger.warning("Discarding unreadable agent memory: %s", exc.error_count())
            self._items = []
        except Exception as exc:  # noqa: BLE001 - storage is host supplied
            logger.warning("Failed to load agent memory: %s", exc)
            self._items = []
        else:
            logger.debug("Loaded %d agent memory item(s)", len(self._items))

    def append(self, content: str, tags: Optional[Iterable[str]] = None) -> MemoryItem:
        """Record ``content`` and persist the full list."""

        item = MemoryItem(content=content, tags=set(tags or ()))
        self._items.append(item)
        self.save()
        return item

    def save(self) -> bool:
        """Write the full list to storage; failures are logged and dropped."""

        if not self._enabled:
            return False
        try:
            payload = memory_list_adapter.dump_json(self._items).decode("utf-8")
            self._storage.set(self._key, payload)
        except Exception as exc:  # noqa: BLE001 - storage is host supplied
            logger.warning("Failed to save agent memory: %s", exc)
            return False
        logger.debug("Saved %d agent memory item(s)", len(self._items))
        return True
