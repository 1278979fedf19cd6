"""Incremental scanner for ``[tool:NAME]ARGUMENT[/tool]`` markup.

Streamed text arrives in arbitrary fragments, so a tag may be split across
any number of chunks. :class:`ToolTagScanner` keeps just enough state to
resume where the previous fragment stopped:

* ``TEXT``: looking for the ``[tool:`` opener. Only a possible partial
  opener is kept between fragments.
* ``NAME``: collecting the lowercase tool name up to ``]``.
* ``ARGUMENT``: collecting the argument up to the first ``[/tool]``.

Names and arguments are bounded; an oversized tag is dropped and scanning
resumes in ``TEXT``.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable

from aieditor.ai.models import ToolInvocation

__all__ = [
    "ScannerState",
    "ToolTagScanner",
    "extract_tool_invocations",
]

logger = logging.getLogger(__name__)

OPEN_TAG = "[tool:"
CLOSE_TAG = "[/tool]"

MAX_NAME_LENGTH = 32
MAX_ARGUMENT_LENGTH = 16384


class ScannerState(Enum):
    TEXT = "text"
    NAME = "name"
    ARGUMENT = "argument"


class ToolTagScanner:
    """Stateful tokenizer returning each complete tool tag exactly once."""

    def __init__(self, *, max_argument_length: int = MAX_ARGUMENT_LENGTH) -> None:
        self._max_argument = max_argument_length
        self.reset()

    @property
    def state(self) -> ScannerState:
        return self._state

    def reset(self) -> None:
        self._state = ScannerState.TEXT
        self._pending = ""
        self._name: list[str] = []
        self._argument = ""

    def feed(self, chunk: str) -> list[ToolInvocation]:
        """Consume ``chunk`` and return the tags it completed."""

        found: list[ToolInvocation] = []
        text = self._pending + chunk
        self._pending = ""
        pos = 0
        while pos < len(text):
            if self._state is ScannerState.TEXT:
                pos = self._scan_text(text, pos)
            elif self._state is ScannerState.NAME:
                pos = self._scan_name(text, pos)
            else:
                pos, invocation = self._scan_argument(text, pos)
                if invocation is not None:
                    found.append(invocation)
        return found

    def feed_all(self, chunks: Iterable[str]) -> list[ToolInvocation]:
        found: list[ToolInvocation] = []
        for chunk in chunks:
            found.extend(self.feed(chunk))
        return found

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------
    def _scan_text(self, text: str, pos: int) -> int:
        start = text.find(OPEN_TAG, pos)
        if start >= 0:
            self._state = ScannerState.NAME
            self._name = []
            return start + len(OPEN_TAG)

        # Keep the longest tail that may still grow into an opener
        tail = text[max(pos, len(text) - len(OPEN_TAG) + 1):]
        while tail and not OPEN_TAG.startswith(tail):
            tail = tail[1:]
        self._pending = tail
        return len(text)

    def _scan_name(self, text: str, pos: int) -> int:
        while pos < len(text):
            char = text[pos]
            if "a" <= char <= "z":
                self._name.append(char)
                if len(self._name) > MAX_NAME_LENGTH:
                    logger.debug("Dropping tool tag with oversized name")
                    self._state = ScannerState.TEXT
                    return pos + 1
                pos += 1
                continue
            if char == "]" and self._name:
                self._state = ScannerState.ARGUMENT
                self._argument = ""
                return pos + 1
            # Not a tag after all, rescan this character as plain text
            self._state = ScannerState.TEXT
            return pos
        return pos

    def _scan_argument(self, text: str, pos: int) -> tuple[int, ToolInvocation | None]:
        searched = len(self._argument)
        self._argument += text[pos:]
        end = self._argument.find(CLOSE_TAG, max(0, searched - len(CLOSE_TAG) + 1))
        if end > self._max_argument or (end < 0 and len(self._argument) > self._max_argument):
            logger.warning(
                "Dropping tool tag '%s' with argument over %d characters",
                "".join(self._name), self._max_argument,
            )
            self._state = ScannerState.TEXT
            self._argument = ""
            self._name = []
            # Rescan the rest of the fragment as text after the bounded argument
            return pos + max(0, self._max_argument + 1 - searched), None
        if end < 0:
            return len(text), None

        invocation = ToolInvocation(
            name="".join(self._name),
            argument=self._argument[:end].strip(),
        )
        consumed = end + len(CLOSE_TAG) - searched
        self._state = ScannerState.TEXT
        self._argument = ""
        self._name = []
        return pos + consumed, invocation


def extract_tool_invocations(text: str) -> list[ToolInvocation]:
    """Return every complete tool tag in ``text``."""

    return ToolTagScanner().feed(text)
