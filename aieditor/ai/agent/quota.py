"""Recognition of vendor quota and credit exhaustion errors."""

from __future__ import annotations

from typing import Iterable, Optional

__all__ = ["DEFAULT_QUOTA_PHRASES", "QuotaPolicy"]

DEFAULT_QUOTA_PHRASES: tuple[str, ...] = (
    "credits are required",
    "insufficient_quota",
    "exceeded your current quota",
)


class QuotaPolicy:
    """Case-insensitive phrase matcher over vendor error text."""

    __slots__ = ("_phrases",)

    def __init__(self, phrases: Iterable[str] = DEFAULT_QUOTA_PHRASES) -> None:
        self._phrases = tuple(p.strip().lower() for p in phrases if p and p.strip())

    @property
    def phrases(self) -> tuple[str, ...]:
        return self._phrases

    def matches(self, *texts: Optional[str]) -> bool:
        """Return ``True`` when any of ``texts`` contains a quota phrase."""

        for text in texts:
            if not text:
                continue
            lowered = text.lower()
            if any(phrase in lowered for phrase in self._phrases):
                return True
        return False
