"""Error hierarchy shared by the AI provider layer."""

from __future__ import annotations

__all__ = [
    "AiError",
    "AiProviderError",
    "AiTransportError",
    "AiQuotaExceededError",
    "AiConfigError",
]


class AiError(Exception):
    """Base error for all AI provider failures."""


class AiProviderError(AiError):
    """Raised when a provider backend fails or behaves unexpectedly."""


class AiTransportError(AiProviderError):
    """Raised when a streaming request cannot be completed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AiQuotaExceededError(AiProviderError):
    """Raised when the vendor reports exhausted credits or quota."""

    def __init__(self, message: str, *, model: str | None = None) -> None:
        super().__init__(message)
        self.model = model


class AiConfigError(AiError):
    """Raised when provider configuration values are missing or invalid."""
