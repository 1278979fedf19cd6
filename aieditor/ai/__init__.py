"""Core AI domain package of aieditor."""

from .config import AIConfig, ConfigChange, ProviderConfig
from .errors import (
    AiConfigError,
    AiError,
    AiProviderError,
    AiQuotaExceededError,
    AiTransportError,
)
from .models import ChatMessage, MemoryItem, MessageRole, MessageStatus, ModelOption, ToolInvocation
from .registry import ProviderRegistry, build_registry

__all__ = [
    "AIConfig",
    "ConfigChange",
    "ProviderConfig",
    "AiError",
    "AiProviderError",
    "AiTransportError",
    "AiQuotaExceededError",
    "AiConfigError",
    "ChatMessage",
    "MemoryItem",
    "MessageRole",
    "MessageStatus",
    "ModelOption",
    "ToolInvocation",
    "ProviderRegistry",
    "build_registry",
]
