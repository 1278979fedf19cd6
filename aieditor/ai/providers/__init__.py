"""Vendor adapters of the AI provider layer."""

from .base import BaseProvider, ChunkTranslator, ProviderContext, compose_prompt
from .openai import OpenAIProvider
from .openrouter import DEFAULT_OPENROUTER_MODELS, OpenRouterProvider

__all__ = [
    "BaseProvider",
    "ChunkTranslator",
    "DEFAULT_OPENROUTER_MODELS",
    "OpenAIProvider",
    "OpenRouterProvider",
    "ProviderContext",
    "compose_prompt",
]
