"""Provider registry owned by the composition root."""

from __future__ import annotations

import logging
from typing import Callable, Iterator, Mapping, Optional

from aieditor.ai.agent.provider import AgentZeroProvider
from aieditor.ai.config import AIConfig, ConfigChange, ProviderConfig
from aieditor.ai.errors import AiConfigError
from aieditor.ai.providers.base import BaseProvider, ProviderContext
from aieditor.ai.providers.openai import OpenAIProvider
from aieditor.ai.providers.openrouter import OpenRouterProvider

__all__ = ["AUTO", "ProviderFactory", "ProviderRegistry", "build_registry"]

logger = logging.getLogger(__name__)

AUTO = "auto"

ProviderFactory = Callable[[str, ProviderConfig, ProviderContext], Optional[BaseProvider]]
ConfigSubscriber = Callable[[ConfigChange], None]

_VENDOR_MAP: Mapping[str, Callable[[str, ProviderConfig, ProviderContext], BaseProvider]] = {
    "openai": OpenAIProvider,
    "openrouter": OpenRouterProvider,
    "agentZero": AgentZeroProvider,
    "agentzero": AgentZeroProvider,
}


class ProviderRegistry:
    """Holds one live adapter per provider name, in registration order."""

    def __init__(
        self,
        context: Optional[ProviderContext] = None,
        *,
        factory: Optional[ProviderFactory] = None,
    ) -> None:
        self._context = context or ProviderContext()
        self._factory = factory
        self._providers: dict[str, BaseProvider] = {}
        self._subscribers: list[ConfigSubscriber] = []

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __iter__(self) -> Iterator[str]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    @property
    def context(self) -> ProviderContext:
        return self._context

    def register(self, name: str, config: ProviderConfig) -> Optional[BaseProvider]:
        """Create and store the adapter of ``name``.

        Known vendors come from the built-in map, anything else goes through
        the caller supplied factory. Returns ``None`` when neither applies.
        """

        constructor = _VENDOR_MAP.get(name)
        if constructor is not None:
            provider: Optional[BaseProvider] = constructor(name, config, self._context)
        elif self._factory is not None:
            provider = self._factory(name, config, self._context)
        else:
            provider = None

        if provider is None:
            logger.warning("No adapter available for AI provider '%s'", name)
            return None

        config.on_change = self.publish
        self._providers[name] = provider
        logger.debug("Registered AI provider '%s' (%s)", name, provider.__class__.__name__)
        return provider

    def register_all(self, ai_config: AIConfig) -> list[str]:
        """Register every provider of ``ai_config`` in configuration order."""

        registered = []
        for name, config in ai_config.models.items():
            if self.register(name, config) is not None:
                registered.append(name)
        return registered

    def get(self, name: Optional[str] = None) -> BaseProvider:
        """Return the adapter of ``name``; empty or ``"auto"`` picks the first one."""

        key = (name or "").strip()
        if not key or key == AUTO:
            for provider in self._providers.values():
                return provider
            raise AiConfigError("No AI provider is registered.")
        try:
            return self._providers[key]
        except KeyError as exc:
            raise AiConfigError(f"AI provider '{key}' is not registered.") from exc

    def set(self, name: str, provider: BaseProvider) -> None:
        """Store ``provider`` under ``name``, replacing any previous adapter."""

        self._providers[name] = provider
        provider.config.on_change = self.publish

    def items(self) -> list[tuple[str, BaseProvider]]:
        return list(self._providers.items())

    def names(self) -> list[str]:
        return list(self._providers)

    # ------------------------------------------------------------------
    # Config change channel
    # ------------------------------------------------------------------
    def subscribe(self, callback: ConfigSubscriber) -> Callable[[], None]:
        """Receive model changes of registered configs; returns an unsubscribe callable."""

        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, change: ConfigChange) -> None:
        for callback in list(self._subscribers):
            try:
                callback(change)
            except Exception:  # noqa: BLE001 - one subscriber must not block others
                logger.exception("Config change subscriber failed for '%s'", change.provider)


def build_registry(
    ai_config: AIConfig,
    context: Optional[ProviderContext] = None,
    *,
    factory: Optional[ProviderFactory] = None,
) -> ProviderRegistry:
    """Create a registry populated from ``ai_config``."""

    if context is None:
        context = ProviderContext(timeout=ai_config.timeout)
    registry = ProviderRegistry(context, factory=factory)
    registry.register_all(ai_config)
    return registry
