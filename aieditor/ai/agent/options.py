"""Runtime options of the Agent Zero client."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Optional

from aieditor.ai.agent.quota import DEFAULT_QUOTA_PHRASES

if TYPE_CHECKING:  # pragma: no cover - typing only
    from aieditor.ai.config import ProviderConfig

__all__ = [
    "AgentOptions",
    "DEFAULT_AGENT_ENDPOINT",
    "DEFAULT_AGENT_MODEL",
    "DEFAULT_FREE_MODEL",
]

logger = logging.getLogger(__name__)

DEFAULT_AGENT_ENDPOINT = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_AGENT_MODEL = "openai/gpt-4o"
DEFAULT_FREE_MODEL = "deepseek/deepseek-r1-zero:free"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class AgentOptions:
    """Settings of one :class:`~aieditor.ai.agent.client.AgentZeroClient`."""

    api_key: Optional[str] = None
    endpoint: str = DEFAULT_AGENT_ENDPOINT
    model: str = DEFAULT_AGENT_MODEL
    free_model: str = DEFAULT_FREE_MODEL
    temperature: float = 0.7
    max_tokens: int = 4096
    free_max_tokens: int = 1024
    memory: bool = True
    tool_usage: bool = True
    multi_agent: bool = False
    browser_agent: bool = False
    quota_phrases: tuple[str, ...] = field(default=DEFAULT_QUOTA_PHRASES)
    latency_scale: float = 1.0
    site_url: Optional[str] = None
    timeout: Optional[float] = None

    def with_overrides(self, **changes: Any) -> "AgentOptions":
        """Return a copy with ``changes`` applied."""

        return replace(self, **changes)

    @classmethod
    def from_provider_config(cls, config: "ProviderConfig") -> "AgentOptions":
        """Map a provider configuration record onto agent options."""

        defaults = cls()
        extra = config.extra
        phrases = extra.get("quota_phrases")
        return cls(
            api_key=(config.api_key or "").strip() or None,
            endpoint=config.endpoint or defaults.endpoint,
            model=config.effective_model(defaults.model) or defaults.model,
            free_model=str(extra.get("free_model") or defaults.free_model),
            temperature=config.temperature if config.temperature is not None else defaults.temperature,
            max_tokens=config.max_tokens or defaults.max_tokens,
            free_max_tokens=_as_int(extra.get("free_max_tokens"), defaults.free_max_tokens),
            memory=_as_bool(extra.get("memory"), defaults.memory),
            tool_usage=_as_bool(extra.get("tool_usage"), defaults.tool_usage),
            multi_agent=_as_bool(extra.get("multi_agent"), defaults.multi_agent),
            browser_agent=_as_bool(extra.get("browser_agent"), defaults.browser_agent),
            quota_phrases=_as_phrases(phrases) or defaults.quota_phrases,
            latency_scale=_as_float(extra.get("latency_scale"), defaults.latency_scale),
            site_url=extra.get("site_url") or None,
            timeout=config.timeout,
        )


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    logger.warning("Invalid boolean '%s' in agent options", value)
    return default


def _as_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return max(1, int(value))
    except (TypeError, ValueError):
        logger.warning("Invalid integer '%s' in agent options", value)
        return default


def _as_float(value: Any, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        logger.warning("Invalid number '%s' in agent options", value)
        return default


def _as_phrases(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = [str(item) for item in value]
    return tuple(item.strip() for item in items if item.strip())
