"""Configuration records for the AI providers."""

from __future__ import annotations

import logging
import os
from configparser import ConfigParser, InterpolationError
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping, Optional, Protocol

from aieditor.ai.errors import AiConfigError

__all__ = [
    "AIConfig",
    "ConfigChange",
    "ProviderConfig",
    "legacy_model_field",
]

logger = logging.getLogger(__name__)


class _ConfigReader(Protocol):
    """Protocol describing the subset of config readers we rely on."""

    def has_section(self, section: str) -> bool:  # pragma: no cover - typing aid
        ...

    def sections(self) -> list[str]:  # pragma: no cover - typing aid
        ...

    def options(self, section: str) -> list[str]:  # pragma: no cover - typing aid
        ...

    def defaults(self) -> Mapping[str, str]:  # pragma: no cover - typing aid
        ...

    def get(self, section: str, option: str, *args: Any, **kwargs: Any) -> str:  # pragma: no cover
        ...

    def getboolean(self, section: str, option: str, *args: Any, **kwargs: Any) -> bool:  # pragma: no cover
        ...


# Vendor specific field mirroring ``model_id``
_LEGACY_MODEL_FIELDS: dict[str, str] = {
    "openai": "model",
    "openrouter": "model",
    "gitee": "model",
    "wenxin": "model",
    "custom": "model",
    "agentzero": "model",
    "spark": "version",
}

_ENV_API_KEYS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "agentzero": "OPENROUTER_API_KEY",
}

# camelCase keys of the plain configuration record
_KEY_ALIASES: dict[str, str] = {
    "apiKey": "api_key",
    "modelId": "model_id",
    "maxTokens": "max_tokens",
    "customUrl": "custom_url",
    "siteUrl": "site_url",
    "siteName": "site_name",
    "toolUsage": "tool_usage",
    "multiAgent": "multi_agent",
    "browserAgent": "browser_agent",
    "freeModel": "free_model",
    "freeMaxTokens": "free_max_tokens",
    "quotaPhrases": "quota_phrases",
    "latencyScale": "latency_scale",
}

_SECTION_PREFIX = "AI:"


def legacy_model_field(provider: str) -> Optional[str]:
    """Return the vendor field kept in sync with ``model_id`` for ``provider``."""

    return _LEGACY_MODEL_FIELDS.get((provider or "").strip().lower())


@dataclass(frozen=True)
class ConfigChange:
    """Notification emitted when a provider's model identifier changes."""

    provider: str
    model_id: Optional[str]
    config: "ProviderConfig"


class ProviderConfig:
    """Plain configuration record of one provider.

    ``model_id`` is the vendor neutral model name. The vendor specific legacy
    field (``model`` for most vendors, ``version`` for Spark) mirrors it:
    whichever of the two was written last wins and is copied to the other.
    """

    __slots__ = (
        "provider",
        "api_key",
        "endpoint",
        "temperature",
        "max_tokens",
        "timeout",
        "extra",
        "on_change",
        "_model_id",
        "_model",
        "_version",
    )

    def __init__(
        self,
        provider: str,
        *,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        model_id: Optional[str] = None,
        model: Optional[str] = None,
        version: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.provider = provider
        self.api_key = api_key
        self.endpoint = endpoint
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.extra: dict[str, Any] = dict(extra or {})
        self.on_change: Optional[Callable[[ConfigChange], None]] = None
        self._model_id: Optional[str] = None
        self._model: Optional[str] = model
        self._version: Optional[str] = version

        legacy = legacy_model_field(provider)
        if model_id:
            self._model_id = model_id
            self._write_legacy(legacy, model_id)
        elif legacy is not None:
            self._model_id = self._read_legacy(legacy)

    # ------------------------------------------------------------------
    # Model identifier fields
    # ------------------------------------------------------------------
    @property
    def model_id(self) -> Optional[str]:
        return self._model_id

    @model_id.setter
    def model_id(self, value: Optional[str]) -> None:
        self._model_id = value
        self._write_legacy(legacy_model_field(self.provider), value)
        self._notify()

    @property
    def model(self) -> Optional[str]:
        return self._model

    @model.setter
    def model(self, value: Optional[str]) -> None:
        self._model = value
        if legacy_model_field(self.provider) == "model":
            self._model_id = value
            self._notify()

    @property
    def version(self) -> Optional[str]:
        return self._version

    @version.setter
    def version(self, value: Optional[str]) -> None:
        self._version = value
        if legacy_model_field(self.provider) == "version":
            self._model_id = value
            self._notify()

    def effective_model(self, default: Optional[str] = None) -> Optional[str]:
        """Return the model to request, falling back to ``default``."""

        return self._model_id or self._model or self._version or default

    # ------------------------------------------------------------------
    # Conversion helpers
    # ------------------------------------------------------------------
    @classmethod
    def from_mapping(cls, provider: str, data: Mapping[str, Any]) -> "ProviderConfig":
        """Build a config from a plain record, accepting camelCase keys."""

        values = {_KEY_ALIASES.get(key, key): value for key, value in data.items()}
        known = {
            "api_key": _optional_str(values.pop("api_key", None)),
            "endpoint": _optional_str(values.pop("endpoint", None)),
            "model_id": _optional_str(values.pop("model_id", None)),
            "model": _optional_str(values.pop("model", None)),
            "version": _optional_str(values.pop("version", None)),
            "temperature": _optional_float(values.pop("temperature", None), "temperature"),
            "max_tokens": _optional_int(values.pop("max_tokens", None), "max_tokens"),
            "timeout": _optional_float(values.pop("timeout", None), "timeout"),
        }
        return cls(provider, extra=values, **known)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "api_key": self.api_key,
            "endpoint": self.endpoint,
            "model_id": self._model_id,
            "model": self._model,
            "version": self._version,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout,
        }
        payload = {key: value for key, value in payload.items() if value is not None}
        payload.update(self.extra)
        return payload

    def option(self, key: str, default: Any = None) -> Any:
        """Return a vendor specific option from ``extra``."""

        return self.extra.get(key, default)

    def __repr__(self) -> str:
        return (
            f"ProviderConfig(provider={self.provider!r}, endpoint={self.endpoint!r}, "
            f"model_id={self._model_id!r}, api_key={'***' if self.api_key else None})"
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _read_legacy(self, legacy: str) -> Optional[str]:
        return self._version if legacy == "version" else self._model

    def _write_legacy(self, legacy: Optional[str], value: Optional[str]) -> None:
        if legacy == "version":
            self._version = value
        elif legacy == "model":
            self._model = value

    def _notify(self) -> None:
        callback = self.on_change
        if callback is None:
            return
        callback(ConfigChange(provider=self.provider, model_id=self._model_id, config=self))


class AIConfig:
    """Encapsulates persistent configuration for all AI providers."""

    __slots__ = (
        "enabled",
        "default_provider",
        "timeout",
        "models",
        "_env_keys",
    )

    SECTION = "AI"

    def __init__(self) -> None:
        self.enabled: bool = True
        self.default_provider: str = "auto"
        self.timeout: Optional[float] = None
        self.models: dict[str, ProviderConfig] = {}
        self._env_keys: set[str] = set()

    def __iter__(self) -> Iterator[ProviderConfig]:
        return iter(self.models.values())

    def add_provider(self, config: ProviderConfig) -> ProviderConfig:
        """Append ``config``, keeping registration order stable."""

        self.models[config.provider] = config
        return config

    def provider(self, name: str) -> ProviderConfig:
        try:
            return self.models[name]
        except KeyError as exc:
            raise AiConfigError(f"Provider '{name}' is not configured.") from exc

    def api_key_from_env(self, name: str) -> bool:
        """Return ``True`` when the API key of ``name`` originates from an env var."""

        return name in self._env_keys

    # ------------------------------------------------------------------
    # Plain record
    # ------------------------------------------------------------------
    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AIConfig":
        """Build a configuration from ``{"models": {name: record}}``."""

        config = cls()
        models = data.get("models") or {}
        if not isinstance(models, Mapping):
            raise AiConfigError("AI configuration 'models' must be a mapping.")
        for name, record in models.items():
            if not isinstance(record, Mapping):
                raise AiConfigError(f"Configuration of provider '{name}' must be a mapping.")
            config.add_provider(ProviderConfig.from_mapping(name, record))
        if "default_provider" in data:
            config.default_provider = str(data["default_provider"] or "auto")
        config.apply_environment()
        return config

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def load_from_main_config(self, conf: _ConfigReader) -> None:
        """Populate the settings from a :class:`ConfigParser` like object."""

        section = self.SECTION
        if conf.has_section(section):
            try:
                self.enabled = conf.getboolean(section, "enabled", fallback=self.enabled)
            except ValueError:
                logger.warning("Invalid boolean for '%s:enabled' in AI config", section)
            self.default_provider = conf.get(section, "default_provider", fallback=self.default_provider)
            raw_timeout = conf.get(section, "timeout", fallback="")
            self.timeout = _optional_float(raw_timeout or None, "timeout")

        self.models = {}
        for name in conf.sections():
            if not name.startswith(_SECTION_PREFIX):
                continue
            provider = name[len(_SECTION_PREFIX):].strip()
            if not provider:
                continue
            self.add_provider(ProviderConfig.from_mapping(provider, _section_values(conf, name)))

        self.apply_environment()

    def save_to_main_config(self, conf: ConfigParser) -> None:
        """Persist the current settings into ``conf``."""

        section = self.SECTION
        if not conf.has_section(section):
            conf[section] = {}
        conf[section]["enabled"] = str(self.enabled)
        conf[section]["default_provider"] = str(self.default_provider)
        if self.timeout is not None:
            conf[section]["timeout"] = str(self.timeout)
        elif conf.has_option(section, "timeout"):
            conf.remove_option(section, "timeout")

        for name, provider in self.models.items():
            target = f"{_SECTION_PREFIX}{name}"
            if conf.has_section(target):
                conf.remove_section(target)
            conf.add_section(target)
            for key, value in provider.as_dict().items():
                if key == "api_key" and name in self._env_keys:
                    continue
                text = _serialise(value)
                try:
                    conf.set(target, key, text)
                except ValueError:
                    # Interpolating parsers reject a bare '%'
                    conf.set(target, key, text.replace("%", "%%"))

    def apply_environment(self) -> None:
        """Let vendor API key environment variables override stored keys."""

        self._env_keys.clear()
        for name, provider in self.models.items():
            variable = _ENV_API_KEYS.get(name.lower())
            if variable is None:
                continue
            env_key = os.environ.get(variable, "").strip()
            if not env_key:
                continue
            if provider.api_key:
                logger.debug("Ignoring stored API key of '%s' due to %s override", name, variable)
            provider.api_key = env_key
            self._env_keys.add(name)


def _section_values(conf: _ConfigReader, section: str) -> dict[str, str]:
    """Return the options set in ``section`` itself, skipping inherited defaults.

    Values are interpolated where possible; a value the parser cannot
    interpolate, such as an API key with a bare ``%``, is read verbatim.
    """

    defaults = conf.defaults()
    values: dict[str, str] = {}
    for key in conf.options(section):
        raw = conf.get(section, key, raw=True)
        if key in defaults and raw == defaults[key]:
            continue
        try:
            values[key] = conf.get(section, key)
        except InterpolationError:
            values[key] = raw
    return values


def _optional_str(value: Any) -> Optional[str]:
    cleaned = str(value).strip() if value is not None else ""
    return cleaned or None


def _optional_float(value: Any, option: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid float for '%s' in AI config", option)
        return None


def _optional_int(value: Any, option: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for '%s' in AI config", option)
        return None


def _serialise(value: Any) -> str:
    if isinstance(value, (list, tuple, set)):
        return ", ".join(str(item) for item in value)
    return str(value)
