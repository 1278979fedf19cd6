"""Tests for the AI configuration records."""
from __future__ import annotations

import logging
from configparser import ConfigParser

import pytest

from aieditor.ai.agent.options import AgentOptions
from aieditor.ai.config import AIConfig, ConfigChange, ProviderConfig
from aieditor.ai.errors import AiConfigError


def test_provider_config_model_id_follows_legacy_field() -> None:
    config = ProviderConfig("openai", model="gpt-4")

    assert config.model_id == "gpt-4"

    config.model_id = "gpt-4o"
    assert config.model == "gpt-4o"

    config.model = "gpt-4o-mini"
    assert config.model_id == "gpt-4o-mini"


def test_provider_config_spark_uses_version_field() -> None:
    config = ProviderConfig("spark", version="v3.5")

    assert config.model_id == "v3.5"
    assert config.model is None

    config.model_id = "v4.0"
    assert config.version == "v4.0"

    config.version = "v3.1"
    assert config.model_id == "v3.1"


def test_provider_config_explicit_model_id_wins_over_legacy() -> None:
    config = ProviderConfig("openrouter", model="old", model_id="new")

    assert config.model == "new"
    assert config.model_id == "new"


def test_provider_config_publishes_changes() -> None:
    config = ProviderConfig("openai")
    changes: list[ConfigChange] = []
    config.on_change = changes.append

    config.model_id = "gpt-4o"
    config.temperature = 0.1

    assert len(changes) == 1
    assert changes[0].provider == "openai"
    assert changes[0].model_id == "gpt-4o"
    assert changes[0].config is config


def test_provider_config_from_mapping_accepts_camel_case() -> None:
    config = ProviderConfig.from_mapping(
        "openrouter",
        {
            "apiKey": "or-key",
            "modelId": "openai/gpt-4o",
            "maxTokens": "256",
            "temperature": "0.2",
            "siteUrl": "https://app.local",
            "siteName": "Editor",
        },
    )

    assert config.api_key == "or-key"
    assert config.model_id == "openai/gpt-4o"
    assert config.model == "openai/gpt-4o"
    assert config.max_tokens == 256
    assert config.temperature == pytest.approx(0.2)
    assert config.extra == {"site_url": "https://app.local", "site_name": "Editor"}
    assert "or-key" not in repr(config)


def test_provider_config_invalid_numbers_are_ignored(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="aieditor.ai.config"):
        config = ProviderConfig.from_mapping("openai", {"max_tokens": "lots", "temperature": "warm"})

    assert config.max_tokens is None
    assert config.temperature is None
    assert "Invalid integer" in caplog.text


def test_ai_config_from_mapping_preserves_order() -> None:
    cfg = AIConfig.from_mapping({
        "models": {
            "spark": {"version": "v3.5"},
            "openai": {"apiKey": "sk-test", "modelId": "gpt-4o"},
        }
    })

    assert list(cfg.models) == ["spark", "openai"]
    assert cfg.provider("openai").api_key == "sk-test"
    assert cfg.provider("spark").model_id == "v3.5"
    with pytest.raises(AiConfigError):
        cfg.provider("wenxin")


def test_ai_config_rejects_malformed_mapping() -> None:
    with pytest.raises(AiConfigError):
        AIConfig.from_mapping({"models": ["openai"]})


def test_ai_config_load_and_save_roundtrip() -> None:
    parser = ConfigParser()
    parser[AIConfig.SECTION] = {"enabled": "no", "default_provider": "openai", "timeout": "45"}
    parser["AI:openai"] = {"api_key": "stored-key", "model_id": "gpt-4o", "max_tokens": "512"}
    parser["AI:agentZero"] = {"memory": "false", "free_model": "free/model"}

    cfg = AIConfig()
    cfg.load_from_main_config(parser)

    assert cfg.enabled is False
    assert cfg.default_provider == "openai"
    assert cfg.timeout == 45
    assert list(cfg.models) == ["openai", "agentZero"]
    assert cfg.provider("openai").max_tokens == 512
    assert cfg.provider("agentZero").extra == {"memory": "false", "free_model": "free/model"}

    cfg.provider("openai").model_id = "gpt-4o-mini"
    out = ConfigParser()
    cfg.save_to_main_config(out)

    assert out[AIConfig.SECTION]["enabled"] == "False"
    assert out["AI:openai"]["model_id"] == "gpt-4o-mini"
    assert out["AI:openai"]["model"] == "gpt-4o-mini"
    assert out["AI:openai"]["api_key"] == "stored-key"
    assert out["AI:agentZero"]["free_model"] == "free/model"


def test_ai_config_keeps_percent_signs_and_ignores_defaults() -> None:
    parser = ConfigParser()
    parser.read_string(
        "[DEFAULT]\n"
        "colour = blue\n"
        "[AI:openai]\n"
        "api_key = sk-%abc\n"
        "model_id = gpt-4o\n"
    )

    cfg = AIConfig()
    cfg.load_from_main_config(parser)

    openai = cfg.provider("openai")
    assert openai.api_key == "sk-%abc"
    assert "colour" not in openai.extra

    out = ConfigParser()
    cfg.save_to_main_config(out)
    reloaded = AIConfig()
    reloaded.load_from_main_config(out)

    assert out["AI:openai"]["api_key"] == "sk-%abc"
    assert reloaded.provider("openai").api_key == "sk-%abc"


def test_ai_config_env_keys_override_and_are_not_saved(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "env-openai")
    monkeypatch.setenv("OPENROUTER_API_KEY", "env-router")
    parser = ConfigParser()
    parser["AI:openai"] = {"api_key": "stored-key"}
    parser["AI:agentZero"] = {}
    parser["AI:spark"] = {"api_key": "spark-key"}

    cfg = AIConfig()
    cfg.load_from_main_config(parser)

    assert cfg.provider("openai").api_key == "env-openai"
    assert cfg.provider("agentZero").api_key == "env-router"
    assert cfg.provider("spark").api_key == "spark-key"
    assert cfg.api_key_from_env("openai")
    assert not cfg.api_key_from_env("spark")

    out = ConfigParser()
    cfg.save_to_main_config(out)
    assert "api_key" not in out["AI:openai"]
    assert out["AI:spark"]["api_key"] == "spark-key"


def test_agent_options_from_provider_config() -> None:
    config = ProviderConfig.from_mapping(
        "agentZero",
        {
            "apiKey": " or-key ",
            "modelId": "anthropic/claude-3-haiku",
            "memory": "false",
            "toolUsage": "yes",
            "multiAgent": True,
            "freeModel": "free/model",
            "freeMaxTokens": "512",
            "quotaPhrases": "out of credits, quota exhausted",
            "latencyScale": "0",
        },
    )

    options = AgentOptions.from_provider_config(config)

    assert options.api_key == "or-key"
    assert options.model == "anthropic/claude-3-haiku"
    assert options.memory is False
    assert options.tool_usage is True
    assert options.multi_agent is True
    assert options.browser_agent is False
    assert options.free_model == "free/model"
    assert options.free_max_tokens == 512
    assert options.quota_phrases == ("out of credits", "quota exhausted")
    assert options.latency_scale == 0.0


def test_agent_options_defaults_without_config() -> None:
    options = AgentOptions.from_provider_config(ProviderConfig("agentZero"))

    assert options.api_key is None
    assert options.endpoint == "https://openrouter.ai/api/v1/chat/completions"
    assert options.model == "openai/gpt-4o"
    assert options.free_model == "deepseek/deepseek-r1-zero:free"
    assert "credits are required" in options.quota_phrases
