"""Adapter for the OpenRouter aggregation API."""

from __future__ import annotations

from typing import Any, Mapping

from aieditor.ai.models import ModelOption

from .base import BaseProvider

__all__ = ["DEFAULT_OPENROUTER_MODELS", "OpenRouterProvider"]

DEFAULT_OPENROUTER_MODELS: tuple[ModelOption, ...] = (
    ModelOption("GPT-4o", "openai/gpt-4o", "Latest GPT-4 model with video capabilities"),
    ModelOption("GPT-4o Mini", "openai/gpt-4o-mini", "Smaller, faster version of GPT-4o"),
    ModelOption("GPT-4 Turbo", "openai/gpt-4-turbo", "High performance GPT-4 model"),
    ModelOption("Claude 3 Opus", "anthropic/claude-3-opus", "Anthropic's most powerful model"),
    ModelOption("Claude 3 Sonnet", "anthropic/claude-3-sonnet", "Balanced Claude model"),
    ModelOption("Claude 3 Haiku", "anthropic/claude-3-haiku", "Fast, efficient Claude model"),
    ModelOption("Gemini Pro", "google/gemini-pro", "Google's Gemini Pro model"),
    ModelOption("Llama 3 70B", "meta-llama/llama-3-70b-instruct", "Meta's largest Llama 3 model"),
    ModelOption("DEEPSEEK Coder", "deepseek-ai/deepseek-coder", "DeepSeek's coding-focused model"),
    ModelOption(
        "DEEPSEEK-R1-ZERO:FREE",
        "deepseek-ai/deepseek-r1-zero:free",
        "Free tier DeepSeek R1 model",
    ),
)


class OpenRouterProvider(BaseProvider):
    """Provider talking to ``openrouter.ai`` with attribution headers."""

    default_endpoint = "https://openrouter.ai/api/v1"
    default_model = "meta-llama/llama-3-8b-instruct"
    default_temperature = 0.7

    def build_url(self) -> str:
        return f"{self.endpoint}/chat/completions"

    def build_headers(self) -> dict[str, str]:
        config = self.config
        headers = {"Authorization": f"Bearer {config.api_key or ''}"}
        site_url = config.option("site_url")
        if site_url:
            headers["HTTP-Referer"] = str(site_url)
        site_name = config.option("site_name")
        if site_name:
            headers["X-Title"] = str(site_name)
        return headers

    def list_models(self) -> list[ModelOption]:
        """Return the configured model catalogue, or the default one."""

        configured = self.config.option("models")
        if not configured:
            return list(DEFAULT_OPENROUTER_MODELS)
        if isinstance(configured, str):
            configured = [item for item in configured.split(",") if item.strip()]
        return [_model_option(entry) for entry in configured]


def _model_option(entry: Any) -> ModelOption:
    if isinstance(entry, ModelOption):
        return entry
    if isinstance(entry, Mapping):
        value = str(entry.get("value", ""))
        return ModelOption(str(entry.get("name", value)), value, entry.get("description"))
    value = str(entry).strip()
    return ModelOption(value, value)
