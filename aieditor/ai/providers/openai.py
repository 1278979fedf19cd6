"""Adapter for the OpenAI chat-completions streaming API."""

from __future__ import annotations

import logging

from aieditor.ai.errors import AiConfigError

from .base import BaseProvider

logger = logging.getLogger(__name__)

_CHAT_COMPLETIONS_ENDPOINT = "/v1/chat/completions"


class OpenAIProvider(BaseProvider):
    """Provider implementation for OpenAI compatible HTTP endpoints."""

    default_endpoint = "https://api.openai.com"

    def build_url(self) -> str:
        custom = self.config.option("custom_url")
        if callable(custom):
            custom = custom()
        if custom:
            if not isinstance(custom, str):
                raise AiConfigError("OpenAI 'custom_url' must be a string or return one.")
            return custom
        return f"{self.endpoint}{_CHAT_COMPLETIONS_ENDPOINT}"

    def build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        api_key = (self.config.api_key or "").strip()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        else:
            logger.debug("OpenAI request sent without API key")
        return headers
