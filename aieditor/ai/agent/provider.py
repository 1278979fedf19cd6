"""Provider adapter exposing :class:`AgentZeroClient` through the common API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union

from aieditor.ai.agent.client import AgentZeroClient
from aieditor.ai.agent.options import AgentOptions
from aieditor.ai.agent.prompts import build_messages, tool_schemas
from aieditor.ai.ports import AiMessageListener
from aieditor.ai.providers.base import BaseProvider, ProviderContext

if TYPE_CHECKING:  # pragma: no cover - typing only
    from aieditor.ai.config import ProviderConfig

__all__ = ["AgentZeroProvider"]

logger = logging.getLogger(__name__)


class AgentZeroProvider(BaseProvider):
    """Agent Zero adapter; doubles as the local simulation mode without a key."""

    def __init__(
        self,
        name: str,
        config: "ProviderConfig",
        context: Optional[ProviderContext] = None,
        *,
        options: Optional[AgentOptions] = None,
    ) -> None:
        super().__init__(name, config, context)
        self._options = options or AgentOptions.from_provider_config(config)
        self._agent = AgentZeroClient(
            self._options,
            storage=self.context.storage,
            sink=self.context.sink,
            transport=self.context.transport,
            token_consumer=self.report_tokens,
        )

    @property
    def options(self) -> AgentOptions:
        return self._options

    @property
    def agent(self) -> AgentZeroClient:
        return self._agent

    @property
    def model(self) -> Optional[str]:
        return self._options.model

    def build_url(self) -> str:
        return self._options.endpoint

    def wrap_payload(self, prompt: str) -> dict[str, Any]:
        return self._agent.build_payload(build_messages(prompt), tools=tool_schemas(self._options))

    def build_client(self, url: str, listener: AiMessageListener) -> AgentZeroClient:
        """Return the shared agent client, pointed at ``url``."""

        self._agent.endpoint = url
        return self._agent

    def stop(self) -> None:
        self._agent.stop()

    async def _start(
        self,
        url: str,
        payload: Union[str, Mapping[str, Any]],
        listener: AiMessageListener,
    ) -> None:
        client = self.build_client(url, listener)
        logger.debug("Starting agent turn against %s", url)
        await client.start(payload, listener)
