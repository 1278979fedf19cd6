"""Data transfer objects shared across the AI provider layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

__all__ = [
    "TOOL_NAMES",
    "ChatMessage",
    "MemoryItem",
    "MessageRole",
    "MessageStatus",
    "ModelOption",
    "ToolInvocation",
    "memory_list_adapter",
]

TOOL_NAMES: frozenset[str] = frozenset(
    {"search", "code", "terminal", "memory", "delegate", "browser"}
)


class MessageRole(str, Enum):
    """Author of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageStatus(IntEnum):
    """Lifecycle marker of a streamed message within one turn."""

    START = 0
    CONTINUE = 1
    FINAL = 2


@dataclass
class ChatMessage:
    """Incremental message delivered to a listener during a chat turn."""

    content: str
    index: int
    status: MessageStatus = MessageStatus.CONTINUE
    role: MessageRole = MessageRole.ASSISTANT

    def __post_init__(self) -> None:
        self.status = MessageStatus(self.status)
        self.role = MessageRole(self.role)

    @property
    def is_final(self) -> bool:
        return self.status == MessageStatus.FINAL

    def as_dict(self) -> dict[str, Any]:
        """Expose the message as a serialisable mapping."""

        return {
            "role": self.role.value,
            "content": self.content,
            "index": self.index,
            "status": int(self.status),
        }


def _new_memory_id() -> str:
    stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"mem-{stamp}-{uuid4().hex[:8]}"


class MemoryItem(BaseModel):
    """A single remembered fact or response owned by the agent client."""

    id: str = Field(default_factory=_new_memory_id)
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    tags: set[str] = Field(default_factory=set)


class ToolInvocation(BaseModel):
    """Tool request parsed from ``[tool:NAME]ARGUMENT[/tool]`` markup."""

    model_config = ConfigDict(frozen=True)

    name: str
    argument: str = ""

    @property
    def is_known(self) -> bool:
        return self.name in TOOL_NAMES


@dataclass(frozen=True)
class ModelOption:
    """Selectable model entry of a provider catalogue."""

    name: str
    value: str
    description: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "value": self.value}
        if self.description:
            payload["description"] = self.description
        return payload


memory_list_adapter: TypeAdapter[list[MemoryItem]] = TypeAdapter(list[MemoryItem])
