"""Local response simulator used when no network turn is possible."""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Sequence

from aieditor.ai.agent.session import StreamSession
from aieditor.ai.agent.tool_scanner import extract_tool_invocations
from aieditor.ai.agent.tools import ToolDispatcher
from aieditor.ai.models import MessageRole, MessageStatus, ToolInvocation

__all__ = ["ACKNOWLEDGEMENT_TEMPLATE", "ResponseSimulator", "last_user_message"]

logger = logging.getLogger(__name__)

ACKNOWLEDGEMENT_TEMPLATE = (
    'I\'ll help you with: "{content}"\n\n'
    "Based on your request, I'll assist you step by step. Let me know if you'd like "
    "me to use any specific tools like searching the web, executing code, or saving "
    "information to memory.\n\n"
    "What specific aspect would you like me to help with first?"
)

WORD_DELAY = 0.05

_SEARCH_INTENT = re.compile(r"search for ([^.\n]+)", re.IGNORECASE)
_CODE_INTENT = re.compile(r"write (a|some) ([a-z]+) code", re.IGNORECASE)
_REMEMBER_INTENT = re.compile(r"remember that (.*)", re.IGNORECASE)

_CODE_EXAMPLE = """
// Example {language} code
function hello() {{
    console.log("Hello, world!");
}}
"""


def last_user_message(messages: Sequence[Any]) -> str:
    """Return the text of the last user message, or of the last message."""

    for message in reversed(messages):
        if isinstance(message, str):
            return message
        if isinstance(message, Mapping) and message.get("role", MessageRole.USER.value) == MessageRole.USER.value:
            return str(message.get("content") or "")
    if messages and isinstance(messages[-1], Mapping):
        return str(messages[-1].get("content") or "")
    return ""


class ResponseSimulator:
    """Answer a turn locally without any network I/O."""

    def __init__(self, dispatcher: ToolDispatcher, *, latency_scale: float = 1.0) -> None:
        self._dispatcher = dispatcher
        self._scale = max(0.0, latency_scale)

    async def run(self, messages: Sequence[Any], session: StreamSession) -> None:
        content = last_user_message(messages)
        invocation = self.plan(content)
        if invocation is not None:
            logger.debug("Simulating tool '%s'", invocation.name)
            await self._dispatcher.dispatch(invocation, session, closing=True)
            return
        await self.acknowledge(content, session)

    def plan(self, content: str) -> ToolInvocation | None:
        """Pick the tool to simulate: explicit tag first, then intents."""

        tags = extract_tool_invocations(content)
        if tags:
            return tags[0]

        search = _SEARCH_INTENT.search(content)
        if search:
            return ToolInvocation(name="search", argument=search.group(1))
        code = _CODE_INTENT.search(content)
        if code:
            language = code.group(2)
            example = _CODE_EXAMPLE.format(language=language)
            return ToolInvocation(name="code", argument=f"{language}\n{example}")
        remember = _REMEMBER_INTENT.search(content)
        if remember:
            return ToolInvocation(name="memory", argument=remember.group(1))
        return None

    async def acknowledge(self, content: str, session: StreamSession) -> None:
        """Stream the acknowledgement template word by word."""

        words = ACKNOWLEDGEMENT_TEMPLATE.format(content=content).split(" ")
        last = len(words) - 1
        for position, word in enumerate(words):
            if position == last:
                session.emit(word, MessageStatus.FINAL)
                return
            status = MessageStatus.START if position == 0 else MessageStatus.CONTINUE
            session.emit(word + " ", status)
            if not await session.sleep(WORD_DELAY * self._scale):
                return
