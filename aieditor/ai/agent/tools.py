"""Simulated handlers for the inline tool sub-protocol."""

from __future__ import annotations

import logging
import re
from typing import Awaitable, Callable
from urllib.parse import quote

from aieditor.ai.agent.memory import AgentMemory, extract_hashtags
from aieditor.ai.agent.session import StreamSession
from aieditor.ai.models import MessageStatus, ToolInvocation

__all__ = ["ToolDispatcher"]

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"https?://\S+")
_URL_HINT_RE = re.compile(r"(visit|browse|go to|navigate to|open) ([^.,]+)", re.IGNORECASE)

# Seconds of simulated latency, scaled by ``latency_scale``
SEARCH_DELAY = 1.5
SEARCH_RESULT_DELAY = 0.5
CODE_DELAY = 1.0
TERMINAL_DELAY = 0.8
DELEGATE_DELAY = 2.0
DELEGATE_REPORT_DELAY = 1.5
BROWSER_DELAY = 1.5


class _ToolTurn:
    """Emits handler messages; the last one is ``FINAL`` only when ``closing``."""

    __slots__ = ("session", "closing", "_scale")

    def __init__(self, session: StreamSession, closing: bool, scale: float) -> None:
        self.session = session
        self.closing = closing
        self._scale = scale

    def send(self, content: str) -> None:
        self.session.emit(content, MessageStatus.CONTINUE)

    def last(self, content: str) -> None:
        status = MessageStatus.FINAL if self.closing else MessageStatus.CONTINUE
        self.session.emit(content, status)

    async def pause(self, delay: float) -> bool:
        return await self.session.sleep(delay * self._scale)


class ToolDispatcher:
    """Route :class:`ToolInvocation` objects to their simulated handler."""

    def __init__(self, memory: AgentMemory, *, latency_scale: float = 1.0) -> None:
        self._memory = memory
        self._scale = max(0.0, latency_scale)
        self._sub_agents: set[str] = set()
        self._handlers: dict[str, Callable[[_ToolTurn, str], Awaitable[None]]] = {
            "search": self._search,
            "code": self._code,
            "terminal": self._terminal,
            "memory": self._remember,
            "delegate": self._delegate,
            "browser": self._browse,
        }

    @property
    def sub_agents(self) -> frozenset[str]:
        return frozenset(self._sub_agents)

    async def dispatch(self, invocation: ToolInvocation, session: StreamSession, *, closing: bool) -> None:
        """Run the handler of ``invocation`` and emit its messages."""

        turn = _ToolTurn(session, closing, self._scale)
        handler = self._handlers.get(invocation.name)
        if handler is None:
            logger.info("Unknown tool requested: %s", invocation.name)
            turn.last(f"I don't know how to use the tool: {invocation.name}")
            return

        logger.debug("Dispatching tool '%s'", invocation.name)
        try:
            await handler(turn, invocation.argument)
        except Exception:  # noqa: BLE001 - a failing tool must not end the turn
            logger.exception("Tool handler '%s' failed", invocation.name)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------
    async def _search(self, turn: _ToolTurn, query: str) -> None:
        turn.send(f"Searching for: {query}\n\n")
        if not await turn.pause(SEARCH_DELAY):
            return

        results = (
            (
                f"{query} - Wikipedia",
                f"This is a comprehensive overview of {query} including history, "
                "applications, and recent developments.",
                f"https://en.wikipedia.org/wiki/{query.replace(' ', '_')}",
            ),
            (
                f"Latest Research on {query}",
                f"New studies have shown significant advances in {query} during the past "
                "year, with implications for future development.",
                f"https://scholar.google.com/scholar?q={quote(query)}",
            ),
            (
                f"Understanding {query}: A Complete Guide",
                f"This guide explains {query} in simple terms with practical examples "
                "and applications for beginners and experts.",
                f"https://example.com/guide/{quote(query)}",
            ),
        )
        turn.send(f'Here are the search results for "{query}":\n\n')
        for number, (title, snippet, url) in enumerate(results, start=1):
            turn.send(f"{number}. **{title}**\n   {snippet}\n   URL: {url}\n\n")
            if not await turn.pause(SEARCH_RESULT_DELAY):
                return
        turn.last(
            "\nBased on these results, I can provide you with a summary of key "
            f"information about {query}. Would you like me to do that?"
        )

    async def _code(self, turn: _ToolTurn, content: str) -> None:
        language, _, code = content.partition("\n")
        language = language.strip().lower()
        turn.send(f"Executing {language} code:\n\n```{language}\n{code}\n```\n\n")
        if not await turn.pause(CODE_DELAY):
            return
        turn.last(
            f"Simulated execution of {language} code. In a real environment, "
            "this would execute the code and return the result."
        )

    async def _terminal(self, turn: _ToolTurn, command: str) -> None:
        turn.send(f"Executing command: {command}\n\n")
        if not await turn.pause(TERMINAL_DELAY):
            return

        if command.startswith(("ls", "dir")):
            turn.last("Output:\n```\ndocuments/\nimages/\nprojects/\nREADME.md\nsetup.sh\n```")
        elif command.startswith("echo"):
            turn.last(f"Output:\n```\n{command[5:]}\n```")
        elif command.startswith(("cat", "type")):
            parts = command.split()
            filename = parts[1] if len(parts) > 1 else ""
            turn.last(
                f"Output:\n```\nContents of {filename}...\nThis is a simulated file content.\n"
                "The actual command would show the real file contents.\n```"
            )
        else:
            turn.last(
                f'This is a simulated terminal. The command "{command}" would be '
                "executed in a real environment."
            )

    async def _remember(self, turn: _ToolTurn, content: str) -> None:
        tags = extract_hashtags(content)
        self._memory.append(content, tags)
        turn.send(f'I\'ve saved this to my memory: "{content}"')
        if tags:
            turn.last("\nTags: " + " ".join(f"#{tag}" for tag in sorted(tags)))
        else:
            turn.last("")

    async def _delegate(self, turn: _ToolTurn, content: str) -> None:
        agent, _, task = content.partition(":")
        agent = agent.strip()
        task = task.strip()
        if not agent or not task:
            turn.last("To delegate a task, please specify both an agent and a task.")
            return

        self._sub_agents.add(agent)
        turn.send(f'Delegating task to {agent}:\n"{task}"\n\n')
        if not await turn.pause(DELEGATE_DELAY):
            return
        turn.send(f'Agent {agent} is working on: "{task}"\n\n')
        if not await turn.pause(DELEGATE_REPORT_DELAY):
            return
        turn.last(
            f'Agent {agent} has completed the task and reports:\n\nI\'ve analyzed "{task}" '
            "and prepared a response. The task has been completed successfully. Here are "
            "the key points:\n\n1. Analyzed the requirements\n2. Executed the necessary "
            "steps\n3. Prepared the results\n\nWould you like me to explain the details "
            "or would you prefer a summary?"
        )

    async def _browse(self, turn: _ToolTurn, content: str) -> None:
        url = _find_url(content)
        if url is None:
            turn.last(
                "I couldn't find a valid URL in your request. Please provide a specific "
                "website to visit."
            )
            return

        turn.send(f"Browsing to: {url}\n\n")
        if not await turn.pause(BROWSER_DELAY):
            return
        turn.send(f"I've navigated to {url}. The page has loaded successfully.\n\n")
        turn.send("Here's a summary of the content I found:\n\n")

        if "wikipedia" in url:
            summary = (
                "This appears to be a Wikipedia article. The page contains:\n\n"
                "- A main header section with overview information\n"
                "- Table of contents with multiple sections\n"
                "- Several paragraphs of text explaining the topic\n"
                "- Images and diagrams illustrating key concepts\n"
                "- References and external links at the bottom\n\n"
                "Would you like me to extract specific information from this page?"
            )
        elif "github" in url:
            summary = (
                "This appears to be a GitHub repository. The page contains:\n\n"
                "- Repository name and description\n"
                "- README file with documentation\n"
                "- File structure and code listings\n"
                "- Commit history and contributor information\n"
                "- Issues and pull requests\n\n"
                "Would you like me to extract specific information from this repository?"
            )
        else:
            summary = (
                "The page contains various sections including headers, paragraphs of "
                "text, and some images. I can see navigation menus and what appears to "
                "be the main content section.\n\n"
                "Would you like me to extract specific information from this page?"
            )
        turn.last(summary)


def _find_url(content: str) -> str | None:
    match = _URL_RE.search(content)
    if match:
        return match.group(0)
    hint = _URL_HINT_RE.search(content)
    if hint:
        return "https://www.{0}.com".format(re.sub(r"\s+", "", hint.group(2).strip()))
    return None
