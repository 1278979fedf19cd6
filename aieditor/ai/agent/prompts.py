"""Prompt templates and tool schemas sent with Agent Zero requests."""

from __future__ import annotations

from typing import Any

from aieditor.ai.agent.options import AgentOptions
from aieditor.ai.models import MessageRole

__all__ = ["SYSTEM_PROMPT", "USER_PROMPT", "build_messages", "tool_schemas"]

SYSTEM_PROMPT = """\
You are Agent Zero, an advanced AI assistant with agentic capabilities in the AiEditor environment.

Capabilities:
- You can use tools to perform actions in the user's environment
- You can create and manage sub-agents for complex tasks
- You can store and retrieve information from your memory
- You can reason step-by-step to solve complex problems

Guidelines:
1. Break down complex tasks into smaller steps
2. Use appropriate tools for different tasks
3. Store important information in memory for future reference
4. Create sub-agents when specialized focus is needed
5. Always maintain a helpful, informative, and respectful tone

Think critically about the user's request and choose the most appropriate action:
- For research tasks, use the search tool
- For data processing, use the code tool
- For system operations, use the terminal tool
- For browsing websites, use the browser tool
- For important information, use the memory tool
- For specialized tasks, use the delegate tool"""

USER_PROMPT = """\
I need assistance with the following task:

{content}

Please help me accomplish this efficiently using your agent capabilities."""


def build_messages(prompt: str) -> list[dict[str, str]]:
    """Wrap ``prompt`` into the system and user messages of a turn."""

    return [
        {"role": MessageRole.SYSTEM.value, "content": SYSTEM_PROMPT},
        {"role": MessageRole.USER.value, "content": USER_PROMPT.replace("{content}", prompt, 1)},
    ]


def _function(name: str, description: str, properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


def _string(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


def tool_schemas(options: AgentOptions) -> list[dict[str, Any]]:
    """Return the function schemas enabled by ``options``."""

    tools: list[dict[str, Any]] = []
    if options.tool_usage:
        tools.append(_function(
            "search", "Search the web for information",
            {"query": _string("The search query")}, ["query"],
        ))
        tools.append(_function(
            "code", "Execute code in a sandbox environment",
            {"language": _string("The programming language"), "code": _string("The code to execute")},
            ["language", "code"],
        ))
        tools.append(_function(
            "terminal", "Execute terminal commands",
            {"command": _string("The command to execute")}, ["command"],
        ))
    if options.memory:
        tools.append(_function(
            "memory", "Save information to memory",
            {
                "content": _string("The content to save"),
                "tags": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Optional tags for categorization",
                },
            },
            ["content"],
        ))
    if options.browser_agent:
        tools.append(_function(
            "browser", "Browse the web and extract information",
            {
                "url": _string("The URL to navigate to"),
                "action": _string("Optional action to perform (click, extract, scroll)"),
                "selector": _string("Optional CSS selector for the action"),
            },
            ["url"],
        ))
    if options.multi_agent:
        tools.append(_function(
            "delegate", "Delegate a task to a sub-agent",
            {"agent": _string("The agent to delegate to"), "task": _string("The task description")},
            ["agent", "task"],
        ))
    return tools
