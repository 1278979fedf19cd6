"""Agent Zero: resilient streaming client with local simulation and tools."""

from .client import AgentState, AgentZeroClient
from .options import AgentOptions
from .provider import AgentZeroProvider
from .quota import QuotaPolicy
from .tool_scanner import ToolTagScanner, extract_tool_invocations

__all__ = [
    "AgentOptions",
    "AgentState",
    "AgentZeroClient",
    "AgentZeroProvider",
    "QuotaPolicy",
    "ToolTagScanner",
    "extract_tool_invocations",
]
