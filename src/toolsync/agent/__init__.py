"""Tool-calling layer: schema sanitizing, tool catalog, LLM adapter and the turn loop."""

from .agent import (
    ToolCallOrchestrator,
    ToolSyncService,
    get_service,
)
from .llm import OpenAIToolModel
from .schema import sanitize
from .tools import ToolCatalog

__all__ = [
    "OpenAIToolModel",
    "ToolCallOrchestrator",
    "ToolCatalog",
    "ToolSyncService",
    "get_service",
    "sanitize",
]
