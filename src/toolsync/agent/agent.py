import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Sequence

import httpx

from ..errors import OrchestrationError, ToolSyncError, TransportError
from ..models import (
    ConversationTurn,
    FunctionResult,
    OrchestrationResult,
    SanitizedTool,
)
from ..services.rpc import RpcClient
from ..services.session import SessionManager
from ..settings import Settings, get_settings
from .llm import OpenAIToolModel, ToolChoice, ToolModel
from .tools import ToolCatalog

logger = logging.getLogger(__name__)

ToolExecutor = Callable[[str, Dict[str, Any]], Awaitable[Any]]


class ToolCallOrchestrator:
    """Bounded model <-> tool loop.

    Each turn asks the model for a reply; requested calls are executed one
    after another in the order the model emitted them and their results are
    fed back as a single ``function`` turn. The loop ends when the model
    stops calling tools or after ``max_turns`` turns.
    """

    def __init__(
        self,
        model: ToolModel,
        execute: ToolExecutor,
        max_turns: int = 5,
        tool_choice: ToolChoice = "auto",
    ) -> None:
        self._model = model
        self._execute = execute
        self.max_turns = max_turns
        self.tool_choice = tool_choice

    async def _run_call(self, name: str, arguments: Dict[str, Any], call_id: str | None) -> FunctionResult:
        try:
            content = await self._execute(name, arguments)
        except Exception as e:
            logger.error("Tool execution failed for %s: %s", name, e)
            return FunctionResult(name=name, error=str(e), call_id=call_id)
        return FunctionResult(name=name, content=content, call_id=call_id)

    async def run(
        self,
        transcript: Sequence[ConversationTurn],
        tools: Sequence[SanitizedTool],
    ) -> OrchestrationResult:
        """Drive the loop from ``transcript`` and return the extended transcript.

        Args:
            transcript: Initial turns (usually a single user turn).
            tools: Declarations offered to the model on every turn.

        Returns:
            OrchestrationResult: Full transcript, the model's final text (if
                it stopped on its own) and the number of turns taken.
        """
        history: List[ConversationTurn] = list(transcript)
        result = OrchestrationResult(transcript=history)

        for turn in range(1, self.max_turns + 1):
            result.turns = turn
            response = await self._model.generate(history, tools, self.tool_choice)
            calls = response.function_calls
            if not calls:
                result.final_text = response.text
                logger.info("Model finished after %d turn(s)", turn)
                break

            history.append(ConversationTurn(role="model", parts=tuple(response.parts)))

            results: List[FunctionResult] = []
            for call in calls:
                results.append(await self._run_call(call.name, call.arguments, call.id))
            history.append(ConversationTurn(role="function", parts=tuple(results)))
            logger.info(
                "Turn %d: executed %s",
                turn,
                ", ".join(r.name + (" (error)" if r.is_error else "") for r in results),
            )
        else:
            logger.warning("Stopped tool loop after reaching max_turns=%d", self.max_turns)

        return result


class ToolSyncService:
    """Connects a tool server to the model for one webhook invocation at a time."""

    def __init__(
        self,
        model: OpenAIToolModel | None = None,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._model = model
        self._transport = transport

    @property
    def model(self) -> OpenAIToolModel:
        if self._model is None:
            self._model = OpenAIToolModel()
        return self._model

    async def _sync(self, endpoint: str, token: str, prompt: str) -> OrchestrationResult:
        settings = self._settings
        async with httpx.AsyncClient(
            timeout=settings.http_timeout_seconds,
            transport=self._transport,
        ) as http:
            session = SessionManager.with_fallback(settings.generate_session_id_fallback)
            rpc = RpcClient(http, endpoint, token, session)
            catalog = ToolCatalog(rpc, settings)

            await catalog.initialize()
            tools = await catalog.list_tools()
            declarations = catalog.build_declarations(tools)

            orchestrator = ToolCallOrchestrator(
                self.model,
                catalog.call_tool,
                max_turns=settings.max_turns,
                tool_choice=settings.tool_choice,
            )
            return await orchestrator.run([ConversationTurn.user(prompt)], declarations)

    async def sync(self, endpoint: str, token: str, prompt: str) -> OrchestrationResult:
        """Handshake, list tools, and run the tool loop under the invocation deadline.

        Raises:
            TransportError: On RPC failure or when the deadline expires.
            OrchestrationError: For any other failure of the flow.
        """
        deadline = self._settings.invocation_deadline_seconds
        try:
            return await asyncio.wait_for(self._sync(endpoint, token, prompt), timeout=deadline)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Tool sync exceeded deadline of {deadline}s") from e
        except ToolSyncError:
            raise
        except Exception as e:
            raise OrchestrationError(f"Tool sync failed: {e}") from e

    async def chat(
        self,
        history: Sequence[Dict[str, Any]],
        message: str,
    ) -> str | None:
        """Answer a chat message given prior webhook messages (bot -> model, others -> user)."""
        transcript: List[ConversationTurn] = []
        for item in history:
            actor = item.get("actor") or {}
            role = "model" if actor.get("type") == "BOT" else "user"
            transcript.append(ConversationTurn(role=role, parts=(str(item.get("text") or ""),)))
        transcript.append(ConversationTurn.user(message))
        return await self.model.reply(transcript, system_prompt=self._settings.chat_system_prompt)


_SERVICE: ToolSyncService | None = None


def get_service() -> ToolSyncService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = ToolSyncService()
    return _SERVICE


__all__ = [
    "ToolCallOrchestrator",
    "ToolExecutor",
    "ToolSyncService",
    "get_service",
]
