import logging
from itertools import count
from typing import Any, Dict, Iterable, List

from mcp.types import Implementation
from pydantic import ValidationError

from ..errors import ToolExecutionError, TransportError
from ..models import SanitizedTool, ToolDescriptor
from ..services.rpc import RpcClient
from ..services.session import SessionObservation
from ..settings import Settings, get_settings
from .schema import build_tool_declarations

logger = logging.getLogger(__name__)

INITIALIZE_ID = 0
LIST_TOOLS_ID = 2
FIRST_CALL_ID = 3


def _rpc_error(envelope: Any) -> str | None:
    if isinstance(envelope, dict) and envelope.get("error") is not None:
        error = envelope["error"]
        if isinstance(error, dict):
            return str(error.get("message") or error)
        return str(error)
    return None


class ToolCatalog:
    """Tool-server handshake, tool discovery and tool execution for one session."""

    def __init__(self, rpc: RpcClient, settings: Settings | None = None) -> None:
        self._rpc = rpc
        self._settings = settings or get_settings()
        self._call_ids = count(FIRST_CALL_ID)

    async def initialize(self) -> Any:
        """Run ``initialize`` then ``notifications/initialized``.

        Returns:
            The ``initialize`` response envelope.
        """
        settings = self._settings
        client_info = Implementation(name=settings.client_name, version=settings.client_version)
        params = {
            "protocolVersion": settings.protocol_version,
            "capabilities": {},
            "clientInfo": client_info.model_dump(exclude_none=True),
        }
        logger.info("Initializing tool server session at %s", self._rpc.endpoint)
        init = await self._rpc.call("initialize", params, id=INITIALIZE_ID)
        error = _rpc_error(init)
        if error:
            raise TransportError(f"Tool server rejected initialize: {error}")

        await self._rpc.notify("notifications/initialized", {})
        self._rpc.session.consult(SessionObservation(handshake_complete=True))
        logger.info("Tool server session ready (session=%s)", self._rpc.session.current_id)
        return init

    async def list_tools(self) -> List[ToolDescriptor]:
        """Fetch the server's tool descriptors via ``tools/list``."""
        envelope = await self._rpc.call("tools/list", {}, id=LIST_TOOLS_ID)
        error = _rpc_error(envelope)
        if error:
            raise TransportError(f"Tool server rejected tools/list: {error}")

        result = envelope.get("result") if isinstance(envelope, dict) else None
        raw_tools = result.get("tools") if isinstance(result, dict) else None
        tools: List[ToolDescriptor] = []
        for raw in raw_tools or []:
            try:
                tools.append(ToolDescriptor.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping malformed tool descriptor %r: %s", raw, e)
        logger.info("Tool server declared %d tools", len(tools))
        return tools

    def build_declarations(self, tools: Iterable[ToolDescriptor]) -> List[SanitizedTool]:
        settings = self._settings
        return build_tool_declarations(
            tools,
            settings.critical_tool_names,
            critical_description_limit=settings.critical_description_limit,
            minimal_description_limit=settings.minimal_description_limit,
            reduce_complexity=settings.reduce_tool_complexity,
        )

    async def call_tool(self, name: str, arguments: Dict[str, Any] | None) -> Any:
        """Invoke a tool through ``tools/call`` and return its raw result.

        Raises:
            ToolExecutionError: If the call fails on the wire or the server
                answers with a JSON-RPC error.
        """
        call_id = next(self._call_ids)
        logger.info("Calling tool %s (id=%d)", name, call_id)
        try:
            envelope = await self._rpc.call(
                "tools/call",
                {"name": name, "arguments": arguments or {}},
                id=call_id,
            )
        except TransportError as e:
            raise ToolExecutionError(name, str(e)) from e

        error = _rpc_error(envelope)
        if error:
            raise ToolExecutionError(name, error)
        if isinstance(envelope, dict) and "result" in envelope:
            return envelope["result"]
        return envelope
