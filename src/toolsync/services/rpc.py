"""JSON-RPC 2.0 over HTTP POST, answered with either a JSON body or an SSE stream."""

import json
import logging
from typing import Any, Dict

import httpx
from mcp.types import JSONRPCNotification, JSONRPCRequest

from ..errors import TransportError
from .session import SESSION_QUERY_PARAM, SessionManager, SessionObservation
from .sse import iter_frames

logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"
EVENT_STREAM = "text/event-stream"


def build_message(method: str, params: Dict[str, Any] | None, id: int | None) -> Dict[str, Any]:
    """Build the request body; ``id=None`` produces a notification."""
    if id is None:
        message = JSONRPCNotification(jsonrpc="2.0", method=method, params=params)
    else:
        message = JSONRPCRequest(jsonrpc="2.0", id=id, method=method, params=params)
    return message.model_dump(by_alias=True, mode="json", exclude_none=True)


class RpcClient:
    """Sends JSON-RPC calls to one tool-server endpoint within one session."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        endpoint: str,
        token: str,
        session: SessionManager,
    ) -> None:
        self._http = http
        self.endpoint = endpoint
        self._token = token
        self.session = session

    def _headers(self, session_id: str | None) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._token}",
            "Accept": f"application/json, {EVENT_STREAM}",
        }
        if session_id:
            headers[SESSION_HEADER] = session_id
        return headers

    async def call(
        self,
        method: str,
        params: Dict[str, Any] | None = None,
        id: int | None = None,
    ) -> Any:
        """Send ``method`` and return the correlated response.

        Args:
            method: JSON-RPC method name.
            params: Optional params object.
            id: Request id; None sends a notification.

        Returns:
            The parsed JSON envelope whose ``id`` matches, or None for
            notifications and empty bodies.

        Raises:
            TransportError: On non-2xx status, an unparsable body, a stream
                that ends without the correlated response, or any httpx failure.
        """
        session_id = self.session.current_id
        body = build_message(method, params, id)
        query = {SESSION_QUERY_PARAM: session_id} if session_id else None
        logger.debug("RPC %s id=%s session=%s", method, id, session_id)

        try:
            async with self._http.stream(
                "POST",
                self.endpoint,
                params=query,
                headers=self._headers(session_id),
                content=json.dumps(body),
            ) as response:
                self.session.consult(SessionObservation(headers=response.headers))

                if not response.is_success:
                    await response.aread()
                    raise TransportError(
                        f"Tool server request {method} failed: "
                        f"{response.status_code} {response.reason_phrase} - {response.text}",
                        status_code=response.status_code,
                        body=response.text,
                    )

                content_type = response.headers.get("content-type", "")
                if EVENT_STREAM in content_type:
                    return await self._read_stream(response, method, id)

                await response.aread()
                if id is None:
                    return None
                return self._parse_body(response.text, method)
        except httpx.HTTPError as e:
            raise TransportError(f"Tool server request {method} failed: {e}") from e

    async def notify(self, method: str, params: Dict[str, Any] | None = None) -> None:
        await self.call(method, params, id=None)

    async def _read_stream(self, response: httpx.Response, method: str, id: int | None) -> Any:
        async for frame in iter_frames(response.aiter_text()):
            self.session.consult(
                SessionObservation(event=frame.event, data=frame.data, base_url=self.endpoint)
            )
            if id is None:
                continue
            try:
                payload = json.loads(frame.data)
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict) and payload.get("id") == id:
                # Leaving the stream context closes the connection unread.
                return payload

        if id is None:
            return None
        raise TransportError(f"Tool server stream for {method} ended without response")

    @staticmethod
    def _parse_body(text: str, method: str) -> Any:
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise TransportError(f"Tool server returned invalid JSON for {method}: {e}", body=text) from e
