"""Error taxonomy for the tool-server bridge."""


class ToolSyncError(Exception):
    """Base class for every error raised by toolsync."""


class TransportError(ToolSyncError):
    """An RPC call failed on the wire.

    Raised for non-2xx statuses, streams that end without the correlated
    response, unparsable bodies, httpx failures and deadline expiry.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProtocolError(ToolSyncError):
    """The tool server sent something we could not interpret (e.g. a bad endpoint URL)."""


class ToolExecutionError(ToolSyncError):
    """A single tools/call invocation failed."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(f"{name}: {message}")
        self.name = name


class OrchestrationError(ToolSyncError):
    """The sync flow failed as a whole."""
