"""Session tracking for one bridge invocation.

A tool server can hand out its session id in a response header, in an
``endpoint`` event on an SSE stream, or not at all. Each of those sources is
a resolver; the manager asks every resolver about each observation and the
most recent candidate wins.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Protocol, Sequence

import httpx

from ..errors import ProtocolError
from ..models import SessionState

logger = logging.getLogger(__name__)

SESSION_HEADERS = ("x-session-id", "mcp-session-id")
SESSION_QUERY_PARAM = "sessionId"
ENDPOINT_EVENT = "endpoint"


@dataclass
class SessionObservation:
    """Something the RPC client saw that may carry a session id."""

    headers: Mapping[str, str] = field(default_factory=dict)
    event: str | None = None
    data: str | None = None
    base_url: str | None = None
    handshake_complete: bool = False


class SessionResolver(Protocol):
    def resolve(self, observation: SessionObservation, current_id: str | None) -> str | None:
        """Return a candidate session id, or None to abstain."""
        ...


class HeaderSessionResolver:
    """Reads ``x-session-id`` / ``mcp-session-id`` response headers."""

    def __init__(self, header_names: Sequence[str] = SESSION_HEADERS) -> None:
        self._header_names = tuple(header_names)

    def resolve(self, observation: SessionObservation, current_id: str | None) -> str | None:
        for name in self._header_names:
            value = observation.headers.get(name)
            if value:
                return value
        return None


class EndpointEventResolver:
    """Reads the ``sessionId`` query parameter of an ``endpoint`` event URL."""

    def resolve(self, observation: SessionObservation, current_id: str | None) -> str | None:
        if observation.event != ENDPOINT_EVENT or not observation.data:
            return None
        try:
            base = httpx.URL(observation.base_url or "")
            url = base.join(observation.data.strip())
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed endpoint URL {observation.data!r}: {e}") from e
        return url.params.get(SESSION_QUERY_PARAM) or None


class GeneratedSessionResolver:
    """Last resort: invent a session id once the handshake is done and none was given."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    def resolve(self, observation: SessionObservation, current_id: str | None) -> str | None:
        if not self.enabled or not observation.handshake_complete or current_id:
            return None
        return str(uuid.uuid4())


class SessionManager:
    """Owns the current session id of one invocation.

    The id goes UNSET -> SET on the first non-empty observation and is
    overwritten by any later differing one; it never returns to UNSET.
    """

    def __init__(self, resolvers: Sequence[SessionResolver] | None = None) -> None:
        self._id: str | None = None
        self._resolvers: List[SessionResolver] = list(
            resolvers
            if resolvers is not None
            else (HeaderSessionResolver(), EndpointEventResolver())
        )

    @classmethod
    def with_fallback(cls, generate: bool) -> "SessionManager":
        return cls(
            resolvers=[
                HeaderSessionResolver(),
                EndpointEventResolver(),
                GeneratedSessionResolver(enabled=generate),
            ]
        )

    @property
    def current_id(self) -> str | None:
        return self._id

    @property
    def state(self) -> SessionState:
        return SessionState.SET if self._id else SessionState.UNSET

    def observe(self, candidate: Any) -> bool:
        """Adopt ``candidate`` if it is a non-empty string different from the current id.

        Returns:
            bool: True if the current id changed.
        """
        if not isinstance(candidate, str) or not candidate or candidate == self._id:
            return False
        previous = self._id
        self._id = candidate
        if previous is None:
            logger.info("Session established: %s", candidate)
        else:
            logger.info("Session id superseded: %s -> %s", previous, candidate)
        return True

    def consult(self, observation: SessionObservation) -> str | None:
        """Run every resolver over ``observation`` in order and return the resulting id."""
        for resolver in self._resolvers:
            try:
                candidate = resolver.resolve(observation, self._id)
            except ProtocolError as e:
                logger.error("Ignoring session hint from %s: %s", type(resolver).__name__, e)
                continue
            self.observe(candidate)
        return self._id
