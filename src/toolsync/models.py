from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Tuple, Union

from mcp.types import Tool as ToolDescriptor


class SessionState(str, Enum):
    UNSET = "UNSET"
    SET = "SET"


@dataclass(frozen=True)
class SanitizedTool:
    """Tool declaration in the shape the LLM tool-calling engine accepts."""

    name: str
    description: str
    parameters: Dict[str, Any]

    def to_declaration(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass(frozen=True)
class FunctionCall:
    """A tool invocation requested by the model."""

    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    id: str | None = None


@dataclass(frozen=True)
class FunctionResult:
    """Outcome of one FunctionCall: either ``content`` or ``error`` is set."""

    name: str
    content: Any = None
    error: str | None = None
    call_id: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_response(self) -> Dict[str, Any]:
        if self.is_error:
            return {"name": self.name, "error": self.error}
        return {"name": self.name, "content": self.content}


Part = Union[str, FunctionCall, FunctionResult]


@dataclass(frozen=True)
class ConversationTurn:
    """One transcript entry attributed to the user, the model, or tool results."""

    role: str
    parts: Tuple[Part, ...] = ()

    @classmethod
    def user(cls, text: str) -> "ConversationTurn":
        return cls(role="user", parts=(text,))

    @property
    def text(self) -> str:
        return "".join(p for p in self.parts if isinstance(p, str))

    @property
    def function_calls(self) -> List[FunctionCall]:
        return [p for p in self.parts if isinstance(p, FunctionCall)]

    @property
    def function_results(self) -> List[FunctionResult]:
        return [p for p in self.parts if isinstance(p, FunctionResult)]


@dataclass
class ModelResponse:
    """Adapter-neutral view of an LLM reply: text, raw parts and requested calls."""

    text: str | None = None
    parts: List[Part] = field(default_factory=list)
    function_calls: List[FunctionCall] = field(default_factory=list)


@dataclass
class OrchestrationResult:
    """Transcript and final answer of one tool-calling run."""

    transcript: List[ConversationTurn] = field(default_factory=list)
    final_text: str | None = None
    turns: int = 0


__all__ = [
    "ConversationTurn",
    "FunctionCall",
    "FunctionResult",
    "ModelResponse",
    "OrchestrationResult",
    "Part",
    "SanitizedTool",
    "SessionState",
    "ToolDescriptor",
]
