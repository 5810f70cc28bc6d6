"""Reduce tool input schemas to the JSON Schema subset the LLM engine accepts.

The engine rejects several keywords outright, only reliably handles
string-typed enums, and fails with "too many states" once the combined
declarations grow too large. ``sanitize`` addresses the first two and strips
nested descriptions; ``build_tool_declaration`` applies the size policy on
top of it.
"""

import copy
import json
import re
from fnmatch import fnmatchcase
from typing import Any, Dict, Iterable, List

from ..models import SanitizedTool, ToolDescriptor

UNSUPPORTED_KEYWORDS = frozenset(
    {
        "$schema",
        "uniqueItems",
        "format",
        "pattern",
        "minLength",
        "maxLength",
        "minimum",
        "maximum",
        "exclusiveMinimum",
        "exclusiveMaximum",
        "multipleOf",
        "title",
        "default",
        "examples",
        "oneOf",
        "anyOf",
        "allOf",
    }
)

DEFINITION_KEYWORDS = ("definitions", "$defs")

# Keywords whose values are data, not subschemas.
LITERAL_KEYWORDS = frozenset({"enum", "const", "required", "type"})

MINIMAL_SCHEMA: Dict[str, Any] = {"type": "object"}

_WHITESPACE = re.compile(r"\s+")


def _enum_member(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _sanitize_node(node: Any, nested: bool) -> Any:
    if not isinstance(node, dict):
        return copy.deepcopy(node)

    result: Dict[str, Any] = {}
    for key, value in node.items():
        if key in UNSUPPORTED_KEYWORDS:
            continue
        if key == "description" and nested:
            continue

        if key == "properties" and isinstance(value, dict):
            result[key] = {
                name: _sanitize_node(prop, nested=True) for name, prop in value.items()
            }
        elif key == "items":
            if isinstance(value, list):
                # Tuple-form items collapse to the first element's schema.
                if value:
                    result[key] = _sanitize_node(value[0], nested=True)
            else:
                result[key] = _sanitize_node(value, nested=True)
        elif key == "additionalProperties" and isinstance(value, dict):
            result[key] = _sanitize_node(value, nested=True)
        elif key in DEFINITION_KEYWORDS and isinstance(value, dict):
            result[key] = {
                name: _sanitize_node(definition, nested=True)
                for name, definition in value.items()
            }
        elif key in LITERAL_KEYWORDS:
            result[key] = copy.deepcopy(value)
        elif isinstance(value, dict):
            result[key] = _sanitize_node(value, nested=True)
        elif isinstance(value, list):
            result[key] = [_sanitize_node(item, nested=True) for item in value]
        else:
            result[key] = value

    enum = result.get("enum")
    if isinstance(enum, list):
        result["enum"] = [_enum_member(v) for v in enum]
        result["type"] = "string"

    return result


def sanitize(schema: Any) -> Any:
    """Return a sanitized copy of ``schema``; the input is never modified.

    Args:
        schema: A JSON Schema node (normally the tool's ``inputSchema``).

    Returns:
        A newly built schema without unsupported keywords, with string enums
        and without descriptions below the top level. Non-dict input is
        returned as a copy.
    """
    return _sanitize_node(schema, nested=False)


def collapse_description(text: str | None, limit: int) -> str:
    """Collapse runs of whitespace and hard-truncate to ``limit`` characters."""
    collapsed = _WHITESPACE.sub(" ", text or "").strip()
    return collapsed[:limit].rstrip()


def is_critical(name: str, critical_names: Iterable[str]) -> bool:
    """True if ``name`` matches any entry of the allow-list (exact or fnmatch pattern)."""
    return any(fnmatchcase(name, pattern) for pattern in critical_names)


def build_tool_declaration(
    tool: ToolDescriptor,
    critical_names: Iterable[str],
    critical_description_limit: int = 1024,
    minimal_description_limit: int = 120,
    reduce_complexity: bool = True,
) -> SanitizedTool:
    """Turn a server tool descriptor into a declaration, applying the size policy.

    Critical tools keep their sanitized schema; every other tool is
    downgraded to ``{"type": "object"}`` with a short description so the
    total declaration stays under the engine's complexity ceiling.
    """
    if not reduce_complexity or is_critical(tool.name, critical_names):
        return SanitizedTool(
            name=tool.name,
            description=(tool.description or "")[:critical_description_limit],
            parameters=sanitize(tool.inputSchema or {}),
        )
    return SanitizedTool(
        name=tool.name,
        description=collapse_description(tool.description, minimal_description_limit),
        parameters=dict(MINIMAL_SCHEMA),
    )


def build_tool_declarations(
    tools: Iterable[ToolDescriptor],
    critical_names: Iterable[str],
    critical_description_limit: int = 1024,
    minimal_description_limit: int = 120,
    reduce_complexity: bool = True,
) -> List[SanitizedTool]:
    critical = list(critical_names)
    return [
        build_tool_declaration(
            tool,
            critical,
            critical_description_limit=critical_description_limit,
            minimal_description_limit=minimal_description_limit,
            reduce_complexity=reduce_complexity,
        )
        for tool in tools
    ]
