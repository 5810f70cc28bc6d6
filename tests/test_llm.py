import json
from types import SimpleNamespace
from typing import Any, List
from unittest.mock import AsyncMock, MagicMock

import pytest

from toolsync.agent.llm import OpenAIToolModel, parse_completion, render_transcript
from toolsync.models import ConversationTurn, FunctionCall, FunctionResult, SanitizedTool


def _completion(content: str | None = None, tool_calls: List[Any] | None = None) -> SimpleNamespace:
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _tool_call(call_id: str, name: str, arguments: str) -> SimpleNamespace:
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


def test_render_transcript_maps_roles() -> None:
    """user/model/function turns become user/assistant/tool messages."""
    call = FunctionCall(name="send_message", arguments={"text": "hi"}, id="call_1")
    transcript = [
        ConversationTurn.user("sync please"),
        ConversationTurn(role="model", parts=("Sending.", call)),
        ConversationTurn(
            role="function",
            parts=(FunctionResult(name="send_message", content={"ok": True}, call_id="call_1"),),
        ),
    ]
    messages = render_transcript(transcript, system_prompt="be brief")

    assert messages[0] == {"role": "system", "content": "be brief"}
    assert messages[1] == {"role": "user", "content": "sync please"}
    assert messages[2]["role"] == "assistant"
    assert messages[2]["content"] == "Sending."
    assert messages[2]["tool_calls"] == [
        {
            "id": "call_1",
            "type": "function",
            "function": {"name": "send_message", "arguments": '{"text": "hi"}'},
        }
    ]
    assert messages[3]["role"] == "tool"
    assert messages[3]["tool_call_id"] == "call_1"
    assert json.loads(messages[3]["content"]) == {"name": "send_message", "content": {"ok": True}}


def test_render_transcript_expands_function_turn_in_order() -> None:
    """Each result of a function turn becomes its own tool message, errors included."""
    turn = ConversationTurn(
        role="function",
        parts=(
            FunctionResult(name="a", content=1, call_id="c1"),
            FunctionResult(name="b", error="boom", call_id="c2"),
        ),
    )
    messages = render_transcript([turn])
    assert [m["tool_call_id"] for m in messages] == ["c1", "c2"]
    assert json.loads(messages[1]["content"]) == {"name": "b", "error": "boom"}


def test_render_transcript_rejects_unknown_roles() -> None:
    """Unknown roles are a programming error."""
    with pytest.raises(ValueError):
        render_transcript([ConversationTurn(role="system", parts=("x",))])


def test_parse_completion_keeps_text_and_calls() -> None:
    """Text and tool calls are both kept as parts, in emission order."""
    completion = _completion(
        "Let me check.",
        [_tool_call("c1", "get_card", '{"id": "42"}'), _tool_call("c2", "send_message", "")],
    )
    response = parse_completion(completion)

    assert response.text == "Let me check."
    assert response.function_calls == [
        FunctionCall(name="get_card", arguments={"id": "42"}, id="c1"),
        FunctionCall(name="send_message", arguments={}, id="c2"),
    ]
    assert response.parts == ["Let me check.", *response.function_calls]


def test_parse_completion_tolerates_invalid_arguments() -> None:
    """Unparsable arguments are replaced with an empty object."""
    response = parse_completion(_completion(None, [_tool_call("c1", "get_card", "{not json")]))
    assert response.function_calls[0].arguments == {}
    assert response.text is None


def test_parse_completion_without_choices() -> None:
    """An empty completion yields an empty response."""
    response = parse_completion(SimpleNamespace(choices=[]))
    assert response.function_calls == []
    assert response.text is None


@pytest.mark.asyncio
async def test_generate_wraps_declarations_and_passes_tool_choice() -> None:
    """Declarations are sent as function tools together with the requested tool_choice."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=_completion("done"))
    model = OpenAIToolModel(client=client, model="test-model", temperature=0.0)
    tool = SanitizedTool(name="send_message", description="Send", parameters={"type": "object"})

    response = await model.generate([ConversationTurn.user("hi")], [tool], "required")

    assert response.text == "done"
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["tool_choice"] == "required"
    assert kwargs["tools"] == [
        {
            "type": "function",
            "function": {"name": "send_message", "description": "Send", "parameters": {"type": "object"}},
        }
    ]


@pytest.mark.asyncio
async def test_generate_without_tools_omits_tool_arguments() -> None:
    """No tools means no tools/tool_choice arguments at all."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=_completion("hello"))
    model = OpenAIToolModel(client=client, model="m", temperature=0.0)

    await model.generate([ConversationTurn.user("hi")], [])

    kwargs = client.chat.completions.create.call_args.kwargs
    assert "tools" not in kwargs
    assert "tool_choice" not in kwargs


@pytest.mark.asyncio
async def test_reply_uses_system_prompt() -> None:
    """reply() sends a plain chat request with the given system prompt."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=_completion("Hakone is nice."))
    model = OpenAIToolModel(client=client, model="m", temperature=0.0)

    text = await model.reply([ConversationTurn.user("Where to go?")], system_prompt="short")

    assert text == "Hakone is nice."
    messages = client.chat.completions.create.call_args.kwargs["messages"]
    assert messages[0] == {"role": "system", "content": "short"}
