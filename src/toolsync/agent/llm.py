import json
import logging
from typing import Any, Dict, List, Literal, Protocol, Sequence

from openai import AsyncOpenAI

from ..models import ConversationTurn, FunctionCall, ModelResponse, SanitizedTool
from ..settings import get_settings

logger = logging.getLogger(__name__)

ToolChoice = Literal["auto", "required"]


class ToolModel(Protocol):
    """What the orchestrator needs from an LLM."""

    async def generate(
        self,
        transcript: Sequence[ConversationTurn],
        tools: Sequence[SanitizedTool],
        tool_choice: ToolChoice = "auto",
    ) -> ModelResponse:
        ...


def render_transcript(
    transcript: Sequence[ConversationTurn],
    system_prompt: str | None = None,
) -> List[Dict[str, Any]]:
    """Render conversation turns as chat-completion messages.

    ``model`` turns become assistant messages carrying their tool calls and
    a ``function`` turn expands into one ``tool`` message per result.
    """
    messages: List[Dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})

    for turn in transcript:
        if turn.role == "user":
            messages.append({"role": "user", "content": turn.text})
        elif turn.role == "model":
            message: Dict[str, Any] = {"role": "assistant", "content": turn.text or None}
            calls = turn.function_calls
            if calls:
                message["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.arguments, ensure_ascii=False),
                        },
                    }
                    for call in calls
                ]
            messages.append(message)
        elif turn.role == "function":
            for result in turn.function_results:
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": result.call_id,
                        "content": json.dumps(result.to_response(), ensure_ascii=False, default=str),
                    }
                )
        else:
            raise ValueError(f"Unknown conversation role: {turn.role}")
    return messages


def _parse_arguments(name: str, raw: str | None) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Invalid arguments for %s: %s", name, e)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def parse_completion(completion: Any) -> ModelResponse:
    """Convert a chat completion into a ModelResponse, keeping the model's parts in order."""
    if not completion.choices:
        return ModelResponse()
    message = completion.choices[0].message
    text = message.content or None

    calls: List[FunctionCall] = []
    for tool_call in message.tool_calls or []:
        function = tool_call.function
        calls.append(
            FunctionCall(
                name=function.name,
                arguments=_parse_arguments(function.name, function.arguments),
                id=tool_call.id,
            )
        )

    parts: List[Any] = [text] if text else []
    parts.extend(calls)
    return ModelResponse(text=text, parts=parts, function_calls=calls)


class OpenAIToolModel:
    """ToolModel backed by any OpenAI-compatible chat-completions endpoint."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        temperature: float | None = None,
        system_prompt: str | None = None,
    ) -> None:
        settings = get_settings()
        self._client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.http_timeout_seconds,
        )
        self.model = model or settings.model
        self.temperature = settings.temperature if temperature is None else temperature
        self.system_prompt = system_prompt

    async def generate(
        self,
        transcript: Sequence[ConversationTurn],
        tools: Sequence[SanitizedTool],
        tool_choice: ToolChoice = "auto",
    ) -> ModelResponse:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": render_transcript(transcript, self.system_prompt),
            "temperature": self.temperature,
        }
        if tools:
            kwargs["tools"] = [
                {"type": "function", "function": tool.to_declaration()} for tool in tools
            ]
            kwargs["tool_choice"] = tool_choice

        completion = await self._client.chat.completions.create(**kwargs)
        response = parse_completion(completion)
        logger.debug(
            "Model replied with %d function calls (text=%s)",
            len(response.function_calls),
            bool(response.text),
        )
        return response

    async def reply(
        self,
        transcript: Sequence[ConversationTurn],
        system_prompt: str | None = None,
    ) -> str | None:
        """Plain chat completion without tools."""
        completion = await self._client.chat.completions.create(
            model=self.model,
            messages=render_transcript(transcript, system_prompt or self.system_prompt),
            temperature=self.temperature,
        )
        return parse_completion(completion).text
