from __future__ import annotations

import json

import anthropic

from adscope.llm.models import ChatMessage, ChatTurn, ToolCall
from adscope.llm.provider import LLMProvider, UpstreamError


def _tool_input(arguments: str) -> dict:
    try:
        parsed = json.loads(arguments or "{}")
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _to_anthropic_messages(messages: list[ChatMessage]) -> tuple[str, list[dict]]:
    """Split out the system prompt and fold tool results into user turns."""
    system_parts: list[str] = []
    converted: list[dict] = []
    for m in messages:
        if m.role == "system":
            system_parts.append(m.content)
        elif m.role == "user":
            converted.append({"role": "user", "content": m.content})
        elif m.role == "assistant":
            blocks: list[dict] = []
            if m.content:
                blocks.append({"type": "text", "text": m.content})
            for call in m.tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": _tool_input(call.arguments),
                })
            converted.append({"role": "assistant", "content": blocks or m.content})
        else:
            block = {"type": "tool_result", "tool_use_id": m.tool_call_id, "content": m.content}
            prev = converted[-1] if converted else None
            # Results for one assistant turn must share a single user message
            if prev and prev["role"] == "user" and isinstance(prev["content"], list):
                prev["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})
    return "\n\n".join(system_parts), converted


class AnthropicProvider(LLMProvider):
    # Pricing per million tokens, default rates; overridden per model below
    _INPUT_COST_PER_M = 3.0
    _OUTPUT_COST_PER_M = 15.0

    # Per-model pricing
    _PRICING = {
        "claude-haiku-4-5-20251001": (1.0, 5.0),
        "claude-sonnet-4-5-20250929": (3.0, 15.0),
    }

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-5-20250929") -> None:
        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model

    async def chat_turn(
        self,
        messages: list[ChatMessage],
        tools: list[dict],
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> ChatTurn:
        system_prompt, converted = _to_anthropic_messages(messages)
        kwargs = {}
        if tools:
            kwargs["tools"] = [
                {"name": t["name"], "description": t["description"], "input_schema": t["parameters"]}
                for t in tools
            ]
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=converted,
                **kwargs,
            )
        except anthropic.AnthropicError as e:
            raise UpstreamError(f"Anthropic message call failed: {e}") from e

        texts = [b.text for b in response.content if b.type == "text"]
        calls = [
            ToolCall(id=b.id, name=b.name, arguments=json.dumps(b.input))
            for b in response.content
            if b.type == "tool_use"
        ]
        return ChatTurn(
            text="\n".join(texts) if texts else None,
            tool_calls=calls,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self._model,
            provider="anthropic",
        )

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        in_cost, out_cost = self._PRICING.get(
            self._model, (self._INPUT_COST_PER_M, self._OUTPUT_COST_PER_M)
        )
        return (input_tokens / 1_000_000 * in_cost
                + output_tokens / 1_000_000 * out_cost)

    @property
    def provider_name(self) -> str:
        return "anthropic"

    @property
    def model_name(self) -> str:
        return self._model
