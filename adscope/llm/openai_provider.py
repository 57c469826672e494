from __future__ import annotations

import openai

from adscope.llm.models import ChatMessage, ChatTurn, ToolCall
from adscope.llm.provider import LLMProvider, UpstreamError


def _to_openai_message(message: ChatMessage) -> dict:
    if message.role == "tool":
        return {"role": "tool", "tool_call_id": message.tool_call_id, "content": message.content}
    if message.role == "assistant" and message.tool_calls:
        return {
            "role": "assistant",
            "content": message.content or None,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in message.tool_calls
            ],
        }
    return {"role": message.role, "content": message.content}


class OpenAIProvider(LLMProvider):
    # Pricing per million tokens: (input, output)
    _PRICING = {
        "gpt-4o": (2.5, 10.0),
        "gpt-4o-mini": (0.15, 0.60),
    }

    def __init__(self, api_key: str, model: str = "gpt-4o") -> None:
        self._client = openai.AsyncOpenAI(api_key=api_key)
        self._model = model

    async def chat_turn(
        self,
        messages: list[ChatMessage],
        tools: list[dict],
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> ChatTurn:
        kwargs = {}
        if tools:
            kwargs["tools"] = [{"type": "function", "function": t} for t in tools]
            kwargs["tool_choice"] = "auto"
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[_to_openai_message(m) for m in messages],
                **kwargs,
            )
        except openai.OpenAIError as e:
            raise UpstreamError(f"OpenAI chat completion failed: {e}") from e

        message = response.choices[0].message
        usage = response.usage
        return ChatTurn(
            text=message.content,
            tool_calls=[
                ToolCall(id=tc.id, name=tc.function.name, arguments=tc.function.arguments or "{}")
                for tc in (message.tool_calls or [])
            ],
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self._model,
            provider="openai",
        )

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        input_cost, output_cost = self._PRICING.get(self._model, (2.5, 10.0))
        return (input_tokens / 1_000_000 * input_cost
                + output_tokens / 1_000_000 * output_cost)

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model
