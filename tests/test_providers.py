from __future__ import annotations

import pytest

from adscope.chat.agent import create_provider
from adscope.config import Settings
from adscope.llm.anthropic_provider import AnthropicProvider, _to_anthropic_messages
from adscope.llm.models import ChatMessage, ToolCall
from adscope.llm.openai_provider import OpenAIProvider, _to_openai_message


def _conversation() -> list[ChatMessage]:
    return [
        ChatMessage(role="system", content="You are an analyst."),
        ChatMessage(role="user", content="Instagram offers?"),
        ChatMessage(
            role="assistant",
            tool_calls=[
                ToolCall(id="a", name="filter_campaigns", arguments='{"channel": ["instagram"]}'),
                ToolCall(id="b", name="search_offers", arguments="not json"),
            ],
        ),
        ChatMessage(role="tool", content="Found 2 campaign(s).", tool_call_id="a", name="filter_campaigns"),
        ChatMessage(role="tool", content="No campaigns found.", tool_call_id="b", name="search_offers"),
    ]


def test_openai_messages():
    converted = [_to_openai_message(m) for m in _conversation()]

    assert converted[0] == {"role": "system", "content": "You are an analyst."}
    assistant = converted[2]
    assert assistant["content"] is None
    assert [c["function"]["name"] for c in assistant["tool_calls"]] == ["filter_campaigns", "search_offers"]
    assert assistant["tool_calls"][0]["type"] == "function"
    assert converted[3] == {"role": "tool", "tool_call_id": "a", "content": "Found 2 campaign(s)."}


def test_anthropic_messages_fold_tool_results_into_one_user_turn():
    system, converted = _to_anthropic_messages(_conversation())

    assert system == "You are an analyst."
    assert [m["role"] for m in converted] == ["user", "assistant", "user"]

    tool_uses = converted[1]["content"]
    assert [b["type"] for b in tool_uses] == ["tool_use", "tool_use"]
    assert tool_uses[0]["input"] == {"channel": ["instagram"]}
    assert tool_uses[1]["input"] == {}

    results = converted[2]["content"]
    assert [b["tool_use_id"] for b in results] == ["a", "b"]
    assert results[1]["content"] == "No campaigns found."


def test_estimate_cost():
    openai_provider = OpenAIProvider(api_key="test_key", model="gpt-4o-mini")
    assert openai_provider.estimate_cost(1_000_000, 1_000_000) == pytest.approx(0.75)

    anthropic_provider = AnthropicProvider(api_key="test_key", model="unknown-model")
    assert anthropic_provider.estimate_cost(1_000_000, 0) == 3.0


def test_create_provider_follows_settings():
    assert create_provider(Settings(llm_provider="anthropic")).provider_name == "anthropic"
    provider = create_provider(Settings(llm_provider="openai", openai_model="gpt-4o-mini"))
    assert provider.provider_name == "openai"
    assert provider.model_name == "gpt-4o-mini"
