from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: str = "{}"  # raw JSON as produced by the model


class ChatMessage(BaseModel):
    """Provider-neutral conversation record."""
    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    tool_calls: list[ToolCall] = []   # assistant turns only
    tool_call_id: str | None = None   # tool turns only
    name: str | None = None           # tool name, tool turns only


class ChatTurn(BaseModel):
    """One model reply: a final answer or a batch of tool requests."""
    text: str | None = None
    tool_calls: list[ToolCall] = []
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    provider: str = ""
