"""Model-driven chat loop over the campaign tools.

The loop alternates between asking the model for its next turn and running
the tools it requested, feeding each tool's capped summary back into the
conversation, until the model answers or the iteration cap is hit.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from adscope.chat.tools import ToolContext, ToolRegistry, ToolResult
from adscope.config import Settings
from adscope.filters import ActiveFilterSet, merge_filters
from adscope.llm.anthropic_provider import AnthropicProvider
from adscope.llm.embeddings import Embedder
from adscope.llm.models import ChatMessage, ChatTurn, ToolCall
from adscope.llm.openai_provider import OpenAIProvider
from adscope.llm.provider import LLMProvider, UpstreamError
from adscope.storage.database import Database
from adscope.storage.models import CHANNELS, SENTIMENTS, VALUE_PROPS, VISUAL_STYLES, Campaign

logger = logging.getLogger(__name__)

FALLBACK_ANSWER = "I couldn't generate a response. Please try rephrasing your question."
MAX_TOOL_ERROR_LENGTH = 500


class AgentState(str, Enum):
    AWAITING_MODEL_TURN = "awaiting_model_turn"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


@dataclass
class ToolStep:
    name: str
    arguments: dict[str, Any]
    count: int | None = None
    error: str | None = None
    filters: ActiveFilterSet | None = None  # filter arguments echoed to the UI


@dataclass
class AgentOutcome:
    answer: str
    campaigns: list[Campaign] = field(default_factory=list)
    total: int = 0
    detected_filters: ActiveFilterSet = field(default_factory=ActiveFilterSet)
    iterations: int = 0
    steps: list[ToolStep] = field(default_factory=list)


def create_provider(settings: Settings) -> LLMProvider:
    """Create the configured LLM provider."""
    if settings.llm_provider == "anthropic":
        return AnthropicProvider(api_key=settings.anthropic_api_key, model=settings.anthropic_model)
    return OpenAIProvider(api_key=settings.openai_api_key, model=settings.openai_model)


def load_prompt_template(prompts_dir: Path, name: str) -> dict:
    """Load a prompt template from the prompts directory."""
    path = prompts_dir / f"{name}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Prompt template not found: {path}")
    with open(path) as f:
        return yaml.safe_load(f)


def render_system_prompt(template_str: str) -> str:
    """Fill the vocabulary placeholders of the system instruction."""
    values = {
        "channels": CHANNELS,
        "value_props": VALUE_PROPS,
        "sentiments": SENTIMENTS,
        "visual_styles": VISUAL_STYLES,
    }
    result = template_str
    for key, options in values.items():
        result = result.replace("{" + key + "}", ", ".join(f'"{o}"' for o in options))
    return result


def _parse_arguments(raw: str) -> dict[str, Any]:
    """Decode a tool call payload. Malformed JSON counts as no arguments."""
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Malformed tool arguments, using none: {raw[:200]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


class ChatAgent:
    def __init__(
        self,
        provider: LLMProvider,
        tools: ToolRegistry,
        system_prompt: str,
        max_iterations: int = 5,
        timeout: float = 30.0,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> None:
        self.provider = provider
        self.tools = tools
        self.system_prompt = system_prompt
        self.max_iterations = max_iterations
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def run(
        self,
        message: str,
        base_filters: ActiveFilterSet | None = None,
        history: list[ChatMessage] | None = None,
    ) -> AgentOutcome:
        """Answer one user message. Raises UpstreamError if a model turn fails."""
        base_filters = base_filters or ActiveFilterSet()
        buffer = [
            ChatMessage(role="system", content=self.system_prompt),
            *(history or []),
            ChatMessage(role="user", content=message),
        ]
        outcome = AgentOutcome(answer=FALLBACK_ANSWER)
        last_result: ToolResult | None = None
        pending: list[ToolCall] = []
        state = AgentState.AWAITING_MODEL_TURN

        while state is not AgentState.DONE:
            if state is AgentState.AWAITING_MODEL_TURN:
                if outcome.iterations >= self.max_iterations:
                    logger.warning(
                        f"No answer after {self.max_iterations} model turns, returning fallback"
                    )
                    outcome.answer = FALLBACK_ANSWER
                    state = AgentState.DONE
                    continue

                outcome.iterations += 1
                turn = await self._model_turn(buffer, outcome.iterations)
                if not turn.tool_calls:
                    outcome.answer = turn.text if turn.text and turn.text.strip() else FALLBACK_ANSWER
                    state = AgentState.DONE
                else:
                    buffer.append(
                        ChatMessage(role="assistant", content=turn.text or "", tool_calls=turn.tool_calls)
                    )
                    pending = list(turn.tool_calls)
                    state = AgentState.EXECUTING_TOOLS

            elif state is AgentState.EXECUTING_TOOLS:
                # Sequential, in request order; every call sees the same base filters
                for call in pending:
                    result, step, content = await self._execute_tool(call, base_filters)
                    outcome.steps.append(step)
                    buffer.append(
                        ChatMessage(role="tool", content=content, tool_call_id=call.id, name=call.name)
                    )
                    if result is not None:
                        last_result = result
                pending = []
                state = AgentState.AWAITING_MODEL_TURN

        if last_result is not None:
            outcome.campaigns = last_result.campaigns
            outcome.total = last_result.count
        outcome.detected_filters = self._detected_filters(outcome.steps)
        return outcome

    async def _model_turn(self, buffer: list[ChatMessage], iteration: int) -> ChatTurn:
        start = time.monotonic()
        try:
            turn = await asyncio.wait_for(
                self.provider.chat_turn(
                    buffer,
                    self.tools.schemas(),
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamError(f"Model turn timed out after {self.timeout}s") from e
        duration_ms = int((time.monotonic() - start) * 1000)
        cost = self.provider.estimate_cost(turn.input_tokens, turn.output_tokens)
        logger.info(
            f"Turn {iteration}/{self.max_iterations}: {len(turn.tool_calls)} tool call(s) "
            f"(${cost:.4f}, {duration_ms}ms)"
        )
        return turn

    async def _execute_tool(
        self, call: ToolCall, base_filters: ActiveFilterSet
    ) -> tuple[ToolResult | None, ToolStep, str]:
        """Run one requested tool. Failures become an error string for the model."""
        arguments = _parse_arguments(call.arguments)
        step = ToolStep(name=call.name, arguments=arguments)
        try:
            tool = self.tools.get(call.name)
            args = tool.parse_args(arguments)
            if tool.echoes_filters:
                step.filters = args.overlay()
            result = await asyncio.wait_for(tool.run(args, base_filters), timeout=self.timeout)
        except asyncio.TimeoutError:
            step.error = f"Tool {call.name} timed out after {self.timeout}s"
        except Exception as e:
            step.error = str(e) or type(e).__name__
        else:
            step.count = result.count
            logger.info(f"Tool {call.name} returned {result.count} campaign(s)")
            return result, step, result.summary_for_llm

        logger.warning(f"Tool {call.name} failed: {step.error}")
        return None, step, f"Error: {step.error[:MAX_TOOL_ERROR_LENGTH]}"

    @staticmethod
    def _detected_filters(steps: list[ToolStep]) -> ActiveFilterSet:
        detected = ActiveFilterSet()
        for step in steps:
            if step.filters is not None:
                detected = merge_filters(detected, step.filters)
        return detected


def create_agent(
    settings: Settings,
    db: Database,
    provider: LLMProvider,
    embedder: Embedder,
) -> ChatAgent:
    template = load_prompt_template(settings.prompts_dir, "chat_agent")
    ctx = ToolContext(
        db=db,
        embedder=embedder,
        similarity_threshold=settings.similarity_threshold,
        similarity_limit=settings.similarity_limit,
        filter_limit=settings.filter_limit,
        text_search_limit=settings.text_search_limit,
        offer_search_limit=settings.offer_search_limit,
    )
    return ChatAgent(
        provider=provider,
        tools=ToolRegistry.from_context(ctx),
        system_prompt=render_system_prompt(template["system"]),
        max_iterations=settings.chat_max_iterations,
        timeout=settings.chat_request_timeout,
        max_tokens=template.get("max_tokens", 2048),
        temperature=template.get("temperature", 0.2),
    )
