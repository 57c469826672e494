from __future__ import annotations

import itertools
import json
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

from adscope.chat.tools import ToolContext, ToolRegistry
from adscope.llm.embeddings import Embedder
from adscope.llm.models import ChatMessage, ChatTurn, ToolCall
from adscope.llm.provider import LLMProvider
from adscope.storage.database import Database
from adscope.storage.models import Campaign, CampaignEmbedding

DIMENSIONS = 4

_clock = itertools.count()
_BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


def make_campaign(**overrides) -> Campaign:
    """A populated campaign; each call is created one minute after the last."""
    data = {
        "id": uuid.uuid4().hex,
        "created_at": _BASE_TIME + timedelta(minutes=next(_clock)),
        "company": "Acme Bank",
        "brand": "Acme Rewards Card",
        "channel": "instagram",
        "primary_product": "Credit card",
        "offer": "Earn 2% cash back on every purchase",
        "incentives": ["2% cash back"],
        "key_value_props": ["Cash Back / Rewards"],
        "campaign_text": "Get more back every day",
        "full_campaign_text": "Get more back every day with unlimited 2% cash back.",
        "imagery_sentiment": "Aspirational",
        "imagery_visual_style": "Lifestyle Photography",
        "imagery_primary_subject": "Young couple shopping",
        "imagery_demographics": ["millennials"],
        "capture_date": "2025-03-01",
        "image_urls": ["s3://campaign-images/acme-1.png"],
    }
    data.update(overrides)
    return Campaign.model_validate(data)


def vector(*values: float) -> list[float]:
    padded = list(values) + [0.0] * (DIMENSIONS - len(values))
    return padded[:DIMENSIONS]


async def open_store(
    tmp_path: Path,
    campaigns: list[Campaign] = (),
    embeddings: dict[str, CampaignEmbedding] | None = None,
) -> Database:
    db = Database(tmp_path / "campaigns.sqlite3", dimensions=DIMENSIONS)
    await db.connect()
    for c in campaigns:
        await db.insert_campaign(c, (embeddings or {}).get(c.id))
    return db


class StubEmbedder(Embedder):
    def __init__(self, vectors: dict[str, list[float]] | None = None, error: Exception | None = None) -> None:
        self.vectors = vectors or {}
        self.error = error
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.vectors.get(text, vector(1.0))

    @property
    def dimensions(self) -> int:
        return DIMENSIONS


def text_turn(text: str) -> ChatTurn:
    return ChatTurn(text=text, model="stub", provider="stub")


def tool_turn(*calls: tuple[str, dict | str]) -> ChatTurn:
    return ChatTurn(
        tool_calls=[
            ToolCall(
                id=f"call_{i}",
                name=name,
                arguments=args if isinstance(args, str) else json.dumps(args),
            )
            for i, (name, args) in enumerate(calls)
        ],
        model="stub",
        provider="stub",
    )


class ScriptedProvider(LLMProvider):
    """Replays a fixed list of turns; an exception in the list is raised instead."""

    def __init__(self, turns: list[ChatTurn | Exception] | None = None, repeat: ChatTurn | None = None) -> None:
        self._turns = list(turns or [])
        self._repeat = repeat
        self.requests: list[list[ChatMessage]] = []
        self.tools: list[dict] = []

    async def chat_turn(self, messages, tools, max_tokens=2048, temperature=0.2) -> ChatTurn:
        self.requests.append([m.model_copy(deep=True) for m in messages])
        self.tools = tools
        if self._turns:
            turn = self._turns.pop(0)
        elif self._repeat is not None:
            turn = self._repeat
        else:
            raise AssertionError("ScriptedProvider ran out of turns")
        if isinstance(turn, Exception):
            raise turn
        return turn

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return 0.0

    @property
    def provider_name(self) -> str:
        return "stub"

    @property
    def model_name(self) -> str:
        return "stub-model"


def make_registry(db: Database, embedder: Embedder | None = None, **limits) -> ToolRegistry:
    ctx = ToolContext(db=db, embedder=embedder or StubEmbedder(), **limits)
    return ToolRegistry.from_context(ctx)
