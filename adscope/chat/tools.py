"""Search and filter tools the chat agent can call.

Every tool validates its arguments against a pydantic model, merges them onto
the caller's base filters, queries the store, and wraps the matches with
build_tool_result so the agent always sees the same shape.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from adscope.filters import ActiveFilterSet, DateRange, FilterFields, apply_filters, merge_filters
from adscope.llm.embeddings import Embedder
from adscope.storage.database import Database, StoreError
from adscope.storage.models import (
    CHANNELS,
    EMBEDDING_FIELDS,
    SENTIMENTS,
    VALUE_PROPS,
    VISUAL_STYLES,
    Campaign,
    Channel,
    EmbeddingField,
    normalize_choice,
    normalize_choices,
)

logger = logging.getLogger(__name__)

MAX_SUMMARY_CAMPAIGNS = 20
MAX_SNIPPET_LENGTH = 200
NO_RESULTS_SUMMARY = "No campaigns found."


class ToolExecutionError(RuntimeError):
    pass


class ToolValidationError(ToolExecutionError):
    pass


class UnknownToolError(ToolExecutionError):
    pass


class ToolResult(BaseModel):
    count: int
    summary_for_llm: str
    campaigns: list[Campaign] = []


def _summary_line(index: int, c: Campaign) -> str:
    snippet = " ".join(t for t in (c.campaign_text, c.full_campaign_text) if t)[:MAX_SNIPPET_LENGTH]
    parts = [
        f"Campaign {index}: {c.company or 'Unknown'}{f' ({c.brand})' if c.brand else ''}",
        f"Offer: {c.offer}" if c.offer and c.offer.strip() else None,
        f"Value props: {', '.join(c.key_value_props)}" if c.key_value_props else None,
        f"Sentiment: {c.imagery_sentiment}" if c.imagery_sentiment else None,
        f"Visual style: {c.imagery_visual_style}" if c.imagery_visual_style else None,
        f"Date: {c.capture_date.isoformat()}" if c.capture_date else None,
        f"Copy: {snippet}..." if snippet else None,
    ]
    return " | ".join(p for p in parts if p)


def build_tool_result(campaigns: list[Campaign]) -> ToolResult:
    """Build a consistent tool result from a list of campaigns.

    The summary narrates at most MAX_SUMMARY_CAMPAIGNS entries to keep the
    model context bounded; `campaigns` keeps the full list for the UI.
    """
    count = len(campaigns)
    if count == 0:
        return ToolResult(count=0, summary_for_llm=NO_RESULTS_SUMMARY, campaigns=[])

    lines = [f"Found {count} campaign(s)."]
    lines.extend(
        _summary_line(i, c) for i, c in enumerate(campaigns[:MAX_SUMMARY_CAMPAIGNS], start=1)
    )
    if count > MAX_SUMMARY_CAMPAIGNS:
        lines.append(f"... and {count - MAX_SUMMARY_CAMPAIGNS} more.")
    return ToolResult(count=count, summary_for_llm="\n".join(lines), campaigns=list(campaigns))


# --- Argument models ---


class _QueryArgs(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    query: str = Field(min_length=1)


class SemanticSearchArgs(_QueryArgs, FilterFields):
    embedding_field: EmbeddingField = "value_prop_embedding"

    @field_validator("embedding_field", mode="before")
    @classmethod
    def _normalize_field(cls, v):
        if v is None:
            return "value_prop_embedding"
        if isinstance(v, str) and not v.endswith("_embedding"):
            v = f"{v}_embedding"
        return normalize_choice(v, EMBEDDING_FIELDS)

    def overlay(self) -> ActiveFilterSet:
        return ActiveFilterSet(
            channel=self.channel,
            value_prop=self.value_prop,
            sentiment=self.sentiment,
            visual_style=self.visual_style,
        )


class FilterCampaignsArgs(FilterFields):
    date_range: DateRange | None = None
    has_offer: bool | None = None

    def overlay(self) -> ActiveFilterSet:
        return ActiveFilterSet(
            channel=self.channel,
            value_prop=self.value_prop,
            sentiment=self.sentiment,
            visual_style=self.visual_style,
            date_range=self.date_range,
        )


class SearchOffersArgs(_QueryArgs, FilterFields):
    def overlay(self) -> ActiveFilterSet:
        return ActiveFilterSet(
            channel=self.channel,
            value_prop=self.value_prop,
            sentiment=self.sentiment,
            visual_style=self.visual_style,
        )


class FullTextSearchArgs(_QueryArgs):
    channel: list[Channel] | None = None

    @field_validator("channel", mode="before")
    @classmethod
    def _normalize_channel(cls, v):
        if v is None:
            return None
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, list):
            raise ValueError("expected a list of strings")
        return normalize_choices(v, CHANNELS)


# --- JSON schemas shown to the model ---


def _enum_array(values: tuple[str, ...], description: str) -> dict:
    return {
        "type": "array",
        "items": {"type": "string", "enum": list(values)},
        "description": description,
    }


_CHANNEL_PARAM = _enum_array(CHANNELS, "Filter by channel")
_VALUE_PROP_PARAM = _enum_array(VALUE_PROPS, "Filter by key value proposition")
_SENTIMENT_PARAM = _enum_array(SENTIMENTS, "Filter by imagery sentiment")
_VISUAL_STYLE_PARAM = _enum_array(VISUAL_STYLES, "Filter by imagery visual style")


# --- Tools ---


@dataclass(frozen=True)
class ToolContext:
    """Shared dependencies and store limits for every tool."""
    db: Database
    embedder: Embedder
    similarity_threshold: float = 0.7
    similarity_limit: int = 20
    filter_limit: int = 50
    text_search_limit: int = 50
    offer_search_limit: int = 50


ArgsT = TypeVar("ArgsT", bound=BaseModel)


class CampaignTool(Generic[ArgsT]):
    name: ClassVar[str]
    description: ClassVar[str]
    parameters: ClassVar[dict]
    ArgsModel: ClassVar[type[BaseModel]]
    # Whether the tool's filter arguments are echoed back to the UI
    echoes_filters: ClassVar[bool] = False

    def __init__(self, ctx: ToolContext) -> None:
        self.ctx = ctx

    def schema(self) -> dict:
        return {"name": self.name, "description": self.description, "parameters": self.parameters}

    def parse_args(self, raw_args: dict[str, Any]) -> ArgsT:
        try:
            return self.ArgsModel.model_validate(raw_args)
        except ValidationError as exc:
            raise ToolValidationError(f"Invalid args for tool {self.name}: {exc}") from exc

    async def run(self, args: ArgsT, base_filters: ActiveFilterSet) -> ToolResult:
        raise NotImplementedError


class SemanticSearchTool(CampaignTool[SemanticSearchArgs]):
    name = "semantic_search"
    description = (
        "Search campaigns by meaning. Use for concept-based queries like \"travel benefits\", "
        "\"no fee offers\", \"campaigns about rewards\". Choose embedding_field: "
        "value_prop_embedding for value/offers, copy_embedding for text/copy, "
        "visual_embedding for imagery/style."
    )
    parameters = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Natural language search query"},
            "embedding_field": {
                "type": "string",
                "enum": list(EMBEDDING_FIELDS),
                "description": "Which embedding to search (default value_prop_embedding)",
            },
            "channel": _CHANNEL_PARAM,
            "value_prop": _VALUE_PROP_PARAM,
            "sentiment": _SENTIMENT_PARAM,
            "visual_style": _VISUAL_STYLE_PARAM,
        },
        "required": ["query"],
    }
    ArgsModel = SemanticSearchArgs

    async def run(self, args: SemanticSearchArgs, base_filters: ActiveFilterSet) -> ToolResult:
        merged = merge_filters(base_filters, args.overlay())
        query_vector = await self.ctx.embedder.embed(args.query)
        try:
            campaigns = await self.ctx.db.similarity_search(
                args.embedding_field,
                query_vector,
                merged,
                threshold=self.ctx.similarity_threshold,
                limit=self.ctx.similarity_limit,
            )
        except StoreError as e:
            logger.warning(f"Vector search failed, falling back to filtered query: {e}")
            campaigns = await self.ctx.db.filter_campaigns(merged, limit=self.ctx.filter_limit)
        # Sentiment, visual style and dates are not pushed down by the vector query
        return build_tool_result(apply_filters(campaigns, merged))


class FilterCampaignsTool(CampaignTool[FilterCampaignsArgs]):
    name = "filter_campaigns"
    description = (
        "Filter campaigns by structured database fields: channel, sentiment, value prop, "
        "visual style, date range, or whether they have an offer. Use when the user asks for "
        "specific dimensions (e.g. \"Instagram campaigns\", \"aspirational\", \"Cash Back\") or "
        "\"what are the offers from recent Cash Back, Premium campaigns\" (filter first, then "
        "answer from the result)."
    )
    parameters = {
        "type": "object",
        "properties": {
            "channel": _CHANNEL_PARAM,
            "value_prop": _VALUE_PROP_PARAM,
            "sentiment": _SENTIMENT_PARAM,
            "visual_style": _VISUAL_STYLE_PARAM,
            "date_range": {
                "type": "object",
                "properties": {
                    "start": {"type": "string", "description": "ISO date YYYY-MM-DD"},
                    "end": {"type": "string", "description": "ISO date YYYY-MM-DD"},
                },
            },
            "has_offer": {
                "type": "boolean",
                "description": "If true, only campaigns that have an offer value",
            },
        },
    }
    ArgsModel = FilterCampaignsArgs
    echoes_filters = True

    async def run(self, args: FilterCampaignsArgs, base_filters: ActiveFilterSet) -> ToolResult:
        merged = merge_filters(base_filters, args.overlay())
        campaigns = await self.ctx.db.filter_campaigns(merged, limit=self.ctx.filter_limit)
        if args.has_offer:
            campaigns = [c for c in campaigns if c.offer is not None and c.offer.strip()]
        return build_tool_result(campaigns)


class SearchOffersTool(CampaignTool[SearchOffersArgs]):
    name = "search_offers"
    description = (
        "Find campaigns whose offer text contains a word or phrase, e.g. \"0% APR\", "
        "\"$200 bonus\", \"annual fee\". Combine with structured filters to narrow the set."
    )
    parameters = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Text to look for inside the offer"},
            "channel": _CHANNEL_PARAM,
            "value_prop": _VALUE_PROP_PARAM,
            "sentiment": _SENTIMENT_PARAM,
            "visual_style": _VISUAL_STYLE_PARAM,
        },
        "required": ["query"],
    }
    ArgsModel = SearchOffersArgs
    echoes_filters = True

    async def run(self, args: SearchOffersArgs, base_filters: ActiveFilterSet) -> ToolResult:
        merged = merge_filters(base_filters, args.overlay())
        campaigns = await self.ctx.db.offer_search(
            args.query, merged, limit=self.ctx.offer_search_limit
        )
        return build_tool_result(campaigns)


class FullTextSearchTool(CampaignTool[FullTextSearchArgs]):
    name = "full_text_search"
    description = (
        "Search for exact words or phrases in campaign copy/text. Use when the user asks for "
        "campaigns that \"mention X\", \"say Y\", or contain specific wording."
    )
    parameters = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Words or phrase to search for in campaign text"},
            "channel": _enum_array(CHANNELS, "Optional filter by channel"),
        },
        "required": ["query"],
    }
    ArgsModel = FullTextSearchArgs

    async def run(self, args: FullTextSearchArgs, base_filters: ActiveFilterSet) -> ToolResult:
        # Only one filter dimension here: the tool's channels win over the base ones
        channels = args.channel or base_filters.channel or None
        campaigns = await self.ctx.db.text_search(
            args.query, channels=channels, limit=self.ctx.text_search_limit
        )
        return build_tool_result(campaigns)


TOOL_CLASSES: tuple[type[CampaignTool], ...] = (
    SemanticSearchTool,
    FilterCampaignsTool,
    SearchOffersTool,
    FullTextSearchTool,
)


class ToolRegistry:
    def __init__(self, tools: list[CampaignTool]) -> None:
        self._tools = {t.name: t for t in tools}

    @classmethod
    def from_context(cls, ctx: ToolContext) -> ToolRegistry:
        return cls([tool_cls(ctx) for tool_cls in TOOL_CLASSES])

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[dict]:
        return [t.schema() for t in self._tools.values()]

    def get(self, name: str) -> CampaignTool:
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(f"Unknown tool: {name}")
        return tool
