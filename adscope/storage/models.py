from __future__ import annotations

import re
from datetime import date, datetime
from typing import Literal, get_args

from pydantic import BaseModel, field_validator

Channel = Literal["facebook", "instagram", "twitter", "email", "direct_mail"]
ValueProp = Literal[
    "No Fee / No Minimum",
    "Cash Back / Rewards",
    "Travel Benefits",
    "High-Yield Savings",
    "Credit Building",
    "Security / Fraud Protection",
]
Sentiment = Literal["Aspirational", "Trust-Building", "Urgent", "Playful", "Premium"]
VisualStyle = Literal[
    "Lifestyle Photography",
    "Minimalist Graphic",
    "Illustration",
    "Product-Centric",
    "Text-Heavy",
    "Abstract / Conceptual",
]
EmbeddingField = Literal["value_prop_embedding", "copy_embedding", "visual_embedding"]

CHANNELS: tuple[str, ...] = get_args(Channel)
VALUE_PROPS: tuple[str, ...] = get_args(ValueProp)
SENTIMENTS: tuple[str, ...] = get_args(Sentiment)
VISUAL_STYLES: tuple[str, ...] = get_args(VisualStyle)
EMBEDDING_FIELDS: tuple[str, ...] = get_args(EmbeddingField)

_SEPARATORS = re.compile(r"[\s_/\-]+")


def _choice_key(value: str) -> str:
    return _SEPARATORS.sub(" ", value).strip().lower()


def normalize_choice(value: str, options: tuple[str, ...]) -> str:
    """Map a loosely spelled value onto its canonical vocabulary entry.

    "Instagram", "direct mail" and "cash back rewards" resolve to
    "instagram", "direct_mail" and "Cash Back / Rewards". Raises ValueError
    for anything outside the vocabulary.
    """
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {type(value).__name__}")
    if value in options:
        return value
    key = _choice_key(value)
    for option in options:
        if _choice_key(option) == key:
            return option
    raise ValueError(f"'{value}' is not one of: {', '.join(options)}")


def normalize_choices(values: list[str], options: tuple[str, ...]) -> list[str]:
    """Normalize every entry, dropping duplicates while keeping order."""
    return list(dict.fromkeys(normalize_choice(v, options) for v in values))


class Campaign(BaseModel):
    """One analysed marketing asset."""
    id: str
    created_at: datetime
    company: str | None = None
    brand: str | None = None
    channel: Channel | None = None
    primary_product: str | None = None
    offer: str | None = None
    incentives: list[str] = []
    key_value_props: list[ValueProp] = []
    campaign_text: str | None = None
    full_campaign_text: str | None = None
    imagery_sentiment: Sentiment | None = None
    imagery_visual_style: VisualStyle | None = None
    imagery_primary_subject: str | None = None
    imagery_demographics: list[str] = []
    volume: int | None = None
    spend: float | None = None
    capture_date: date | None = None
    image_urls: list[str] = []  # storage object locators, in upload order

    @field_validator(
        "incentives", "key_value_props", "imagery_demographics", "image_urls", mode="before"
    )
    @classmethod
    def _none_as_empty(cls, v):
        return v if v is not None else []


class CampaignEmbedding(BaseModel):
    """The three facet vectors of a campaign. A missing vector is None."""
    campaign_id: str = ""
    value_prop_embedding: list[float] | None = None
    copy_embedding: list[float] | None = None
    visual_embedding: list[float] | None = None

    def vector(self, field: str) -> list[float] | None:
        if field not in EMBEDDING_FIELDS:
            raise ValueError(f"Unknown embedding field: {field}")
        return getattr(self, field)
