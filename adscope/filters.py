"""Filter types and utilities for campaign filtering.

An ActiveFilterSet is OR within a field and AND across fields. A field that is
None (or an empty list) places no constraint on that dimension.
"""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, field_validator

from adscope.storage.models import (
    CHANNELS,
    SENTIMENTS,
    VALUE_PROPS,
    VISUAL_STYLES,
    Campaign,
    Channel,
    Sentiment,
    ValueProp,
    VisualStyle,
    normalize_choices,
)

LIST_FIELDS = ("channel", "value_prop", "sentiment", "visual_style")

_VOCABULARIES = {
    "channel": CHANNELS,
    "value_prop": VALUE_PROPS,
    "sentiment": SENTIMENTS,
    "visual_style": VISUAL_STYLES,
}


class DateRange(BaseModel):
    start: date | None = None
    end: date | None = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def _blank_as_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def is_empty(self) -> bool:
        return self.start is None and self.end is None


class FilterFields(BaseModel):
    """The four multi-valued filter dimensions, normalized onto their vocabularies."""
    channel: list[Channel] | None = None
    value_prop: list[ValueProp] | None = None
    sentiment: list[Sentiment] | None = None
    visual_style: list[VisualStyle] | None = None

    @field_validator(*LIST_FIELDS, mode="before")
    @classmethod
    def _normalize_vocabulary(cls, v, info):
        if v is None:
            return None
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, list):
            raise ValueError("expected a list of strings")
        return normalize_choices(v, _VOCABULARIES[info.field_name])


class ActiveFilterSet(FilterFields):
    date_range: DateRange | None = None

    @property
    def is_empty(self) -> bool:
        if any(getattr(self, name) for name in LIST_FIELDS):
            return False
        return self.date_range is None or self.date_range.is_empty


def merge_filters(base: ActiveFilterSet, overlay: ActiveFilterSet) -> ActiveFilterSet:
    """Merge two filter sets, with the overlay taking precedence per field.

    A field the overlay sets replaces the base field; an empty list (or a date
    range with no bounds) clears it. Fields the overlay leaves unset are kept
    from the base, so a chat turn can change one dimension without dropping
    filters the user picked in the UI.
    """
    merged = base.model_copy(deep=True)
    for name in LIST_FIELDS:
        value = getattr(overlay, name)
        if value is None:
            continue
        setattr(merged, name, list(value) or None)
    if overlay.date_range is not None:
        merged.date_range = None if overlay.date_range.is_empty else overlay.date_range.model_copy()
    return merged


def matches_filters(campaign: Campaign, filters: ActiveFilterSet) -> bool:
    """Check if a campaign satisfies every constrained dimension of the filters."""
    if filters.channel:
        if campaign.channel is None or campaign.channel not in filters.channel:
            return False

    if filters.value_prop:
        if not set(campaign.key_value_props) & set(filters.value_prop):
            return False

    if filters.sentiment:
        if campaign.imagery_sentiment is None or campaign.imagery_sentiment not in filters.sentiment:
            return False

    if filters.visual_style:
        if (
            campaign.imagery_visual_style is None
            or campaign.imagery_visual_style not in filters.visual_style
        ):
            return False

    date_range = filters.date_range
    if date_range is not None and not date_range.is_empty:
        captured = campaign.capture_date
        if captured is None:
            return False
        if date_range.start and captured < date_range.start:
            return False
        if date_range.end and captured > date_range.end:
            return False

    return True


def apply_filters(campaigns: list[Campaign], filters: ActiveFilterSet) -> list[Campaign]:
    """Narrow an already fetched list in memory, keeping its order."""
    if filters.is_empty:
        return list(campaigns)
    return [c for c in campaigns if matches_filters(c, filters)]
