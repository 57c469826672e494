"""Turn image-analysis records into stored campaigns with embeddings.

Image analysis and object-storage upload happen upstream; this module takes
their output (a CampaignAnalysis plus the uploaded object locators), maps it
onto a Campaign, embeds the three facet texts and inserts both records.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import AsyncIterator

from pydantic import BaseModel, Field

from adscope.llm.embeddings import Embedder
from adscope.storage.database import Database
from adscope.storage.files import list_json_files, load_json
from adscope.storage.models import (
    CHANNELS,
    SENTIMENTS,
    VALUE_PROPS,
    VISUAL_STYLES,
    Campaign,
    CampaignEmbedding,
    normalize_choice,
)

logger = logging.getLogger(__name__)


class ImageryAnalysis(BaseModel):
    sentiment: str | None = None
    visual_style: str | None = None
    primary_subject: str | None = None
    demographics: list[str] = []


class CampaignAnalysis(BaseModel):
    """Structured output of the image-analysis step for one campaign."""
    company: str | None = None
    brand: str | None = None
    channel: str | None = None
    primary_product: str | None = None
    offer: str | None = None
    incentives: list[str] = []
    key_value_props: list[str] = []
    campaign_text: str | None = None
    full_campaign_text: str | None = None
    imagery: ImageryAnalysis = Field(default_factory=ImageryAnalysis)
    volume: int | None = None
    spend: float | None = None
    capture_date: date | None = None
    image_urls: list[str] = []


@dataclass
class IngestProgress:
    total: int = 0
    completed: int = 0
    failed: int = 0
    current_file: str = ""
    errors: list[str] = field(default_factory=list)


def _lenient_choice(value: str | None, options: tuple[str, ...], label: str) -> str | None:
    """Canonical vocabulary value, or None (with a warning) when out of vocabulary."""
    if not value:
        return None
    try:
        return normalize_choice(value, options)
    except ValueError:
        logger.warning(f"Dropping out-of-vocabulary {label}: {value!r}")
        return None


def build_campaign(
    analysis: CampaignAnalysis,
    image_urls: list[str] | None = None,
    capture_date: date | None = None,
) -> Campaign:
    value_props = [
        vp for vp in (
            _lenient_choice(v, VALUE_PROPS, "value prop") for v in analysis.key_value_props
        ) if vp
    ]
    return Campaign(
        id=uuid.uuid4().hex,
        created_at=datetime.now(timezone.utc),
        company=analysis.company,
        brand=analysis.brand,
        channel=_lenient_choice(analysis.channel, CHANNELS, "channel"),
        primary_product=analysis.primary_product,
        offer=analysis.offer or None,
        incentives=analysis.incentives,
        key_value_props=list(dict.fromkeys(value_props)),
        campaign_text=analysis.campaign_text,
        full_campaign_text=analysis.full_campaign_text,
        imagery_sentiment=_lenient_choice(analysis.imagery.sentiment, SENTIMENTS, "sentiment"),
        imagery_visual_style=_lenient_choice(
            analysis.imagery.visual_style, VISUAL_STYLES, "visual style"
        ),
        imagery_primary_subject=analysis.imagery.primary_subject,
        imagery_demographics=analysis.imagery.demographics,
        volume=analysis.volume,
        spend=analysis.spend,
        # Today's date when the asset carries none
        capture_date=capture_date or analysis.capture_date or date.today(),
        image_urls=image_urls if image_urls is not None else analysis.image_urls,
    )


def embedding_texts(campaign: Campaign) -> dict[str, str | None]:
    """Source text for each facet vector; None where there is nothing to embed."""

    def _join(parts: list[str | None], sep: str) -> str | None:
        text = sep.join(p.strip() for p in parts if p and p.strip())
        return text or None

    return {
        "value_prop_embedding": _join([", ".join(campaign.key_value_props), campaign.offer], " "),
        "copy_embedding": _join([campaign.campaign_text, campaign.full_campaign_text], " "),
        "visual_embedding": _join(
            [
                campaign.imagery_visual_style,
                campaign.imagery_primary_subject,
                campaign.imagery_sentiment,
            ],
            ". ",
        ),
    }


async def embed_campaign(campaign: Campaign, embedder: Embedder) -> CampaignEmbedding:
    vectors = {}
    for name, text in embedding_texts(campaign).items():
        vectors[name] = await embedder.embed(text) if text else None
    return CampaignEmbedding(campaign_id=campaign.id, **vectors)


async def ingest_analysis(
    db: Database,
    embedder: Embedder,
    analysis: CampaignAnalysis,
    image_urls: list[str] | None = None,
) -> Campaign:
    """Store one analysed campaign and its embeddings."""
    campaign = build_campaign(analysis, image_urls=image_urls)
    embedding = await embed_campaign(campaign, embedder)
    await db.insert_campaign(campaign, embedding)
    logger.info(f"Ingested campaign {campaign.id} ({campaign.company or 'Unknown'})")
    return campaign


async def ingest_directory(
    db: Database,
    embedder: Embedder,
    directory: Path,
) -> AsyncIterator[tuple[Campaign | None, IngestProgress]]:
    """Ingest every analysis JSON file in `directory`, yielding progress per file."""
    files = list_json_files(directory)
    progress = IngestProgress(total=len(files))
    logger.info(f"Ingesting {progress.total} analysis file(s) from {directory}")

    for path in files:
        progress.current_file = path.name
        try:
            analysis = CampaignAnalysis.model_validate(load_json(path))
            campaign = await ingest_analysis(db, embedder, analysis)
        except Exception as e:
            progress.failed += 1
            error_msg = f"Failed to ingest {path.name}: {e}"
            progress.errors.append(error_msg)
            logger.error(error_msg)
            yield None, progress
            continue

        progress.completed += 1
        yield campaign, progress
