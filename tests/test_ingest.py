from __future__ import annotations

import asyncio
import json
from datetime import date

from adscope.ingest.pipeline import (
    CampaignAnalysis,
    build_campaign,
    embedding_texts,
    ingest_analysis,
    ingest_directory,
)
from support import StubEmbedder, make_campaign, open_store, vector


def _analysis(**overrides) -> CampaignAnalysis:
    data = {
        "company": "Northwind Bank",
        "brand": "Northwind Voyager",
        "channel": "Instagram",
        "primary_product": "Travel credit card",
        "offer": "75,000 bonus miles",
        "incentives": ["75,000 miles", "No foreign transaction fees"],
        "key_value_props": ["travel benefits", "credit-building", "Free Snacks"],
        "campaign_text": "Go further",
        "full_campaign_text": "Go further with 75,000 bonus miles.",
        "imagery": {
            "sentiment": "aspirational",
            "visual_style": "Watercolor",
            "primary_subject": "Beach at sunset",
            "demographics": ["adults 25-40"],
        },
        "capture_date": "2025-04-12",
    }
    data.update(overrides)
    return CampaignAnalysis.model_validate(data)


def test_build_campaign_normalizes_and_drops_unknown_vocabulary():
    campaign = build_campaign(_analysis(), image_urls=["s3://bucket/nw-1.png"])

    assert len(campaign.id) == 32
    assert campaign.channel == "instagram"
    assert campaign.key_value_props == ["Travel Benefits", "Credit Building"]
    assert campaign.imagery_sentiment == "Aspirational"
    assert campaign.imagery_visual_style is None
    assert campaign.imagery_primary_subject == "Beach at sunset"
    assert campaign.capture_date == date(2025, 4, 12)
    assert campaign.image_urls == ["s3://bucket/nw-1.png"]


def test_build_campaign_defaults_capture_date_to_today():
    campaign = build_campaign(_analysis(capture_date=None, offer="", channel="billboard"))
    assert campaign.capture_date == date.today()
    assert campaign.offer is None
    assert campaign.channel is None


def test_embedding_texts():
    campaign = make_campaign(
        key_value_props=["Travel Benefits", "No Fee / No Minimum"],
        offer="0% intro APR",
        campaign_text="Fly more",
        full_campaign_text=None,
        imagery_visual_style="Lifestyle Photography",
        imagery_primary_subject="Airport lounge",
        imagery_sentiment=None,
    )
    assert embedding_texts(campaign) == {
        "value_prop_embedding": "Travel Benefits, No Fee / No Minimum 0% intro APR",
        "copy_embedding": "Fly more",
        "visual_embedding": "Lifestyle Photography. Airport lounge",
    }

    empty = make_campaign(
        key_value_props=[], offer=None, campaign_text=None, full_campaign_text=None,
        imagery_visual_style=None, imagery_primary_subject=None, imagery_sentiment=None,
    )
    assert set(embedding_texts(empty).values()) == {None}


def test_ingest_analysis_stores_campaign_and_vectors(tmp_path):
    embedder = StubEmbedder()

    async def scenario():
        db = await open_store(tmp_path)
        try:
            campaign = await ingest_analysis(db, embedder, _analysis(), image_urls=["s3://a.png"])
            stored = await db.get_campaign(campaign.id)
            similar = await db.similarity_search("copy_embedding", vector(1.0))
            return campaign, stored, similar
        finally:
            await db.close()

    campaign, stored, similar = asyncio.run(scenario())
    assert stored == campaign
    assert [c.id for c in similar] == [campaign.id]
    assert len(embedder.calls) == 3


def test_ingest_directory_reports_progress_and_failures(tmp_path):
    analyses = tmp_path / "analyses"
    analyses.mkdir()
    (analyses / "a_good.json").write_text(json.dumps(_analysis().model_dump(mode="json")))
    (analyses / "b_list.json").write_text("[1, 2, 3]")
    (analyses / "c_broken.json").write_text("{not json")
    (analyses / "d_bad_spend.json").write_text(json.dumps({"company": "X", "spend": "lots"}))
    (analyses / "notes.txt").write_text("ignored")

    async def scenario():
        db = await open_store(tmp_path)
        try:
            events, progress = [], None
            async for campaign, progress in ingest_directory(db, StubEmbedder(), analyses):
                events.append((campaign, progress.current_file))
            return events, progress, await db.count_campaigns()
        finally:
            await db.close()

    events, progress, stored = asyncio.run(scenario())

    assert [name for _, name in events] == ["a_good.json", "b_list.json", "c_broken.json", "d_bad_spend.json"]
    assert [c is not None for c, _ in events] == [True, False, False, False]
    assert progress.total == 4
    assert progress.completed == 1
    assert progress.failed == 3
    assert len(progress.errors) == 3
    assert stored == 1


def test_ingest_missing_directory_yields_nothing(tmp_path):
    async def scenario():
        db = await open_store(tmp_path)
        try:
            return [item async for item in ingest_directory(db, StubEmbedder(), tmp_path / "nope")]
        finally:
            await db.close()

    assert asyncio.run(scenario()) == []
