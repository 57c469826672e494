from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from adscope.chat.responder import assemble_response
from adscope.filters import ActiveFilterSet
from adscope.storage.models import CHANNELS, EMBEDDING_FIELDS, SENTIMENTS, VALUE_PROPS, VISUAL_STYLES

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_db(request: Request):
    return request.app.state.db


def _get_agent(request: Request):
    return request.app.state.agent


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse({"error": error, "message": message}, status_code=status_code)


@router.post("/api/chat")
async def chat(request: Request, agent=Depends(_get_agent)):
    try:
        payload = await request.json()
    except ValueError:
        return _error(400, "Invalid request", "Request body must be a JSON object")
    if not isinstance(payload, dict):
        return _error(400, "Invalid request", "Request body must be a JSON object")

    message = payload.get("message")
    if not isinstance(message, str) or not message.strip():
        return _error(400, "Message is required", "Field 'message' must be a non-empty string")

    try:
        active_filters = ActiveFilterSet.model_validate(payload.get("activeFilters") or {})
    except ValidationError as e:
        return _error(400, "Invalid activeFilters", str(e))

    try:
        outcome = await agent.run(message.strip(), active_filters)
    except Exception as e:
        logger.exception(f"Chat request failed: {e}")
        return _error(500, "Failed to process query", str(e) or type(e).__name__)

    logger.info(
        f"Chat answered in {outcome.iterations} turn(s), {len(outcome.steps)} tool call(s), "
        f"{outcome.total} campaign(s)"
    )
    return assemble_response(outcome)


@router.get("/api/campaigns")
async def list_campaigns(
    channel: list[str] | None = Query(None),
    value_prop: list[str] | None = Query(None),
    sentiment: list[str] | None = Query(None),
    visual_style: list[str] | None = Query(None),
    start_date: str | None = None,
    end_date: str | None = None,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    db=Depends(_get_db),
):
    """Browse campaigns with UI filters. Without `limit` everything is returned."""
    try:
        filters = ActiveFilterSet.model_validate({
            "channel": channel,
            "value_prop": value_prop,
            "sentiment": sentiment,
            "visual_style": visual_style,
            "date_range": {"start": start_date, "end": end_date} if start_date or end_date else None,
        })
    except ValidationError as e:
        return _error(400, "Invalid filters", str(e))

    offset = (page - 1) * limit if limit else 0
    try:
        campaigns = await db.filter_campaigns(filters, limit=limit, offset=offset)
        total = await db.count_campaigns(filters)
    except Exception as e:
        logger.exception(f"Campaign listing failed: {e}")
        return _error(500, "Failed to fetch campaigns", str(e))

    return {
        "campaigns": [c.model_dump(mode="json") for c in campaigns],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if limit else 1,
        },
    }


@router.get("/api/campaigns/{campaign_id}")
async def campaign_detail(campaign_id: str, db=Depends(_get_db)):
    campaign = await db.get_campaign(campaign_id)
    if not campaign:
        return _error(404, "Campaign not found", f"No campaign with id {campaign_id}")
    return campaign.model_dump(mode="json")


@router.get("/api/filters")
async def filter_options():
    """Controlled vocabularies for the filter panel."""
    return {
        "channel": list(CHANNELS),
        "value_prop": list(VALUE_PROPS),
        "sentiment": list(SENTIMENTS),
        "visual_style": list(VISUAL_STYLES),
        "embedding_field": list(EMBEDDING_FIELDS),
    }
