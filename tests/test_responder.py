from __future__ import annotations

from datetime import date

from adscope.chat.agent import AgentOutcome
from adscope.chat.responder import (
    NO_RESULT_SUGGESTIONS,
    RESULT_SUGGESTIONS,
    assemble_response,
    generate_suggestions,
)
from adscope.filters import ActiveFilterSet, DateRange
from support import make_campaign


def test_suggestions_depend_only_on_whether_anything_matched():
    assert generate_suggestions(0) == list(NO_RESULT_SUGGESTIONS[:3])
    assert generate_suggestions(1) == generate_suggestions(40) == list(RESULT_SUGGESTIONS[:3])
    assert generate_suggestions(0) != generate_suggestions(1)


def test_response_without_filters_omits_detected_filters():
    campaign = make_campaign(company="Acme")
    outcome = AgentOutcome(answer="One campaign.", campaigns=[campaign], total=1)

    response = assemble_response(outcome)

    assert set(response) == {"response", "campaigns", "total", "suggestions"}
    assert response["response"] == "One campaign."
    assert response["total"] == 1
    assert len(response["suggestions"]) == 3
    [payload] = response["campaigns"]
    assert payload["id"] == campaign.id
    assert payload["company"] == "Acme"
    assert payload["capture_date"] == "2025-03-01"


def test_response_with_filters_drops_unset_fields():
    outcome = AgentOutcome(
        answer="Nothing matched.",
        detected_filters=ActiveFilterSet(
            channel=["email"], date_range=DateRange(start=date(2025, 1, 1))
        ),
    )

    response = assemble_response(outcome)

    assert response["total"] == 0
    assert response["campaigns"] == []
    assert response["suggestions"] == list(NO_RESULT_SUGGESTIONS[:3])
    assert response["detectedFilters"] == {"channel": ["email"], "date_range": {"start": "2025-01-01"}}
