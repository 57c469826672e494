from __future__ import annotations

from adscope.chat.agent import AgentOutcome

MAX_SUGGESTIONS = 3

RESULT_SUGGESTIONS = (
    "Which of these campaigns include a specific offer?",
    "Compare these campaigns across channels",
    "What visual styles do these campaigns use?",
    "Show me only the Premium sentiment campaigns",
)

NO_RESULT_SUGGESTIONS = (
    "Show me campaigns emphasizing travel benefits",
    "What are the most common value propositions?",
    "Compare Instagram vs Facebook campaigns",
    "Find campaigns with cash back offers",
)


def generate_suggestions(total: int) -> list[str]:
    """Follow-up questions, picked deterministically by whether anything matched."""
    pool = RESULT_SUGGESTIONS if total > 0 else NO_RESULT_SUGGESTIONS
    return list(pool[:MAX_SUGGESTIONS])


def assemble_response(outcome: AgentOutcome) -> dict:
    """Shape an agent outcome into the chat API response."""
    response = {
        "response": outcome.answer,
        "campaigns": [c.model_dump(mode="json") for c in outcome.campaigns],
        "total": outcome.total,
        "suggestions": generate_suggestions(outcome.total),
    }
    if not outcome.detected_filters.is_empty:
        response["detectedFilters"] = outcome.detected_filters.model_dump(
            mode="json", exclude_none=True
        )
    return response
