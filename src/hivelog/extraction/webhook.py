"""Unwrap extraction candidates from a voice-agent webhook payload.

The agent posts ``{"message": {"analysis": {"structuredData": ...}}}``
where structuredData arrives in one of three shapes:
  1. a list of candidate objects
  2. an object with an ``inspections`` list
  3. a single candidate object (has ``bikupa`` or ``finnsDrottning``)
"""

from __future__ import annotations

import logging

from hivelog.errors import WebhookPayloadError
from hivelog.extraction.schemas import HIVE_REF_KEY

logger = logging.getLogger(__name__)

_SINGLE_CANDIDATE_MARKERS = (HIVE_REF_KEY, "finnsDrottning")


def candidates_from_webhook(payload: dict) -> list[dict]:
    """Return the raw candidate objects carried by a webhook payload.

    Raises:
        WebhookPayloadError: If ``message`` or ``message.analysis`` is missing.
    """
    message = payload.get("message") if isinstance(payload, dict) else None
    if not isinstance(message, dict) or not isinstance(message.get("analysis"), dict):
        raise WebhookPayloadError("Webhook payload is missing message or analysis")

    structured = message["analysis"].get("structuredData")

    if isinstance(structured, list):
        items = structured
    elif isinstance(structured, dict) and isinstance(structured.get("inspections"), list):
        items = structured["inspections"]
    elif isinstance(structured, dict) and any(structured.get(k) for k in _SINGLE_CANDIDATE_MARKERS):
        items = [structured]
    else:
        logger.warning("No inspection data found in webhook structuredData")
        return []

    candidates = [item for item in items if isinstance(item, dict)]
    logger.info("Webhook carried %d inspection candidates", len(candidates))
    return candidates

