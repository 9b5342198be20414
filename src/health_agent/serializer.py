"""Health summary document serialization."""

import json

import structlog

from .models import HealthSummaryDocument

logger = structlog.get_logger(__name__)

SERIALIZATION_ERROR = "Failed to serialize health data"


def error_document() -> str:
    """Single-field document sent in place of unavailable health data."""
    return json.dumps({"error": SERIALIZATION_ERROR})


def serialize_summary(document: HealthSummaryDocument, indent: int | None = 2) -> str:
    """Render a summary document as JSON.

    Never raises: any encoding failure yields the error document, which is
    still handed to the model as the health data.
    """
    try:
        return json.dumps(document.to_dict(), indent=indent, allow_nan=False, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        logger.error("health_summary_serialization_failed", error=str(e))
        return error_document()
