"""
Event Validation

Normalizes raw event payloads and rejects malformed ones before they reach the
ingestion queue.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any, Optional

import structlog
from pydantic import ValidationError
from prometheus_client import Counter

from analytics_pipeline.ingestion.events import AnalyticsAction, AnalyticsEvent

logger = structlog.get_logger(__name__)


EVENTS_REJECTED = Counter(
    "analytics_events_rejected_total",
    "Total number of events rejected by validation",
    ["reason"],
)


class RejectionReason(str, Enum):
    """Why an event was discarded"""
    MALFORMED = "malformed"
    MISSING_USER_ID = "missing_user_id"
    MISSING_ACTION = "missing_action"
    UNKNOWN_ACTION = "unknown_action"


def _precheck(raw: Any) -> Optional[RejectionReason]:
    if not isinstance(raw, Mapping):
        return RejectionReason.MALFORMED

    user_id = raw.get("userId", raw.get("user_id"))
    if user_id is None or (isinstance(user_id, str) and not user_id.strip()):
        return RejectionReason.MISSING_USER_ID

    action = raw.get("action")
    if action is None or action == "":
        return RejectionReason.MISSING_ACTION
    if not isinstance(action, str):
        return RejectionReason.MALFORMED
    if action not in AnalyticsAction.values():
        return RejectionReason.UNKNOWN_ACTION

    return None


def validate_event(raw: Any) -> Optional[AnalyticsEvent]:
    """
    Validate a raw payload.

    Args:
        raw: Decoded message body

    Returns:
        The normalized event, or None when the payload was rejected. Rejections
        are logged at warning level and counted.
    """
    reason = _precheck(raw)
    error = None

    if reason is None:
        try:
            return AnalyticsEvent.model_validate(raw)
        except ValidationError as e:
            reason = RejectionReason.MALFORMED
            error = str(e)

    context = raw if isinstance(raw, Mapping) else {}
    logger.warning(
        "Rejected analytics event",
        reason=reason.value,
        user_id=context.get("userId"),
        action=context.get("action"),
        error=error,
    )
    EVENTS_REJECTED.labels(reason=reason.value).inc()
    return None
