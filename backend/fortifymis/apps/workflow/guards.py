from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy.orm import Session

GuardResult = List[Dict[str, str]]


def _get_value(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def guard_audit_has_responses(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    responses = _get_value(after_obj, "responses")
    if not responses:
        return [{"field": "responses", "reason": "at least one response is required"}]
    return []


def guard_audit_scored(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    if _get_value(after_obj, "score") is None:
        return [{"field": "score", "reason": "audit must be scored before approval"}]
    return []


def guard_rfp_publish(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    deadline = _get_value(after_obj, "bid_deadline")
    missing = []
    if deadline is None:
        missing.append({"field": "bid_deadline", "reason": "bid deadline required"})
    else:
        if deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=timezone.utc)
        if deadline <= datetime.now(timezone.utc):
            missing.append({"field": "bid_deadline", "reason": "bid deadline must be in the future"})
    if not _get_value(after_obj, "delivery_locations"):
        missing.append({"field": "delivery_locations", "reason": "at least one delivery location required"})
    return missing


def guard_rfp_award(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    if not _get_value(after_obj, "awarded_bid_id"):
        return [{"field": "awarded_bid_id", "reason": "winning bid required"}]
    return []


def guard_sensor_alert_resolve(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    resolution = (_get_value(after_obj, "resolution") or "").strip()
    if len(resolution) < 10:
        return [{"field": "resolution", "reason": "resolution must be at least 10 characters"}]
    return []
