"""
Status transitions for workflow-managed entities.

Each entity type registers a table of ``from_state -> {to_state: guards}``.
Services call :func:`apply_transition` before mutating ``status`` so an
illegal move never reaches the database and every legal one is audited.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from fortifymis.apps.audit import services as audit_services

from .registry import WORKFLOWS

Failure = Dict[str, str]


@dataclass
class TransitionError(Exception):
    code: str
    detail: List[Failure]

    @property
    def message(self) -> str:
        if self.detail:
            return self.detail[0]["reason"]
        return "Invalid status transition"


def _extract_mill_id(*objs: Any) -> Optional[str]:
    for obj in objs:
        if isinstance(obj, dict):
            mill_id = obj.get("mill_id")
        else:
            mill_id = getattr(obj, "mill_id", None)
        if mill_id:
            return mill_id
    return None


def _state_payload(state: str, obj: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"status": state}
    if isinstance(obj, dict):
        payload.update({k: v for k, v in obj.items() if k != "mill_id"})
    return payload


def allowed_transitions(entity_type: str, from_state: str) -> List[str]:
    workflow = WORKFLOWS.get(entity_type) or {}
    return sorted(workflow.get("transitions", {}).get(from_state, {}).keys())


def _guards_for(entity_type: str, from_state: str, to_state: str) -> Sequence:
    workflow = WORKFLOWS.get(entity_type)
    if not workflow:
        raise TransitionError(
            code="UNKNOWN_ENTITY",
            detail=[{"field": "entity_type", "reason": f"No workflow registered for {entity_type}"}],
        )
    guards = workflow.get("transitions", {}).get(from_state, {}).get(to_state)
    if guards is None:
        raise TransitionError(
            code="INVALID_TRANSITION",
            detail=[{"field": "status", "reason": f"Cannot transition from {from_state} to {to_state}"}],
        )
    return guards


def apply_transition(
    db: Session,
    *,
    actor_user_id: Optional[str],
    entity_type: str,
    entity_id: str,
    from_state: str,
    to_state: str,
    before_obj: Any,
    after_obj: Any,
    metadata: Optional[dict] = None,
    critical: bool = True,
) -> None:
    """
    Validate a status change against the registered table and record it.

    Raises TransitionError when the entity has no workflow, the move is not
    in the table, or a guard reports missing requirements. Guard failures
    are collected so the caller sees every unmet requirement at once.
    """
    failures: List[Failure] = []
    for guard in _guards_for(entity_type, from_state, to_state):
        failures.extend(
            guard(
                db,
                before_obj=before_obj,
                after_obj=after_obj,
                from_state=from_state,
                to_state=to_state,
            )
        )
    if failures:
        raise TransitionError(code="TRANSITION_BLOCKED", detail=failures)

    audit_services.log_event(
        db,
        mill_id=_extract_mill_id(after_obj, before_obj),
        actor_user_id=actor_user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action="TRANSITION",
        before=_state_payload(from_state, before_obj),
        after=_state_payload(to_state, after_obj),
        metadata={"workflow": entity_type, **(metadata or {})},
        critical=critical,
    )
