from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.audit import models as audit_models
from fortifymis.apps.audit import services as audit_services


def test_log_event_serialises_datetimes(db_session, make_mill):
    mill = make_mill()
    stamp = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)

    entry = audit_services.log_event(
        db_session,
        mill_id=mill.id,
        actor_user_id=None,
        entity_type="equipment",
        entity_id="eq-1",
        action="CALIBRATE",
        after={"calibrated_at": stamp},
        metadata={"source": "test"},
    )
    db_session.commit()

    stored = db_session.query(audit_models.AuditLog).filter(audit_models.AuditLog.id == entry.id).one()
    assert stored.after == {"calibrated_at": "2026-03-01T09:30:00+00:00"}
    assert stored.metadata_json == {"source": "test"}


def test_log_event_swallows_non_critical_failures(db_session, monkeypatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(audit_services, "create_audit_log", _boom)

    result = audit_services.log_event(
        db_session,
        actor_user_id=None,
        entity_type="alert",
        entity_id="alert-1",
        action="UPDATE",
    )
    assert result is None

    with pytest.raises(RuntimeError):
        audit_services.log_event(
            db_session,
            actor_user_id=None,
            entity_type="rfp",
            entity_id="rfp-1",
            action="AWARD",
            critical=True,
        )


def test_query_audit_logs_filters_and_orders(db_session, make_mill):
    mill = make_mill()
    for index, action in enumerate(("CREATE", "UPDATE", "UPDATE")):
        audit_services.create_audit_log(
            db_session,
            mill_id=mill.id,
            actor_user_id=None,
            entity_type="mill",
            entity_id=mill.id,
            action=action,
            after={"step": index},
        )
    db_session.commit()

    updates = audit_services.query_audit_logs(db_session, mill_id=mill.id, action="UPDATE").all()
    assert len(updates) == 2
    assert all(entry.action == "UPDATE" for entry in updates)


def test_audit_log_endpoint_is_limited_to_program_managers(client, make_user, auth_headers):
    manager = make_user(account_models.UserRole.FWGA_PROGRAM_MANAGER)
    inspector = make_user(account_models.UserRole.FWGA_INSPECTOR)

    allowed = client.get("/api/audit-logs", params={"entity_type": "mill"}, headers=auth_headers(manager))
    assert allowed.status_code == 200
    assert allowed.json()["data"]["pagination"]["page"] == 1

    denied = client.get("/api/audit-logs", headers=auth_headers(inspector))
    assert denied.status_code == 403
