import csv
import io
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from models import db
from models.audit_log import AuditLog
from routes.audit_logs import CSV_HEADER, audit_logs_csv
from tests.conftest import audit_rows, bearer, employee_pk, login
from utils.audit import log_event
from utils.timeutil import format_ist


def test_log_event_writes_row(app):
    pk = employee_pk(app, "EMP001")
    with app.app_context():
        row = log_event(
            "content_viewed", "content",
            employee_id=pk, resource_type="course", resource_id=42,
            details={"title": "Onboarding"},
        )
        assert row is not None
        assert row.resource_id == "42"
        assert row.details == {"title": "Onboarding"}
        assert row.ip_address is None


def test_log_event_rejects_unknown_category_and_severity(app):
    with app.app_context():
        with pytest.raises(ValueError):
            log_event("something", "billing")
        with pytest.raises(ValueError):
            log_event("something", "system", severity="error")


def test_log_event_swallows_store_failure(app, monkeypatch):
    def broken():
        raise OperationalError("INSERT INTO audit_logs", {}, Exception("database is locked"))

    with app.app_context():
        monkeypatch.setattr(db.session, "commit", broken)
        assert log_event("login", "authentication") is None
        monkeypatch.undo()
        assert AuditLog.query.count() == 0


def test_format_ist():
    assert format_ist(datetime(2026, 1, 15, 20, 0, 0)) == "2026-01-16 01:30:00 IST"
    assert format_ist(None) == "Invalid Date"


def test_csv_layout(app):
    pk = employee_pk(app, "ADMIN001")
    with app.app_context():
        db.session.add_all([
            AuditLog(employee_id=pk, event_type="force_logout", event_category="admin",
                     resource_type="session", severity="warning",
                     created_at=datetime(2026, 3, 1, 4, 30, 0)),
            AuditLog(event_type="sessions_swept", event_category="system",
                     severity="info", created_at=datetime(2026, 3, 1, 5, 0, 0)),
        ])
        db.session.commit()
        rows = AuditLog.query.order_by(AuditLog.id).all()
        body = audit_logs_csv(rows)

    lines = list(csv.reader(io.StringIO(body)))
    assert lines[0] == CSV_HEADER
    assert lines[1] == ["2026-03-01 10:00:00 IST", "ADMIN001", "force_logout", "admin", "session", "warning"]
    assert lines[2] == ["2026-03-01 10:30:00 IST", "System", "sessions_swept", "system", "-", "info"]


def test_audit_log_listing_filters_and_caps(app, client):
    admin = login(client, "ADMIN001")
    for _ in range(3):
        client.post("/api/auth/login", json={"emp_id": "EMP001", "password": "wrong"})

    headers = bearer(admin["token"])
    resp = client.get("/api/admin/audit-logs?event_type=login_failed", headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert len(body) == 3
    assert {r["event_type"] for r in body} == {"login_failed"}

    limited = client.get("/api/admin/audit-logs?limit=1", headers=headers).get_json()
    assert len(limited) == 1

    app.config["AUDIT_LOG_MAX_LIMIT"] = 2
    capped = client.get("/api/admin/audit-logs?limit=50", headers=headers).get_json()
    assert len(capped) == 2


def test_audit_log_export(app, client):
    admin = login(client, "ADMIN001")
    resp = client.get("/api/admin/audit-logs/export?category=authentication", headers=bearer(admin["token"]))

    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    assert resp.headers["Content-Disposition"].startswith("attachment; filename=audit-logs-")

    lines = list(csv.reader(io.StringIO(resp.get_data(as_text=True))))
    assert lines[0] == CSV_HEADER
    assert lines[1][1:4] == ["ADMIN001", "login", "authentication"]
    assert lines[1][0].endswith(" IST")

    exported = audit_rows(app, event_type="audit_logs_exported")
    assert exported[0]["details"]["rows"] == 1
