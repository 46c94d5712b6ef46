import csv
import io

from flask import Blueprint, Response, current_app, g, jsonify, request

from models.audit_log import AuditLog
from models.employee import ROLE_ADMIN
from security.rbac import require_roles
from utils.auth_context import session_required
from utils.audit import log_event
from utils.timeutil import format_ist, utcnow

audit_bp = Blueprint("audit", __name__, url_prefix="/api/admin")

CSV_HEADER = ["Timestamp (IST)", "Employee ID", "Event Type", "Category", "Resource", "Severity"]


def _filtered_query():
    q = AuditLog.query

    event_type = request.args.get("event_type")
    category = request.args.get("category")
    severity = request.args.get("severity")
    employee_id = request.args.get("employee_id", type=int)

    if event_type:
        q = q.filter(AuditLog.event_type == event_type)
    if category:
        q = q.filter(AuditLog.event_category == category)
    if severity:
        q = q.filter(AuditLog.severity == severity)
    if employee_id is not None:
        q = q.filter(AuditLog.employee_id == employee_id)

    return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())


@audit_bp.get("/audit-logs")
@session_required
@require_roles(ROLE_ADMIN, action="audit_log_view", resource="audit_log")
def list_audit_logs():
    max_limit = current_app.config.get("AUDIT_LOG_MAX_LIMIT", 500)
    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, max_limit))

    rows = _filtered_query().limit(limit).all()
    return jsonify([r.to_dict() for r in rows]), 200


def audit_logs_csv(rows) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for r in rows:
        writer.writerow([
            format_ist(r.created_at),
            r.actor.emp_id if r.actor is not None else "System",
            r.event_type,
            r.event_category,
            r.resource_type or "-",
            r.severity,
        ])
    return buf.getvalue()


@audit_bp.get("/audit-logs/export")
@session_required
@require_roles(ROLE_ADMIN, action="audit_log_export", resource="audit_log")
def export_audit_logs():
    rows = _filtered_query().all()
    body = audit_logs_csv(rows)

    log_event(
        "audit_logs_exported",
        "admin",
        employee_id=g.employee_id,
        session_id=g.session.id,
        resource_type="audit_log",
        details={"rows": len(rows), "filters": request.args.to_dict()},
    )

    filename = f"audit-logs-{utcnow().strftime('%Y%m%dT%H%M%SZ')}.csv"
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
