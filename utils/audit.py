import json

from flask import current_app, has_request_context
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.audit_log import AuditLog, CATEGORIES, SEVERITIES
from utils.request_meta import client_ip, user_agent


def log_event(
    event_type: str,
    category: str,
    employee_id=None,
    session_id=None,
    resource_type=None,
    resource_id=None,
    details=None,
    severity: str = "info",
):
    """
    Appends one audit row. Never raises on a store failure: the primary
    operation has already happened, so the failure goes to the app logger.
    Returns the row, or None if it could not be written.
    """
    if category not in CATEGORIES:
        raise ValueError(f"Unknown audit category: {category}")
    if severity not in SEVERITIES:
        raise ValueError(f"Unknown audit severity: {severity}")

    ip = ua = None
    if has_request_context():
        ip = client_ip()
        ua = user_agent() or None

    row = AuditLog(
        employee_id=employee_id,
        session_id=session_id,
        event_type=event_type,
        event_category=category,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        details_json=json.dumps(details, default=str) if details else None,
        ip_address=ip,
        user_agent=ua,
        severity=severity,
    )
    try:
        db.session.add(row)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(
            "Audit write failed: event_type=%s category=%s employee_id=%s",
            event_type, category, employee_id,
        )
        return None
    return row
