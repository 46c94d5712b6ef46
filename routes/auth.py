from flask import Blueprint, request, jsonify, current_app, g
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.employee import Employee
from models.session import LOGOUT_MANUAL, LOGOUT_TIMEOUT
from security.errors import (
    error_response,
    INVALID_CREDENTIALS,
    VALIDATION_ERROR,
    STORE_ERROR,
)
from security.password import verify_password, burn_verification
from security.session import create_session, terminate_session, validate_and_refresh
from security.tokens import issue_token
from utils.audit import log_event
from utils.auth_context import login_required, bearer_token
from utils.request_meta import client_ip, user_agent
from utils.timeutil import utcnow, isoformat_utc


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

# Reasons a client may give for its own logout; admin_forced etc. are server-side only.
CLIENT_LOGOUT_REASONS = {LOGOUT_MANUAL, LOGOUT_TIMEOUT}


def _login_failed(emp_id: str, employee=None):
    log_event(
        "login_failed",
        "authentication",
        employee_id=employee.id if employee else None,
        details={"emp_id": emp_id},
        severity="warning",
    )
    # identical payload whatever the cause
    return error_response(INVALID_CREDENTIALS)


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return error_response(VALIDATION_ERROR, "JSON object expected")

    emp_id = data.get("emp_id")
    password = data.get("password")
    if not isinstance(emp_id, str) or not isinstance(password, str) or not emp_id.strip() or not password:
        return error_response(VALIDATION_ERROR, "Employee ID and password are required")
    emp_id = emp_id.strip()

    employee = Employee.query.filter_by(emp_id=emp_id).first()
    if not employee or not employee.is_active:
        burn_verification(password)
        return _login_failed(emp_id, employee)

    if not verify_password(password, employee.password_hash):
        return _login_failed(emp_id, employee)

    token, expires_at = issue_token(employee.id)
    try:
        sess = create_session(
            employee.id,
            token,
            expires_at,
            ip=client_ip(),
            user_agent=user_agent(),
        )
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Session creation failed for employee %s", employee.id)
        log_event(
            "login_system_error",
            "system",
            employee_id=employee.id,
            details={"stage": "session_create"},
            severity="critical",
        )
        return error_response(STORE_ERROR, "Failed to create session")

    previous_login = employee.last_login_at
    employee.last_login_at = utcnow()
    db.session.commit()

    log_event(
        "login",
        "authentication",
        employee_id=employee.id,
        session_id=sess.id,
        resource_type="session",
        resource_id=sess.id,
    )

    body = employee.to_dict()
    # the client shows the login before this one
    body["last_login_at"] = isoformat_utc(previous_login)
    return jsonify(
        employee=body,
        sessionId=sess.id,
        token=token,
        expiresAt=isoformat_utc(sess.expires_at),
        lastActivityAt=isoformat_utc(sess.last_activity_at),
    ), 200


@auth_bp.post("/logout")
@login_required
def logout():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return error_response(VALIDATION_ERROR, "JSON object expected")

    reason = data.get("reason") or LOGOUT_MANUAL
    if reason not in CLIENT_LOGOUT_REASONS:
        reason = LOGOUT_MANUAL

    ended = terminate_session(token=g.token, reason=reason)
    log_event(
        "logout",
        "authentication",
        employee_id=g.employee_id,
        details={"reason": reason, "was_active": ended},
    )
    return jsonify(success=True), 200


@auth_bp.get("/validate")
def validate():
    token = bearer_token()
    check = validate_and_refresh(token) if token else None
    if check is None or not check.valid:
        if check is not None:
            current_app.logger.info("Session validation rejected: %s", check.state.value)
        return jsonify(valid=False), 401
    return jsonify(valid=True), 200
