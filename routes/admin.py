from flask import Blueprint, jsonify, g, request, current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.employee import Employee, EmployeeField, ROLES, ROLE_ADMIN
from models.session import LOGOUT_ACCOUNT_DELETED
from security.errors import (
    error_response,
    NOT_FOUND,
    VALIDATION_ERROR,
    CONFLICT,
    STORE_ERROR,
    EMP_ID_IMMUTABLE,
    SELF_DELETION_DENIED,
    SELF_DEMOTION_DENIED,
    SELF_SESSION_LOGOUT_DENIED,
)
from security.password import hash_password
from security.rbac import require_roles
from security.session import (
    ForceLogoutOutcome,
    force_logout as end_session,
    list_sessions,
    terminate_all_for_employee,
)
from utils.audit import log_event
from utils.auth_context import session_required

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

REQUIRED_CREATE_FIELDS = ("emp_id", "email", "full_name")


def _audit(event_type, category, severity="info", resource_type="employee", resource_id=None, **details):
    log_event(
        event_type,
        category,
        employee_id=g.employee_id,
        session_id=g.session.id if g.session is not None else None,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details or None,
        severity=severity,
    )


def _store_failure(event_type, message, resource_type="employee", resource_id=None):
    db.session.rollback()
    current_app.logger.exception("%s (resource %s/%s)", event_type, resource_type, resource_id)
    _audit(
        event_type,
        "system",
        severity="critical",
        resource_type=resource_type,
        resource_id=resource_id,
    )
    return error_response(STORE_ERROR, message)


def _patch(data: dict) -> dict:
    """Keeps only the patchable fields present in the request body."""
    return {f.value: data[f.value] for f in EmployeeField if f.value in data}


def _validate_patch(patch: dict):
    if "role" in patch and patch["role"] not in ROLES:
        return f"role must be one of: {', '.join(ROLES)}"
    if "is_active" in patch and not isinstance(patch["is_active"], bool):
        return "is_active must be a boolean"
    for key in ("email", "full_name", "department"):
        value = patch.get(key)
        if value is not None and not isinstance(value, str):
            return f"{key} must be a string"
    if "full_name" in patch and not (patch["full_name"] or "").strip():
        return "full_name cannot be empty"
    if "email" in patch and (not patch["email"] or "@" not in patch["email"]):
        return "Invalid email"
    return None


def _deactivate_employee(employee: Employee) -> int:
    """Soft delete plus cascade: every active session of the employee ends now."""
    employee.is_active = False
    db.session.commit()
    return terminate_all_for_employee(employee.id, LOGOUT_ACCOUNT_DELETED)


@admin_bp.get("/employees")
@session_required
@require_roles(ROLE_ADMIN, action="employee_list", resource="employee")
def list_employees():
    rows = Employee.query.order_by(Employee.created_at.desc()).limit(500).all()
    return jsonify([e.to_dict() for e in rows]), 200


@admin_bp.post("/employees")
@session_required
@require_roles(ROLE_ADMIN, action="employee_create", resource="employee")
def create_employee():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        _audit("employee_create_invalid", "admin", severity="warning", reason="JSON object expected")
        return error_response(VALIDATION_ERROR, "JSON object expected")

    password = data.get("password")

    patch = _patch(data)
    emp_id = data.get("emp_id")
    emp_id = emp_id.strip() if isinstance(emp_id, str) else None

    provided = dict(patch, emp_id=emp_id)
    missing = [f for f in REQUIRED_CREATE_FIELDS if not provided.get(f)]
    if not isinstance(password, str) or not password.strip():
        problem = "Password is required"
    elif missing:
        problem = f"Missing required fields: {', '.join(missing)}"
    else:
        problem = _validate_patch(patch)

    if problem:
        _audit(
            "employee_create_invalid", "admin", severity="warning",
            reason=problem, attempted_emp_id=emp_id,
        )
        return error_response(VALIDATION_ERROR, problem)

    patch["email"] = patch["email"].strip().lower()
    duplicate = Employee.query.filter(
        (Employee.emp_id == emp_id) | (Employee.email == patch["email"])
    ).first()
    if duplicate:
        _audit(
            "employee_create_conflict", "admin", severity="warning",
            attempted_emp_id=emp_id, attempted_email=patch["email"],
        )
        return error_response(CONFLICT, "Employee ID or email already exists")

    employee = Employee(emp_id=emp_id, password_hash=hash_password(password), **patch)
    try:
        db.session.add(employee)
        db.session.commit()
    except SQLAlchemyError:
        return _store_failure("employee_create_system_error", "Failed to create employee")

    _audit(
        "employee_created", "admin",
        resource_id=employee.id,
        new_employee={
            "emp_id": employee.emp_id,
            "email": employee.email,
            "full_name": employee.full_name,
            "role": employee.role,
            "department": employee.department,
        },
    )
    return jsonify(success=True, data=employee.to_dict()), 201


@admin_bp.put("/employees/<int:employee_id>")
@session_required
@require_roles(ROLE_ADMIN, action="employee_update", resource="employee")
def update_employee(employee_id: int):
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        _audit(
            "employee_update_invalid", "admin", severity="warning",
            resource_id=employee_id, reason="JSON object expected",
        )
        return error_response(VALIDATION_ERROR, "JSON object expected")

    employee = db.session.get(Employee, employee_id)
    if not employee:
        _audit("employee_update_not_found", "admin", severity="warning", resource_id=employee_id)
        return error_response(NOT_FOUND, "Employee not found")

    if "emp_id" in data and data["emp_id"] != employee.emp_id:
        _audit(
            "employee_empid_change_blocked", "security", severity="warning",
            resource_id=employee_id,
            attempted_change={"from": employee.emp_id, "to": data["emp_id"]},
        )
        return error_response(EMP_ID_IMMUTABLE)

    patch = _patch(data)
    password = data.get("password")
    if isinstance(password, str) and not password.strip():
        password = None

    if not patch and not password:
        return error_response(
            VALIDATION_ERROR,
            "No valid fields to update",
            allowedFields=[f.value for f in EmployeeField] + ["password"],
        )

    problem = _validate_patch(patch)
    if problem is None and password is not None and not isinstance(password, str):
        problem = "password must be a string"
    if problem:
        _audit("employee_update_invalid", "admin", severity="warning", resource_id=employee_id, reason=problem)
        return error_response(VALIDATION_ERROR, problem)

    if employee.id == g.employee_id:
        if patch.get("is_active") is False:
            _audit("employee_self_deactivate_attempt", "security", severity="warning", resource_id=employee_id)
            return error_response(SELF_DELETION_DENIED, "Cannot deactivate your own account")
        if "role" in patch and patch["role"] != ROLE_ADMIN:
            _audit("employee_self_demote_attempt", "security", severity="warning", resource_id=employee_id)
            return error_response(SELF_DEMOTION_DENIED)

    if "email" in patch:
        patch["email"] = patch["email"].strip().lower()
        clash = Employee.query.filter(Employee.email == patch["email"], Employee.id != employee.id).first()
        if clash:
            _audit("employee_update_conflict", "admin", severity="warning", resource_id=employee_id)
            return error_response(CONFLICT, "Email already in use")

    changes = {
        key: {"from": getattr(employee, key), "to": value}
        for key, value in patch.items()
        if getattr(employee, key) != value
    }
    deactivating = employee.is_active and patch.get("is_active") is False

    try:
        for key, value in patch.items():
            setattr(employee, key, value)
        if password:
            employee.password_hash = hash_password(password)
            changes["password"] = {"changed": True}
        db.session.commit()
        ended = terminate_all_for_employee(employee.id, LOGOUT_ACCOUNT_DELETED) if deactivating else 0
    except SQLAlchemyError:
        return _store_failure("employee_update_system_error", "Failed to update employee", resource_id=employee_id)

    _audit(
        "employee_updated", "admin",
        resource_id=employee_id,
        target_employee={"emp_id": employee.emp_id, "email": employee.email, "full_name": employee.full_name},
        changes=changes,
        updated_fields=sorted(data.keys()),
        sessions_terminated=ended,
    )
    return jsonify(success=True, data=employee.to_dict()), 200


@admin_bp.delete("/employees/<int:employee_id>")
@session_required
@require_roles(ROLE_ADMIN, action="employee_delete", resource="employee")
def delete_employee(employee_id: int):
    if employee_id == g.employee_id:
        _audit(
            "employee_self_delete_attempt", "security", severity="warning",
            resource_id=employee_id, reason="Admin attempted to delete their own account",
        )
        return error_response(SELF_DELETION_DENIED)

    employee = db.session.get(Employee, employee_id)
    if not employee:
        _audit(
            "employee_delete_not_found", "admin", severity="warning",
            resource_id=employee_id, reason="Attempted to delete non-existent employee",
        )
        return error_response(NOT_FOUND, "Employee not found")

    was_active = employee.is_active
    try:
        ended = _deactivate_employee(employee)
    except SQLAlchemyError:
        return _store_failure("employee_delete_system_error", "Failed to delete employee", resource_id=employee_id)

    _audit(
        "employee_deleted", "admin", severity="warning",
        resource_id=employee_id,
        deleted_employee={
            "emp_id": employee.emp_id,
            "email": employee.email,
            "full_name": employee.full_name,
            "role": employee.role,
            "department": employee.department,
            "was_active": was_active,
        },
        action="deactivated",
        sessions_terminated=ended,
    )
    return jsonify(success=True, message="Employee deactivated successfully"), 200


@admin_bp.get("/sessions")
@session_required
@require_roles(ROLE_ADMIN, action="session_list", resource="session")
def sessions():
    include_all = request.args.get("all", "").lower() in ("1", "true", "yes")
    rows = list_sessions(active_only=not include_all)
    return jsonify(
        current_session_id=g.session.id,
        sessions=[s.to_dict(include_employee=True) for s in rows],
    ), 200


@admin_bp.post("/sessions/<int:session_id>/force-logout")
@session_required
@require_roles(ROLE_ADMIN, action="force_logout", resource="session")
def force_logout(session_id: int):
    try:
        outcome = end_session(session_id, g.employee_id, g.session.id)
    except SQLAlchemyError:
        return _store_failure(
            "force_logout_system_error", "Failed to force logout",
            resource_type="session", resource_id=session_id,
        )

    if outcome == ForceLogoutOutcome.NOT_FOUND:
        _audit(
            "force_logout_not_found", "admin", severity="warning",
            resource_type="session", resource_id=session_id,
        )
        return error_response(NOT_FOUND, "Session not found")

    if outcome == ForceLogoutOutcome.SELF_DENIED:
        _audit(
            "force_logout_self_denied", "security", severity="warning",
            resource_type="session", resource_id=session_id,
            reason="Admin attempted to force logout their own current session",
        )
        return error_response(SELF_SESSION_LOGOUT_DENIED)

    _audit(
        "force_logout", "admin", severity="warning",
        resource_type="session", resource_id=session_id,
        already_inactive=outcome == ForceLogoutOutcome.ALREADY_INACTIVE,
    )
    return jsonify(success=True), 200
