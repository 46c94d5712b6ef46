from functools import wraps
from flask import g

from models.employee import ROLE_ADMIN
from security.errors import error_response, FORBIDDEN, UNAUTHENTICATED
from utils.audit import log_event
from utils.auth_context import current_employee


def has_role(role_name: str) -> bool:
    employee = current_employee()
    if not employee or not employee.is_active:
        return False
    return employee.role == role_name


def require_roles(*role_names: str, action: str, resource: str = None):
    """
    Usage: @require_roles("admin", action="employee_create", resource="employee")

    Must sit below @login_required / @session_required. A refusal writes one
    security audit row tagged "<action>_unauthorized" before the 403.
    """
    allowed = set(role_names) or {ROLE_ADMIN}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if getattr(g, "employee_id", None) is None:
                return error_response(UNAUTHENTICATED)

            employee = current_employee()
            if employee is None or not employee.is_active or employee.role not in allowed:
                resource_id = next(iter(kwargs.values()), None)
                log_event(
                    f"{action}_unauthorized",
                    "security",
                    employee_id=g.employee_id,
                    session_id=getattr(getattr(g, "session", None), "id", None),
                    resource_type=resource,
                    resource_id=resource_id,
                    details={
                        "reason": f"Non-admin user attempted {action.replace('_', ' ')}",
                        "required_roles": sorted(allowed),
                    },
                    severity="warning",
                )
                return error_response(FORBIDDEN)

            return fn(*args, **kwargs)
        return wrapper
    return decorator
