from functools import wraps
from flask import g, request

from models import db
from models.employee import Employee
from security.errors import error_response, UNAUTHENTICATED, SESSION_INVALID
from security.session import validate_and_refresh
from security.tokens import verify_token


def bearer_token():
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


def current_employee():
    """Loads (once per request) the employee behind g.employee_id."""
    if getattr(g, "employee", None) is None and getattr(g, "employee_id", None) is not None:
        g.employee = db.session.get(Employee, g.employee_id)
    return getattr(g, "employee", None)


def login_required(fn):
    """
    Stateless gate: the bearer token must carry a valid signature and an
    unexpired exp claim. Does not consult the session row.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        token = bearer_token()
        employee_id = verify_token(token)
        if employee_id is None:
            return error_response(UNAUTHENTICATED)
        g.token = token
        g.employee_id = employee_id
        g.employee = None
        g.session = None
        return fn(*args, **kwargs)
    return wrapper


def session_required(fn):
    """
    Stateful gate: the session behind the token must still be active and is
    refreshed on success.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        token = bearer_token()
        check = validate_and_refresh(token) if token else None
        if check is None or not check.valid:
            return error_response(SESSION_INVALID)
        g.token = token
        g.employee_id = check.employee_id
        g.employee = None
        g.session = check.session
        return fn(*args, **kwargs)
    return wrapper
