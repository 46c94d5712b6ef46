from flask import jsonify

INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
INVALID_TOKEN = "INVALID_TOKEN"
SESSION_INVALID = "SESSION_INVALID"
UNAUTHENTICATED = "UNAUTHENTICATED"
FORBIDDEN = "FORBIDDEN"
SELF_SESSION_LOGOUT_DENIED = "SELF_SESSION_LOGOUT_DENIED"
EMP_ID_IMMUTABLE = "EMP_ID_IMMUTABLE"
SELF_DELETION_DENIED = "SELF_DELETION_DENIED"
SELF_DEMOTION_DENIED = "SELF_DEMOTION_DENIED"
NOT_FOUND = "NOT_FOUND"
VALIDATION_ERROR = "VALIDATION_ERROR"
CONFLICT = "CONFLICT"
STORE_ERROR = "STORE_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"

# code -> (status, default message)
_ERRORS = {
    INVALID_CREDENTIALS: (401, "Invalid credentials"),
    INVALID_TOKEN: (401, "Invalid token"),
    SESSION_INVALID: (401, "Session expired or invalid"),
    UNAUTHENTICATED: (401, "Authentication required"),
    FORBIDDEN: (403, "Admin access required"),
    SELF_SESSION_LOGOUT_DENIED: (
        400,
        "You cannot force logout your own current session. Use the regular logout instead.",
    ),
    EMP_ID_IMMUTABLE: (400, "Employee ID cannot be changed"),
    SELF_DELETION_DENIED: (400, "Cannot delete your own account"),
    SELF_DEMOTION_DENIED: (400, "Cannot remove your own admin role"),
    NOT_FOUND: (404, "Not found"),
    VALIDATION_ERROR: (400, "Invalid request"),
    CONFLICT: (409, "Conflict"),
    STORE_ERROR: (500, "Internal server error"),
    INTERNAL_ERROR: (500, "Internal server error"),
}


def error_response(code: str, message: str = None, **extra):
    """
    Usage: return error_response(NOT_FOUND, "Employee not found")
    """
    status, default_message = _ERRORS[code]
    return jsonify(message=message or default_message, code=code, **extra), status
