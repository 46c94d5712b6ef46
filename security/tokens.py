import hashlib
import secrets
from datetime import timedelta, timezone

import jwt
from flask import current_app

from security.policy import SESSION_LIFETIME
from utils.timeutil import utcnow


def hash_token(token: str) -> str:
    # SHA-256 is fine for hashing high-entropy bearer tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _secret() -> str:
    return current_app.config["JWT_SECRET_KEY"]


def _algorithm() -> str:
    return current_app.config.get("JWT_ALGORITHM", "HS256")


def issue_token(employee_id: int, now=None):
    """
    Returns (token, expires_at). The token is valid for exactly the session
    lifetime from issuance; expires_at is naive UTC and is also what the
    session row stores.
    """
    issued_at = (now or utcnow()).replace(microsecond=0)
    expires_at = issued_at + SESSION_LIFETIME
    payload = {
        "sub": str(employee_id),
        "iat": issued_at.replace(tzinfo=timezone.utc),
        "exp": expires_at.replace(tzinfo=timezone.utc),
        "jti": secrets.token_urlsafe(16),
    }
    token = jwt.encode(payload, _secret(), algorithm=_algorithm())
    return token, expires_at


def verify_token(token: str, allow_expired: bool = False):
    """
    Pure signature/expiry check, no database access. Returns the employee id
    or None. Revocation is the session manager's job.
    """
    if not token:
        return None
    try:
        payload = jwt.decode(
            token,
            _secret(),
            algorithms=[_algorithm()],
            options={"verify_exp": not allow_expired, "require": ["sub", "exp"]},
            leeway=timedelta(seconds=0),
        )
    except jwt.InvalidTokenError:
        return None

    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        return None
