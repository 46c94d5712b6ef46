from datetime import datetime, timedelta
from enum import Enum

# Shared by the server session manager and the client session cache.
IDLE_TIMEOUT_SECONDS = 30 * 60
SESSION_LIFETIME_SECONDS = 8 * 60 * 60

IDLE_TIMEOUT = timedelta(seconds=IDLE_TIMEOUT_SECONDS)
SESSION_LIFETIME = timedelta(seconds=SESSION_LIFETIME_SECONDS)


class SessionState(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    IDLE_TIMEOUT = "idle_timeout"
    TERMINATED = "terminated"
    # not a lifecycle state: no active row, or the token failed verification
    INVALID = "invalid"


def evaluate(expires_at: datetime, last_activity_at: datetime, now: datetime) -> SessionState:
    """
    Classifies a live session row (or client envelope) at `now`.
    Absolute expiry always wins over idle timeout.
    """
    if now > expires_at:
        return SessionState.EXPIRED
    if now - last_activity_at > IDLE_TIMEOUT:
        return SessionState.IDLE_TIMEOUT
    return SessionState.ACTIVE
