from dataclasses import dataclass
from enum import Enum
from typing import Optional

from flask import current_app

from models import db
from models.session import (
    Session,
    LOGOUT_TIMEOUT,
    LOGOUT_ADMIN_FORCED,
)
from security.policy import SessionState, evaluate
from security.tokens import hash_token, verify_token
from utils.audit import log_event
from utils.timeutil import utcnow


@dataclass
class SessionCheck:
    state: SessionState
    session: Optional[Session] = None
    employee_id: Optional[int] = None

    @property
    def valid(self) -> bool:
        return self.state == SessionState.ACTIVE


class ForceLogoutOutcome(str, Enum):
    TERMINATED = "terminated"
    ALREADY_INACTIVE = "already_inactive"
    NOT_FOUND = "not_found"
    SELF_DENIED = "self_denied"


_TRANSITION_EVENT = {
    SessionState.EXPIRED: "session_expired",
    SessionState.IDLE_TIMEOUT: "session_idle_timeout",
}


def create_session(employee_id: int, token: str, expires_at, ip=None, user_agent=None) -> Session:
    """
    Persists a new active session. Committed before returning so the very
    next request carrying the token can be validated.
    """
    now = utcnow()
    row = Session(
        employee_id=employee_id,
        token_hash=hash_token(token),
        ip_address=ip,
        user_agent=(user_agent or "")[:255],
        created_at=now,
        last_activity_at=now,
        expires_at=expires_at,
        is_active=True,
    )
    db.session.add(row)
    db.session.commit()
    return row


def get_active_session(token: str) -> Optional[Session]:
    if not token:
        return None
    return Session.query.filter_by(token_hash=hash_token(token), is_active=True).first()


def validate_and_refresh(token: str) -> SessionCheck:
    sess = get_active_session(token)
    if not sess:
        return SessionCheck(SessionState.INVALID)

    # Signature only; an elapsed token still reaches the expiry transition below.
    employee_id = verify_token(token, allow_expired=True)
    if employee_id is None or employee_id != sess.employee_id:
        current_app.logger.warning("Session %s presented a token that failed verification", sess.id)
        return SessionCheck(SessionState.INVALID, session=sess)

    now = utcnow()
    state = evaluate(sess.expires_at, sess.last_activity_at, now)
    if state != SessionState.ACTIVE:
        _expire(sess, state, now)
        return SessionCheck(state, session=sess, employee_id=sess.employee_id)

    # last-writer-wins between concurrent requests, but never backwards
    if now > sess.last_activity_at:
        sess.last_activity_at = now
    db.session.commit()
    return SessionCheck(SessionState.ACTIVE, session=sess, employee_id=sess.employee_id)


def _expire(sess: Session, state: SessionState, now) -> None:
    # both windows end as "timeout"; the audit row keeps which one elapsed
    changed = _deactivate(Session.id == sess.id, LOGOUT_TIMEOUT, now)
    current_app.logger.info("Session %s invalidated: %s", sess.id, state.value)
    if changed:
        log_event(
            _TRANSITION_EVENT[state],
            "authentication",
            employee_id=sess.employee_id,
            session_id=sess.id,
            resource_type="session",
            resource_id=sess.id,
            details={"reason": LOGOUT_TIMEOUT, "state": state.value},
        )


def _deactivate(criterion, reason: str, now=None) -> int:
    """
    Conditional bulk update on active rows only, so an already terminated
    session keeps its original reason and is never touched again.
    """
    count = (
        Session.query
        .filter(criterion, Session.is_active.is_(True))
        .update(
            {"is_active": False, "logout_reason": reason, "ended_at": now or utcnow()},
            synchronize_session="fetch",
        )
    )
    db.session.commit()
    return count


def terminate_session(session_id: int = None, token: str = None, reason: str = "manual") -> bool:
    """
    Ends one session by id or by raw token. Idempotent: returns False when
    nothing was active.
    """
    if session_id is not None:
        criterion = Session.id == session_id
    elif token:
        criterion = Session.token_hash == hash_token(token)
    else:
        raise ValueError("terminate_session needs a session_id or a token")
    return _deactivate(criterion, reason) > 0


def terminate_all_for_employee(employee_id: int, reason: str) -> int:
    return _deactivate(Session.employee_id == employee_id, reason)


def force_logout(target_session_id: int, acting_employee_id: int, acting_session_id: int) -> ForceLogoutOutcome:
    target = db.session.get(Session, target_session_id)
    if target is None:
        return ForceLogoutOutcome.NOT_FOUND

    # An admin ends their own current session through the normal logout flow.
    if target.id == acting_session_id:
        return ForceLogoutOutcome.SELF_DENIED

    if not target.is_active:
        return ForceLogoutOutcome.ALREADY_INACTIVE

    if not terminate_session(session_id=target.id, reason=LOGOUT_ADMIN_FORCED):
        return ForceLogoutOutcome.ALREADY_INACTIVE

    current_app.logger.info(
        "Session %s force-logged-out by employee %s", target.id, acting_employee_id
    )
    return ForceLogoutOutcome.TERMINATED


def list_sessions(active_only: bool = True, limit: int = 200):
    q = Session.query
    if active_only:
        q = q.filter_by(is_active=True)
    return q.order_by(Session.last_activity_at.desc()).limit(limit).all()


def sweep_stale_sessions(now=None) -> dict:
    """
    Ends every active session whose absolute or idle window has elapsed.
    Returns counts per state.
    """
    now = now or utcnow()
    counts = {SessionState.EXPIRED.value: 0, SessionState.IDLE_TIMEOUT.value: 0}
    for sess in Session.query.filter_by(is_active=True).all():
        state = evaluate(sess.expires_at, sess.last_activity_at, now)
        if state == SessionState.ACTIVE:
            continue
        _expire(sess, state, now)
        counts[state.value] += 1
    return counts
