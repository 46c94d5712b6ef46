from models.db import db
from utils.timeutil import utcnow, isoformat_utc

LOGOUT_MANUAL = "manual"
LOGOUT_TIMEOUT = "timeout"
LOGOUT_ADMIN_FORCED = "admin_forced"
LOGOUT_ACCOUNT_DELETED = "account_deleted"

LOGOUT_REASONS = (
    LOGOUT_MANUAL,
    LOGOUT_TIMEOUT,
    LOGOUT_ADMIN_FORCED,
    LOGOUT_ACCOUNT_DELETED,
)


class Session(db.Model):
    __tablename__ = "sessions"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)

    # store only hashed token in DB (never store raw token)
    token_hash = db.Column(db.String(128), unique=True, nullable=False, index=True)

    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    last_activity_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)

    # once False, never set back to True; a new login creates a new row
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    logout_reason = db.Column(db.String(32), nullable=True)
    ended_at = db.Column(db.DateTime, nullable=True)

    employee = db.relationship("Employee", back_populates="sessions")

    def to_dict(self, include_employee: bool = False) -> dict:
        out = {
            "id": self.id,
            "employee_id": self.employee_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": isoformat_utc(self.created_at),
            "last_activity_at": isoformat_utc(self.last_activity_at),
            "expires_at": isoformat_utc(self.expires_at),
            "is_active": self.is_active,
            "logout_reason": self.logout_reason,
            "ended_at": isoformat_utc(self.ended_at),
        }
        if include_employee and self.employee is not None:
            out["employee"] = {
                "emp_id": self.employee.emp_id,
                "full_name": self.employee.full_name,
                "email": self.employee.email,
            }
        return out
