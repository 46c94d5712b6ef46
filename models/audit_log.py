import json

from models.db import db
from utils.timeutil import utcnow, isoformat_utc

CATEGORIES = ("authentication", "content", "security", "admin", "system")
SEVERITIES = ("info", "warning", "critical")


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)  # null for system events
    session_id = db.Column(db.Integer, db.ForeignKey("sessions.id"), nullable=True)

    event_type = db.Column(db.String(80), nullable=False, index=True)  # e.g. login, force_logout
    event_category = db.Column(db.String(32), nullable=False)
    resource_type = db.Column(db.String(80), nullable=True)   # e.g. employee, session
    resource_id = db.Column(db.String(80), nullable=True)

    details_json = db.Column(db.Text, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    severity = db.Column(db.String(16), nullable=False, default="info")

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    actor = db.relationship("Employee", foreign_keys=[employee_id])

    @property
    def details(self) -> dict:
        return json.loads(self.details_json) if self.details_json else {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "session_id": self.session_id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "details": self.details,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "severity": self.severity,
            "created_at": isoformat_utc(self.created_at),
        }
