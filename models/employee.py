from enum import Enum

from models.db import db
from utils.timeutil import utcnow, isoformat_utc

ROLE_EMPLOYEE = "employee"
ROLE_ADMIN = "admin"
ROLES = (ROLE_EMPLOYEE, ROLE_ADMIN)


class EmployeeField(str, Enum):
    """Fields an admin may patch on an existing employee. emp_id is never one of them."""
    EMAIL = "email"
    FULL_NAME = "full_name"
    DEPARTMENT = "department"
    ROLE = "role"
    IS_ACTIVE = "is_active"


class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)

    # external, human-assigned code (e.g. EMP001); immutable after creation
    emp_id = db.Column(db.String(32), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(120), nullable=False)
    department = db.Column(db.String(120), nullable=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_EMPLOYEE)

    password_hash = db.Column(db.String(255), nullable=False)

    # soft delete: rows are deactivated, never removed
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    sessions = db.relationship("Session", back_populates="employee", lazy="dynamic")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "emp_id": self.emp_id,
            "email": self.email,
            "full_name": self.full_name,
            "department": self.department,
            "role": self.role,
            "is_active": self.is_active,
            "last_login_at": isoformat_utc(self.last_login_at),
            "created_at": isoformat_utc(self.created_at),
            "updated_at": isoformat_utc(self.updated_at),
        }
