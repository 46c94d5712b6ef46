from .db import db
from .employee import Employee, EmployeeField
from .session import Session
from .audit_log import AuditLog
