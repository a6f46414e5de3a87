from datetime import datetime
from hrm_api.extensions import db

STATUSES = ("active", "inactive", "on_leave", "terminated")

class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    # business
    company_id    = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id", ondelete="RESTRICT"), nullable=False)
    manager_id    = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    user_id       = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, unique=True)

    employee_code = db.Column(db.String(32), unique=True, nullable=False)   # EMP0001
    email      = db.Column(db.String(255), unique=True, nullable=False)
    first_name = db.Column(db.String(80), nullable=False)
    last_name  = db.Column(db.String(80), nullable=False)
    phone      = db.Column(db.String(20), nullable=True)
    position   = db.Column(db.String(120), nullable=False)

    date_of_joining = db.Column(db.Date, nullable=False)
    date_of_birth   = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), default="active", nullable=False)   # active/inactive/on_leave/terminated
    notes  = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_emp_company_id", "company_id"),
        db.Index("ix_emp_dept_id", "department_id"),
        db.Index("ix_emp_manager_id", "manager_id"),
        db.Index("ix_emp_status", "status"),
    )

    department = db.relationship("Department", foreign_keys=[department_id], lazy="joined")
    manager    = db.relationship("Employee", remote_side=[id], lazy="joined")
    user       = db.relationship("User", lazy="joined")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def role(self):
        # projection of the identity's role; never stored here
        return self.user.role if self.user else None

    @property
    def counts_toward_department(self) -> bool:
        return self.status == "active"
