from datetime import datetime

from hrm_api.extensions import db

PLANS = ("free", "pro", "enterprise")


class Company(db.Model):
    """
    A tenant. Its users are kept out of the main application while
    ``plan`` is still NULL (onboarding unfinished) or while ``is_active`` is
    false (suspended).
    """

    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)
    domain = db.Column(db.String(255), nullable=True)
    size = db.Column(db.String(50), nullable=True)
    plan = db.Column(db.String(20), nullable=True)
    owner_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL", use_alter=True),
        nullable=True,
    )
    timezone = db.Column(db.String(64), nullable=False, default="UTC")
    # cleared by a super-admin to suspend the tenant
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    owner = db.relationship("User", foreign_keys=[owner_id], post_update=True)

    @property
    def has_plan(self) -> bool:
        return bool(self.plan)


# Department, per company
class Department(db.Model):
    __tablename__ = "departments"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="RESTRICT"),
        nullable=False,
    )
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    head_id = db.Column(
        db.Integer,
        db.ForeignKey("employees.id", ondelete="SET NULL", use_alter=True),
        nullable=True,
    )
    # active employees pointing at this department; maintained by services.directory
    employee_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("company_id", "name", name="uq_department_company_name"),
    )

    company = db.relationship(
        "Company", backref=db.backref("departments", lazy="dynamic")
    )
    head = db.relationship("Employee", foreign_keys=[head_id], post_update=True)
