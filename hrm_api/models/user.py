from datetime import datetime
from hrm_api.extensions import db
from werkzeug.security import generate_password_hash, check_password_hash

ROLES = ("admin", "employee", "manager", "hr", "super-admin")

class User(db.Model):
    """Login identity. ``role`` here is the authoritative role of the person."""
    __tablename__ = "users"

    id            = db.Column(db.Integer, primary_key=True)
    email         = db.Column(db.String(255), unique=True, index=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name     = db.Column(db.String(255), nullable=False)
    role          = db.Column(db.String(20), nullable=False, default="admin")
    company_id    = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="SET NULL", use_alter=True), nullable=True, index=True)
    is_active     = db.Column(db.Boolean, nullable=False, default=True)
    created_at    = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    company = db.relationship("Company", foreign_keys=[company_id], lazy="joined")

    # --- helpers ---
    @staticmethod
    def normalize_email(raw: str) -> str:
        return (raw or "").strip().lower()

    @classmethod
    def by_email(cls, email: str):
        return cls.query.filter(db.func.lower(cls.email) == cls.normalize_email(email)).first()

    def set_password(self, raw: str):
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)

    @property
    def employee(self):
        from hrm_api.models.employee import Employee  # late import to avoid circulars
        return Employee.query.filter_by(user_id=self.id).first()
