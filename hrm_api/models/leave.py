from datetime import datetime
from hrm_api.extensions import db

LEAVE_TYPES = ("sick", "vacation", "personal", "maternity", "paternity", "bereavement", "other")
HALF_DAY_TYPES = ("first-half", "second-half")

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
CANCELLED = "cancelled"
LEAVE_STATUSES = (PENDING, APPROVED, REJECTED, CANCELLED)
# leaves that block an overlapping application
BLOCKING_STATUSES = (PENDING, APPROVED)

class LeaveRequest(db.Model):
    __tablename__ = "leave_requests"
    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    leave_type = db.Column(db.String(20), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    is_half_day = db.Column(db.Boolean, nullable=False, default=False)
    half_day_type = db.Column(db.String(16))
    days = db.Column(db.Numeric(5, 2), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)  # pending|approved|rejected|cancelled
    contact_info = db.Column(db.String(255))
    notes = db.Column(db.Text)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"))
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"))
    approved_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.Text)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_leave_employee_start", "employee_id", "start_date"),
        db.Index("ix_leave_dates", "start_date", "end_date"),
    )

    # Relationships
    employee = db.relationship("Employee", lazy="joined")
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_user_id])
