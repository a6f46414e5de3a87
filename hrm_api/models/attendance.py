from datetime import datetime
from hrm_api.extensions import db

ATTENDANCE_STATUSES = ("present", "absent", "half-day", "on-leave", "holiday")

class AttendanceRecord(db.Model):
    """
    One row per employee per local calendar day.

    check_in / check_out are stored as naive UTC; ``date`` is the day in the
    company's timezone the check-in fell on.
    """
    __tablename__ = "attendance_records"
    id = db.Column(db.Integer, primary_key=True)
    company_id  = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    date        = db.Column(db.Date, nullable=False, index=True)
    check_in    = db.Column(db.DateTime, nullable=True)
    check_out   = db.Column(db.DateTime, nullable=True)
    status      = db.Column(db.String(16), nullable=False, default="present", index=True)

    working_hours      = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    is_late            = db.Column(db.Boolean, nullable=False, default=False)
    is_early_departure = db.Column(db.Boolean, nullable=False, default=False)
    overtime           = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    notes              = db.Column(db.Text)

    device_ip         = db.Column(db.String(64))
    device_user_agent = db.Column(db.String(255))
    device_platform   = db.Column(db.String(64))

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("employee_id", "date", name="uq_attendance_employee_date"),
    )

    employee = db.relationship("Employee", lazy="joined")
