"""
Day model: NoRecord -> CheckedIn -> CheckedOut, one row per (employee, date).

Timestamps are kept as naive UTC. Every "what day / what hour is it" question
is answered in the company's timezone.
"""
from __future__ import annotations

import calendar
import logging
from datetime import date, datetime
from typing import Optional

import pytz
from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from hrm_api.common.errors import Conflict, Forbidden, NotFound, ValidationError
from hrm_api.extensions import db
from hrm_api.models.attendance import AttendanceRecord
from hrm_api.models.employee import Employee
from hrm_api.models.master import Company
from hrm_api.schemas import AttendanceMarkIn, DeviceInfo
from hrm_api.services import policy
from hrm_api.services.directory import department_in, employee_in
from hrm_api.services.policy import Actor

log = logging.getLogger(__name__)


# ---- time helpers ----

def company_tz(company_id):
    company = db.session.get(Company, company_id)
    name = (company.timezone if company else None) or current_app.config["DEFAULT_TIMEZONE"]
    return pytz.timezone(name)


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


def _as_utc(dt: Optional[datetime], tz) -> datetime:
    """Aware UTC datetime; naive input is read as company-local wall time."""
    if dt is None:
        return utc_now()
    if dt.tzinfo is None:
        dt = tz.localize(dt)
    return dt.astimezone(pytz.utc)


def _naive(dt_utc: datetime) -> datetime:
    return dt_utc.replace(tzinfo=None)


def to_local(naive_utc: datetime, tz) -> datetime:
    return pytz.utc.localize(naive_utc).astimezone(tz)


def local_today(tz) -> date:
    return utc_now().astimezone(tz).date()


def month_bounds(year: int, month: int):
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


# ---- derived fields ----

def derive(check_in: datetime, check_out: datetime, tz, status: str) -> dict:
    """
    Working hours, early departure, overtime and the half-day promotion for a
    closed day. ``check_in`` / ``check_out`` are naive UTC.
    """
    cfg = current_app.config
    hours = round((check_out - check_in).total_seconds() / 3600.0, 2)
    standard = cfg["STANDARD_WORK_HOURS"]
    overtime = round(hours - standard, 2) if hours > standard else 0
    if status == "half-day" and hours >= cfg["HALF_DAY_MIN_HOURS"]:
        status = "present"
    return {
        "working_hours": hours,
        "is_early_departure": to_local(check_out, tz).hour < cfg["EARLY_DEPARTURE_HOUR"],
        "overtime": overtime,
        "status": status,
    }


def _own_employee(actor: Actor) -> Employee:
    if actor.employee_id is None:
        raise NotFound("No employee record for this user")
    return employee_in(actor.company_id, actor.employee_id)


# ---- operations ----

def check_in(actor: Actor, now: Optional[datetime] = None, device: Optional[DeviceInfo] = None) -> AttendanceRecord:
    emp = _own_employee(actor)
    policy.enforce(actor, policy.CREATE, policy.attendance_target(emp))

    tz = company_tz(emp.company_id)
    now_utc = _as_utc(now, tz)
    local = now_utc.astimezone(tz)
    day = local.date()

    if AttendanceRecord.query.filter_by(employee_id=emp.id, date=day).first():
        raise Conflict("Already checked in today")

    late = local.hour > current_app.config["LATE_THRESHOLD_HOUR"]
    device = device or DeviceInfo()
    rec = AttendanceRecord(
        company_id=emp.company_id,
        employee_id=emp.id,
        date=day,
        check_in=_naive(now_utc),
        status="half-day" if late else "present",
        is_late=late,
        device_ip=device.ip,
        device_user_agent=(device.user_agent or "")[:255] or None,
        device_platform=device.platform,
        created_by=actor.id,
    )
    db.session.add(rec)
    try:
        db.session.commit()
    except IntegrityError:
        # a concurrent check-in won the unique (employee_id, date) slot
        db.session.rollback()
        raise Conflict("Already checked in today")

    log.info("check-in employee=%s date=%s late=%s", emp.id, day, late)
    return rec


def check_out(actor: Actor, now: Optional[datetime] = None) -> AttendanceRecord:
    emp = _own_employee(actor)
    policy.enforce(actor, policy.UPDATE, policy.attendance_target(emp))

    tz = company_tz(emp.company_id)
    now_utc = _as_utc(now, tz)
    day = now_utc.astimezone(tz).date()

    rec = AttendanceRecord.query.filter(
        AttendanceRecord.employee_id == emp.id,
        AttendanceRecord.date == day,
        AttendanceRecord.check_in.isnot(None),
        AttendanceRecord.check_out.is_(None),
    ).first()
    if not rec:
        raise NotFound("No check-in found for today or already checked out")

    out = _naive(now_utc)
    if out < rec.check_in:
        raise ValidationError("check-out cannot be before check-in")
    values = derive(rec.check_in, out, tz, rec.status)

    # the open-record guard and the write happen in one statement
    n = (
        AttendanceRecord.query
        .filter(AttendanceRecord.id == rec.id, AttendanceRecord.check_out.is_(None))
        .update(
            {
                AttendanceRecord.check_out: out,
                AttendanceRecord.working_hours: values["working_hours"],
                AttendanceRecord.is_early_departure: values["is_early_departure"],
                AttendanceRecord.overtime: values["overtime"],
                AttendanceRecord.status: values["status"],
                AttendanceRecord.updated_by: actor.id,
                AttendanceRecord.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
    )
    if n != 1:
        db.session.rollback()
        raise NotFound("No check-in found for today or already checked out")
    db.session.commit()
    db.session.refresh(rec)

    log.info("check-out employee=%s date=%s hours=%s", emp.id, day, values["working_hours"])
    return rec


def mark_attendance(actor: Actor, data: AttendanceMarkIn) -> AttendanceRecord:
    """HR/admin upsert of a day, bypassing the check-in/out flow."""
    if not actor.is_admin:
        raise Forbidden("Not authorized")
    emp = employee_in(actor.company_id, data.employee_id)
    policy.enforce(actor, policy.UPDATE, policy.attendance_target(emp))

    tz = company_tz(emp.company_id)
    if data.date > local_today(tz):
        raise ValidationError("Cannot mark attendance for future dates")

    given = data.model_fields_set
    rec = AttendanceRecord.query.filter_by(employee_id=emp.id, date=data.date).first()
    if rec is None:
        rec = AttendanceRecord(
            company_id=emp.company_id,
            employee_id=emp.id,
            date=data.date,
            status=data.status,
            notes=data.notes or "",
            created_by=actor.id,
        )
        db.session.add(rec)
    else:
        if "status" in given:
            rec.status = data.status
        if data.notes:
            rec.notes = data.notes
        rec.updated_by = actor.id

    if data.check_in:
        rec.check_in = _naive(_as_utc(data.check_in, tz))
    if data.check_out:
        rec.check_out = _naive(_as_utc(data.check_out, tz))

    if rec.check_in and rec.check_out:
        if rec.check_out < rec.check_in:
            db.session.rollback()
            raise ValidationError("check_out cannot be before check_in")
        values = derive(rec.check_in, rec.check_out, tz, rec.status)
        rec.working_hours = values["working_hours"]
        rec.is_early_departure = values["is_early_departure"]
        rec.overtime = values["overtime"]
        if "status" not in given:
            rec.status = values["status"]

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("Attendance for this day was recorded concurrently")

    log.info("attendance marked employee=%s date=%s status=%s by=%s", emp.id, data.date, rec.status, actor.id)
    return rec


def department_snapshot(actor: Actor, department_id: int, day: Optional[date] = None):
    """
    Every active employee of the department for ``day``. Employees without a
    row get ``attendance=None`` and ``status='absent'``; nobody is dropped.
    """
    dept = department_in(actor.company_id, department_id)
    policy.enforce(actor, policy.READ, policy.department_target(dept))
    day = day or local_today(company_tz(dept.company_id))

    employees = (
        Employee.query
        .filter_by(company_id=dept.company_id, department_id=dept.id, status="active")
        .order_by(Employee.first_name.asc(), Employee.id.asc())
        .all()
    )
    ids = [e.id for e in employees]
    records = {}
    if ids:
        for r in AttendanceRecord.query.filter(AttendanceRecord.employee_id.in_(ids), AttendanceRecord.date == day):
            records[r.employee_id] = r

    out = []
    for emp in employees:
        rec = records.get(emp.id)
        out.append({"employee": emp, "attendance": rec, "status": rec.status if rec else "absent"})
    return day, out


def _visible_employee(actor: Actor, employee_id: int) -> Employee:
    emp = employee_in(actor.company_id, employee_id)
    policy.enforce(actor, policy.READ, policy.attendance_target(emp), hide=True, what="Employee")
    return emp


def list_attendance(actor: Actor, employee_id: int, start: Optional[date] = None, end: Optional[date] = None):
    emp = _visible_employee(actor, employee_id)
    if not (start and end):
        today = local_today(company_tz(emp.company_id))
        start, end = month_bounds(today.year, today.month)
    if end < start:
        raise ValidationError("end date cannot be before start date")
    return (
        AttendanceRecord.query
        .filter(
            AttendanceRecord.employee_id == emp.id,
            AttendanceRecord.date >= start,
            AttendanceRecord.date <= end,
        )
        .order_by(AttendanceRecord.date.desc())
        .all()
    )


def my_attendance(actor: Actor, month: Optional[int] = None, year: Optional[int] = None):
    emp = _own_employee(actor)
    today = local_today(company_tz(emp.company_id))
    start, end = month_bounds(year or today.year, month or today.month)
    return list_attendance(actor, emp.id, start, end)


def attendance_summary(actor: Actor, employee_id: int, month: Optional[int] = None, year: Optional[int] = None) -> dict:
    emp = _visible_employee(actor, employee_id)
    today = local_today(company_tz(emp.company_id))
    start, end = month_bounds(year or today.year, month or today.month)

    def _count(cond):
        return func.coalesce(func.sum(case((cond, 1), else_=0)), 0)

    row = (
        db.session.query(
            _count(AttendanceRecord.status == "present"),
            _count(AttendanceRecord.status == "absent"),
            _count(AttendanceRecord.status == "half-day"),
            _count(AttendanceRecord.status == "on-leave"),
            _count(AttendanceRecord.is_late.is_(True)),
            _count(AttendanceRecord.is_early_departure.is_(True)),
            func.coalesce(func.sum(AttendanceRecord.working_hours), 0),
            func.coalesce(func.sum(AttendanceRecord.overtime), 0),
        )
        .filter(
            AttendanceRecord.employee_id == emp.id,
            AttendanceRecord.date >= start,
            AttendanceRecord.date <= end,
        )
        .one()
    )
    return {
        "employee_id": emp.id,
        "from": start.isoformat(),
        "to": end.isoformat(),
        "total_present": int(row[0]),
        "total_absent": int(row[1]),
        "total_half_day": int(row[2]),
        "total_leaves": int(row[3]),
        "total_late": int(row[4]),
        "total_early_departure": int(row[5]),
        "total_working_hours": round(float(row[6]), 2),
        "total_overtime": round(float(row[7]), 2),
    }
