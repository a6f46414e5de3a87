# hrm_api/blueprints/attendance.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

import pytz
from flask import Blueprint, request

from hrm_api.blueprints.employees import brief
from hrm_api.common.auth import current_actor, requires_onboarded
from hrm_api.common.errors import ValidationError
from hrm_api.common.http import ok
from hrm_api.common.paging import date_arg, int_arg
from hrm_api.models.attendance import AttendanceRecord
from hrm_api.schemas import AttendanceMarkIn, DeviceInfo
from hrm_api.services import attendance_engine

bp = Blueprint("attendance", __name__, url_prefix="/api/v1/attendance")


# ---------- helpers ----------
def _iso_utc(dt: Optional[datetime]):
    return pytz.utc.localize(dt).isoformat() if dt else None


def _row(x: AttendanceRecord):
    return {
        "id": x.id,
        "employee_id": x.employee_id,
        "employee": brief(x.employee),
        "date": x.date.isoformat(),
        "check_in": _iso_utc(x.check_in),
        "check_out": _iso_utc(x.check_out),
        "status": x.status,
        "working_hours": float(x.working_hours or 0),
        "is_late": bool(x.is_late),
        "is_early_departure": bool(x.is_early_departure),
        "overtime": float(x.overtime or 0),
        "notes": x.notes,
        "device": {
            "ip": x.device_ip,
            "user_agent": x.device_user_agent,
            "platform": x.device_platform,
        },
    }


def _device() -> DeviceInfo:
    body = request.get_json(silent=True) or {}
    fwd = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return DeviceInfo(
        ip=fwd or request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        platform=body.get("platform") or request.headers.get("Sec-CH-UA-Platform"),
    )


def _month_year():
    month, year = int_arg("month"), int_arg("year")
    if month is not None and not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    if year is not None and not 1970 <= year <= 9999:
        raise ValidationError("year is out of range")
    return month, year


# ---------- self service ----------
@bp.post("/check-in")
@requires_onboarded
def check_in():
    rec = attendance_engine.check_in(current_actor(), device=_device())
    return ok(_row(rec), status=201)


@bp.post("/check-out")
@requires_onboarded
def check_out():
    return ok(_row(attendance_engine.check_out(current_actor())))


@bp.get("/my-attendance")
@requires_onboarded
def my_attendance():
    month, year = _month_year()
    return ok([_row(r) for r in attendance_engine.my_attendance(current_actor(), month=month, year=year)])


# ---------- per employee ----------
@bp.get("/employee/<int:employee_id>")
@requires_onboarded
def employee_attendance(employee_id: int):
    start = date_arg("startDate", "start_date", "from")
    end = date_arg("endDate", "end_date", "to")
    rows = attendance_engine.list_attendance(current_actor(), employee_id, start, end)
    return ok([_row(r) for r in rows])


@bp.get("/summary/<int:employee_id>")
@requires_onboarded
def summary(employee_id: int):
    month, year = _month_year()
    return ok(attendance_engine.attendance_summary(current_actor(), employee_id, month=month, year=year))


# ---------- admin / hr ----------
@bp.post("/mark")
@requires_onboarded
def mark():
    data = AttendanceMarkIn.model_validate(request.get_json(silent=True) or {})
    return ok(_row(attendance_engine.mark_attendance(current_actor(), data)))


@bp.get("/department/<int:department_id>")
@requires_onboarded
def department(department_id: int):
    day, entries = attendance_engine.department_snapshot(current_actor(), department_id, date_arg("date"))
    out = []
    for e in entries:
        rec = e["attendance"]
        out.append({
            "employee": brief(e["employee"]),
            "status": e["status"],
            "attendance": _row(rec) if rec else None,
        })
    return ok(out, date=day.isoformat(), total=len(out))
