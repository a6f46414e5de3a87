"""
Request schemas.

Every write operation validates its body against one of these models before
it reaches a service. Patch shapes are chosen per actor role (see
``employee_patch_schema``) so a field that role may not touch is rejected as
an unknown field instead of being filtered at runtime.

Both snake_case and the browser client's camelCase keys are accepted.
"""
from datetime import date, datetime
from typing import Literal, Optional

import pytz
from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from hrm_api.models.attendance import ATTENDANCE_STATUSES
from hrm_api.models.leave import HALF_DAY_TYPES, LEAVE_TYPES
from hrm_api.models.master import PLANS

LeaveType = Literal[LEAVE_TYPES]
HalfDayType = Literal[HALF_DAY_TYPES]
AttendanceStatus = Literal[ATTENDANCE_STATUSES]
EmployeeStatus = Literal["active", "inactive", "on_leave", "terminated"]
EmployeeRole = Literal["employee", "manager", "hr", "admin"]
Plan = Literal[PLANS]


class _In(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )


# ---------- auth / tenant ----------

class RegisterIn(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    full_name: str = Field(..., min_length=1, validation_alias=AliasChoices("full_name", "fullname", "fullName"))
    email: EmailStr
    password: str = Field(..., min_length=6)
    company: Optional[str] = None


class LoginIn(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    email: EmailStr
    password: str = Field(..., min_length=1)


class ForgotPasswordIn(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    email: EmailStr


class ResetPasswordIn(_In):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)


def _known_timezone(v):
    if v is not None and v not in pytz.all_timezones_set:
        raise ValueError(f"unknown timezone {v!r}")
    return v


class CompanyIn(_In):
    name: str = Field(..., min_length=1, max_length=255)
    domain: Optional[str] = None
    size: Optional[str] = None
    timezone: Optional[str] = None

    known_timezone = field_validator("timezone")(_known_timezone)


class PlanIn(_In):
    plan: Plan


class CompanyProvisionIn(CompanyIn):
    """A tenant created directly by a super-admin; it starts on the free plan unless told otherwise."""
    plan: Plan = "free"


class CompanyAdminPatch(_In):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    domain: Optional[str] = None
    size: Optional[str] = None
    timezone: Optional[str] = None
    plan: Optional[Plan] = None

    known_timezone = field_validator("timezone")(_known_timezone)


# ---------- departments ----------

class DepartmentIn(_In):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    head_id: Optional[int] = None


class DepartmentPatch(_In):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = None
    head_id: Optional[int] = None


# ---------- employees ----------

class EmployeeCreate(_In):
    first_name: str = Field(..., min_length=1, max_length=80)
    last_name: str = Field(..., min_length=1, max_length=80)
    email: EmailStr
    department_id: int = Field(..., validation_alias=AliasChoices("department_id", "departmentId", "department"))
    position: str = Field(..., min_length=1, max_length=120)
    date_of_birth: date
    date_of_joining: date = Field(default_factory=date.today)
    phone: Optional[str] = None
    manager_id: Optional[int] = Field(None, validation_alias=AliasChoices("manager_id", "managerId", "manager"))
    status: EmployeeStatus = "active"
    role: EmployeeRole = "employee"
    notes: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6)


class EmployeeSelfPatch(_In):
    """What anyone may change on their own record."""
    first_name: Optional[str] = Field(None, min_length=1, max_length=80)
    last_name: Optional[str] = Field(None, min_length=1, max_length=80)
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    notes: Optional[str] = None


class EmployeeAdminPatch(EmployeeSelfPatch):
    email: Optional[EmailStr] = None
    position: Optional[str] = Field(None, min_length=1, max_length=120)
    department_id: Optional[int] = Field(None, validation_alias=AliasChoices("department_id", "departmentId", "department"))
    manager_id: Optional[int] = Field(None, validation_alias=AliasChoices("manager_id", "managerId", "manager"))
    date_of_joining: Optional[date] = None
    status: Optional[EmployeeStatus] = None
    role: Optional[EmployeeRole] = None


def employee_patch_schema(role: str):
    if role in ("admin", "hr"):
        return EmployeeAdminPatch
    return EmployeeSelfPatch


# ---------- attendance ----------

class DeviceInfo(BaseModel):
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    platform: Optional[str] = None


class AttendanceMarkIn(_In):
    employee_id: int = Field(..., validation_alias=AliasChoices("employee_id", "employeeId", "employee"))
    date: date
    status: AttendanceStatus = "present"
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _ordered(self):
        if self.check_in and self.check_out and self.check_out < self.check_in:
            raise ValueError("check_out cannot be before check_in")
        return self


# ---------- leaves ----------

class LeaveApplyIn(_In):
    employee_id: Optional[int] = Field(None, validation_alias=AliasChoices("employee_id", "employeeId", "employee"))
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str = Field(..., min_length=1)
    is_half_day: bool = False
    half_day_type: Optional[HalfDayType] = None
    contact_info: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _half_day_shape(self):
        if self.is_half_day and not self.half_day_type:
            raise ValueError("half_day_type is required for a half-day leave")
        if not self.is_half_day and self.half_day_type:
            raise ValueError("half_day_type is only allowed for a half-day leave")
        return self


class LeaveStatusIn(_In):
    status: Literal["approved", "rejected"]
    rejection_reason: Optional[str] = None
