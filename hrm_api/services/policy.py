"""
Authorization policy.

``authorize`` is a pure decision over plain values; it never touches the
database. Callers build the ``Actor`` from the session (see
``hrm_api.common.auth.current_actor``) and a ``Target`` from the row they are
about to read or change (see the ``*_target`` helpers below).

Rules, first match wins:

0. malformed actor / target, or a target in another company -> deny
1. admin, hr      -> anything in their own company (except cancel)
2. manager       -> read/approve/reject leave and attendance of their
                    department, never approve/reject their own
3. self          -> read/update/create own records, cancel own pending leave
4. otherwise     -> deny
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from hrm_api.common.errors import Forbidden, NotFound

log = logging.getLogger(__name__)

READ = "read"
CREATE = "create"
UPDATE = "update"
DELETE = "delete"
APPROVE = "approve"
REJECT = "reject"
CANCEL = "cancel"
ACTIONS = (READ, CREATE, UPDATE, DELETE, APPROVE, REJECT, CANCEL)

KINDS = ("company", "department", "employee", "attendance", "leave")

_ADMIN_ROLES = ("admin", "hr")
_ADMIN_ACTIONS = (READ, CREATE, UPDATE, DELETE, APPROVE, REJECT)
_MANAGER_KINDS = ("leave", "attendance")
_MANAGER_ACTIONS = (READ, APPROVE, REJECT)
_SELF_ACTIONS = (READ, UPDATE)
_SELF_CREATE_KINDS = ("leave", "attendance")


@dataclass(frozen=True)
class Actor:
    id: int
    role: str
    company_id: Optional[int]
    employee_id: Optional[int] = None
    department_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role in _ADMIN_ROLES


@dataclass(frozen=True)
class Target:
    kind: str
    company_id: Optional[int]
    owner_employee_id: Optional[int] = None
    department_id: Optional[int] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    def __bool__(self):
        return self.allowed


ALLOW = Decision(True, "allowed")


def _deny(reason: str) -> Decision:
    return Decision(False, reason)


def authorize(actor: Actor, action: str, target: Target) -> Decision:
    if actor is None or actor.company_id is None:
        return _deny("unauthenticated-context")
    if target is None or target.kind not in KINDS or target.company_id is None:
        return _deny("invalid-target")
    if action not in ACTIONS:
        return _deny("unknown-action")

    if target.company_id != actor.company_id:
        return _deny("cross-tenant")

    # 1. admin / hr
    if actor.role in _ADMIN_ROLES and action in _ADMIN_ACTIONS:
        return ALLOW

    is_self = (
        actor.employee_id is not None
        and target.owner_employee_id is not None
        and target.owner_employee_id == actor.employee_id
    )

    # 2. manager over their department
    if (
        actor.role == "manager"
        and target.kind in _MANAGER_KINDS
        and action in _MANAGER_ACTIONS
        and actor.department_id is not None
        and target.department_id == actor.department_id
        and not (is_self and action in (APPROVE, REJECT))
    ):
        return ALLOW

    # 3. self
    if is_self:
        if action in _SELF_ACTIONS:
            return ALLOW
        if action == CREATE and target.kind in _SELF_CREATE_KINDS:
            return ALLOW
        if action == CANCEL and target.kind == "leave" and target.status == "pending":
            return ALLOW

    return _deny("not-permitted")


def enforce(actor: Actor, action: str, target: Target, hide: bool = False, what: str = "Resource"):
    """
    Raise on deny. ``hide=True`` answers NotFound instead of Forbidden so a
    caller cannot discover rows it is not allowed to see.
    """
    decision = authorize(actor, action, target)
    if decision:
        return decision
    log.warning(
        "policy deny actor=%s role=%s action=%s target=%s reason=%s",
        getattr(actor, "id", None), getattr(actor, "role", None), action, target.kind if target else None,
        decision.reason,
    )
    if hide or decision.reason == "cross-tenant":
        raise NotFound(f"{what} not found")
    raise Forbidden("Not authorized to perform this action", payload={"reason": decision.reason})


# ---------- target builders ----------

def company_target(company_id) -> Target:
    return Target(kind="company", company_id=company_id)


def department_target(dept) -> Target:
    return Target(kind="department", company_id=dept.company_id, department_id=dept.id)


def employee_target(emp) -> Target:
    return Target(
        kind="employee",
        company_id=emp.company_id,
        owner_employee_id=emp.id,
        department_id=emp.department_id,
    )


def attendance_target(emp, status=None) -> Target:
    """Attendance of ``emp`` (record may not exist yet)."""
    return Target(
        kind="attendance",
        company_id=emp.company_id,
        owner_employee_id=emp.id,
        department_id=emp.department_id,
        status=status,
    )


def leave_target(leave=None, emp=None) -> Target:
    emp = emp if emp is not None else leave.employee
    return Target(
        kind="leave",
        company_id=leave.company_id if leave is not None else emp.company_id,
        owner_employee_id=emp.id,
        department_id=emp.department_id,
        status=leave.status if leave is not None else None,
    )
