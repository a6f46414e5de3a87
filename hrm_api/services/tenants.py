"""
Tenant registry: companies, onboarding (company + plan), super-admin tenant
management, and departments.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import or_

from hrm_api.common.errors import Conflict, Forbidden, NotFound, ValidationError
from hrm_api.common.paging import LIKE_ESCAPE, like_pattern
from hrm_api.extensions import db
from hrm_api.models.employee import Employee
from hrm_api.models.master import Company, Department
from hrm_api.models.user import User
from hrm_api.schemas import CompanyAdminPatch, CompanyIn, CompanyProvisionIn, DepartmentIn, DepartmentPatch, RegisterIn
from hrm_api.services import policy
from hrm_api.services.directory import department_in, employee_in
from hrm_api.services.policy import Actor

log = logging.getLogger(__name__)

PAID_PLANS = ("pro", "enterprise")
RECENT_SIGNUP_DAYS = 30


def _name_taken(name: str, exclude_id=None) -> bool:
    q = Company.query.filter(db.func.lower(Company.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Company.id != exclude_id)
    return db.session.query(q.exists()).scalar()


# ---------- registration / onboarding ----------

def register(data: RegisterIn) -> User:
    """
    Self-service sign up. The new identity administers the company it
    creates; joining an existing company happens through employee creation.
    """
    email = User.normalize_email(data.email)
    if User.by_email(email):
        raise Conflict("User already exists")
    company_name = (data.company or "").strip()
    if company_name and _name_taken(company_name):
        raise Conflict("Company name is already registered")

    try:
        user = User(email=email, full_name=data.full_name, role="admin", is_active=True)
        user.set_password(data.password)
        db.session.add(user)
        db.session.flush()
        if company_name:
            company = Company(
                name=company_name,
                owner_id=user.id,
                timezone=current_app.config["DEFAULT_TIMEZONE"],
            )
            db.session.add(company)
            db.session.flush()
            user.company_id = company.id
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    log.info("registered user=%s company=%s", user.id, user.company_id)
    return user


def save_company(user: User, data: CompanyIn) -> Company:
    """Onboarding step 1: create the caller's company or update its profile."""
    company = user.company
    if company is not None and user.role != "admin":
        raise Forbidden("Only an admin can change company details")
    if _name_taken(data.name, exclude_id=company.id if company else None):
        raise Conflict("Company name is already registered")

    try:
        if company is None:
            company = Company(
                name=data.name,
                owner_id=user.id,
                timezone=data.timezone or current_app.config["DEFAULT_TIMEZONE"],
            )
            db.session.add(company)
            db.session.flush()
            user.company_id = company.id
            if user.role not in ("admin", "super-admin"):
                user.role = "admin"
        else:
            company.name = data.name
            if data.timezone:
                company.timezone = data.timezone
        if data.domain is not None:
            company.domain = data.domain
        if data.size is not None:
            company.size = data.size
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    log.info("company saved id=%s by user=%s", company.id, user.id)
    return company


def set_plan(user: User, plan: str) -> Company:
    """Onboarding step 2."""
    company = user.company
    if company is None:
        raise NotFound("Company not found in user data")
    if user.role != "admin":
        raise Forbidden("Only an admin can choose the plan")
    company.plan = plan
    if company.owner_id is None:
        company.owner_id = user.id
    db.session.commit()
    log.info("company plan set id=%s plan=%s", company.id, plan)
    return company


def company_status(user: User) -> dict:
    company = user.company
    if company is None:
        raise ValidationError("Company not found in user data")
    return {"company": company, "has_plan": company.has_plan}


# ---------- super-admin: tenant management ----------

def _company(company_id: int) -> Company:
    c = db.session.get(Company, company_id)
    if c is None:
        raise NotFound("Company not found")
    return c


def _domain_taken(domain: str, exclude_id=None) -> bool:
    q = Company.query.filter(db.func.lower(Company.domain) == domain.lower())
    if exclude_id is not None:
        q = q.filter(Company.id != exclude_id)
    return db.session.query(q.exists()).scalar()


def list_companies(q=None, page=1, size=20):
    """Cross-tenant listing; callers must be super-admin."""
    qry = Company.query
    if q:
        like = like_pattern(q)
        qry = qry.filter(or_(
            Company.name.ilike(like, escape=LIKE_ESCAPE),
            Company.domain.ilike(like, escape=LIKE_ESCAPE),
        ))
    total = qry.count()
    items = qry.order_by(Company.created_at.desc(), Company.id.desc()).offset((page - 1) * size).limit(size).all()
    return items, total


def get_company(company_id: int) -> Company:
    return _company(company_id)


def provision_company(data: CompanyProvisionIn) -> Company:
    """A tenant created by a super-admin, without an owner until someone claims it."""
    if _name_taken(data.name):
        raise Conflict("Company name is already registered")
    if data.domain and _domain_taken(data.domain):
        raise Conflict("Domain is already in use")

    company = Company(
        name=data.name,
        domain=data.domain,
        size=data.size,
        plan=data.plan,
        timezone=data.timezone or current_app.config["DEFAULT_TIMEZONE"],
        is_active=True,
    )
    db.session.add(company)
    db.session.commit()
    log.info("company provisioned id=%s plan=%s", company.id, company.plan)
    return company


def update_company(company_id: int, data: CompanyAdminPatch) -> Company:
    company = _company(company_id)
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("Nothing to update")

    for field in ("name", "timezone", "plan"):
        if field in changes and not changes[field]:
            raise ValidationError(f"{field} cannot be empty")
    if "name" in changes and _name_taken(changes["name"], exclude_id=company.id):
        raise Conflict("Company name is already registered")
    if changes.get("domain") and _domain_taken(changes["domain"], exclude_id=company.id):
        raise Conflict("Domain is already in use")

    for field, value in changes.items():
        setattr(company, field, value)
    db.session.commit()
    log.info("company updated id=%s fields=%s", company.id, sorted(changes))
    return company


def delete_company(company_id: int):
    """Only an empty tenant can be removed; one with people in it is suspended instead."""
    company = _company(company_id)
    if (
        User.query.filter_by(company_id=company.id).first()
        or Employee.query.filter_by(company_id=company.id).first()
    ):
        raise Conflict("Company still has users; suspend it instead")

    Department.query.filter_by(company_id=company.id).delete(synchronize_session=False)
    db.session.delete(company)
    db.session.commit()
    log.info("company deleted id=%s", company_id)


def set_company_active(company_id: int, active: bool) -> Company:
    company = _company(company_id)
    if company.is_active != active:
        company.is_active = active
        db.session.commit()
    log.info("company %s id=%s", "reactivated" if active else "suspended", company.id)
    return company


def company_stats(now: Optional[datetime] = None) -> dict:
    """Platform-wide tenant counts for the super-admin dashboard."""
    since = (now or datetime.utcnow()) - timedelta(days=RECENT_SIGNUP_DAYS)
    total = Company.query.count()
    active = Company.query.filter(Company.is_active.is_(True)).count()
    paying = Company.query.filter(Company.is_active.is_(True), Company.plan.in_(PAID_PLANS)).count()
    recent = Company.query.filter(Company.created_at >= since).count()
    plans = (
        db.session.query(Company.plan, db.func.count(Company.id))
        .group_by(Company.plan)
        .all()
    )
    return {
        "total": total,
        "active": active,
        "suspended": total - active,
        "paying": paying,
        "recent_signups": recent,
        "plans": {(plan or "none"): n for plan, n in plans},
    }


# ---------- departments ----------

def _dupe_department(company_id, name, exclude_id=None) -> bool:
    q = Department.query.filter(
        Department.company_id == company_id,
        db.func.lower(Department.name) == name.lower(),
    )
    if exclude_id is not None:
        q = q.filter(Department.id != exclude_id)
    return db.session.query(q.exists()).scalar()


def list_departments(actor: Actor):
    # any member of the company may see the department list
    if actor.company_id is None:
        raise Forbidden("Not authorized to perform this action")
    return Department.query.filter_by(company_id=actor.company_id).order_by(Department.name.asc()).all()


def get_department(actor: Actor, department_id: int) -> Department:
    if actor.company_id is None:
        raise NotFound("Department not found")
    return department_in(actor.company_id, department_id)


def create_department(actor: Actor, data: DepartmentIn) -> Department:
    policy.enforce(actor, policy.CREATE, policy.company_target(actor.company_id))
    if _dupe_department(actor.company_id, data.name):
        raise Conflict("Department with same name already exists for this company")
    if data.head_id is not None:
        employee_in(actor.company_id, data.head_id)

    dept = Department(
        company_id=actor.company_id,
        name=data.name,
        description=data.description,
        head_id=data.head_id,
        employee_count=0,
    )
    db.session.add(dept)
    db.session.commit()
    log.info("department created id=%s company=%s", dept.id, dept.company_id)
    return dept


def update_department(actor: Actor, department_id: int, data: DepartmentPatch) -> Department:
    dept = department_in(actor.company_id, department_id)
    policy.enforce(actor, policy.UPDATE, policy.department_target(dept))
    changes = data.model_dump(exclude_unset=True)

    if "name" in changes:
        if not changes["name"]:
            raise ValidationError("name cannot be empty")
        if _dupe_department(actor.company_id, changes["name"], exclude_id=dept.id):
            raise Conflict("Department with same name already exists for this company")
    if changes.get("head_id") is not None:
        employee_in(actor.company_id, changes["head_id"])

    for field, value in changes.items():
        setattr(dept, field, value)
    db.session.commit()
    return dept


def delete_department(actor: Actor, department_id: int):
    dept = department_in(actor.company_id, department_id)
    policy.enforce(actor, policy.DELETE, policy.department_target(dept))
    if Employee.query.filter_by(department_id=dept.id).first():
        raise Conflict("Department still has employees")
    db.session.delete(dept)
    db.session.commit()
    log.info("department deleted id=%s company=%s", department_id, actor.company_id)
