from datetime import datetime

import pytest
from pydantic import ValidationError as SchemaError

from hrm_api.common.errors import Conflict, NotFound, ValidationError
from hrm_api.extensions import db
from hrm_api.models.master import Company, Department
from hrm_api.schemas import CompanyAdminPatch, CompanyProvisionIn
from hrm_api.services import tenants


def _provision(name="Initech", **kw):
    return tenants.provision_company(CompanyProvisionIn(name=name, **kw))


def test_provisioned_company_defaults(app):
    c = _provision(domain="initech.com")
    assert c.plan == "free"
    assert c.timezone == app.config["DEFAULT_TIMEZONE"]
    assert c.is_active is True
    assert c.owner_id is None
    assert tenants.get_company(c.id).id == c.id

    with pytest.raises(NotFound):
        tenants.get_company(9999)


def test_provisioning_refuses_taken_name_or_domain(seed):
    seed.tenant("Acme")
    _provision(domain="initech.com")
    with pytest.raises(Conflict):
        _provision("acme")
    with pytest.raises(Conflict):
        _provision("Other", domain="INITECH.com")
    with pytest.raises(SchemaError):
        CompanyProvisionIn(name="Nowhere", timezone="Mars/Base")
    with pytest.raises(SchemaError):
        CompanyProvisionIn(name="Nowhere", plan="gold")


def test_update_company(seed):
    t = seed.tenant("Acme")
    c = _provision()

    updated = tenants.update_company(c.id, CompanyAdminPatch(name="Initrode", plan="pro", timezone="Europe/Paris"))
    assert (updated.name, updated.plan, updated.timezone) == ("Initrode", "pro", "Europe/Paris")

    with pytest.raises(Conflict):
        tenants.update_company(c.id, CompanyAdminPatch(name="ACME"))
    with pytest.raises(ValidationError):
        tenants.update_company(c.id, CompanyAdminPatch())
    with pytest.raises(ValidationError):
        tenants.update_company(c.id, CompanyAdminPatch(plan=None))
    with pytest.raises(NotFound):
        tenants.update_company(9999, CompanyAdminPatch(name="Ghost"))
    assert db.session.get(Company, t.company.id).name == "Acme"


def test_only_empty_companies_are_deleted(seed):
    t = seed.tenant("Acme")
    with pytest.raises(Conflict):
        tenants.delete_company(t.company.id)

    c = _provision()
    db.session.add(Department(company_id=c.id, name="Ops", employee_count=0))
    db.session.commit()
    tenants.delete_company(c.id)
    assert db.session.get(Company, c.id) is None
    assert Department.query.filter_by(company_id=c.id).count() == 0


def test_suspend_and_reactivate(seed):
    t = seed.tenant("Acme")
    assert tenants.set_company_active(t.company.id, False).is_active is False
    # repeating is harmless
    assert tenants.set_company_active(t.company.id, False).is_active is False
    assert tenants.set_company_active(t.company.id, True).is_active is True


def test_company_stats(seed):
    acme = seed.tenant("Acme", plan="free")
    globex = seed.tenant("Globex", plan="pro")
    _provision(plan="enterprise")
    tenants.set_company_active(globex.company.id, False)
    acme.company.created_at = datetime(2020, 1, 1)
    db.session.commit()

    s = tenants.company_stats()
    assert s["total"] == 3
    assert s["active"] == 2
    assert s["suspended"] == 1
    # a suspended tenant is not counted as paying
    assert s["paying"] == 1
    assert s["recent_signups"] == 2
    assert s["plans"] == {"free": 1, "pro": 1, "enterprise": 1}
