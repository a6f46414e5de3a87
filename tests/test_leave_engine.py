from datetime import date

import pytest
from pydantic import ValidationError as SchemaError

from hrm_api.common.errors import Conflict, Forbidden, InvalidTransition, NotFound, ValidationError
from hrm_api.extensions import db
from hrm_api.models.leave import LeaveRequest
from hrm_api.schemas import LeaveApplyIn
from hrm_api.services import leave_engine, policy
from hrm_api.services.notifications import Notifier


def _apply(actor, start, end, **kw):
    data = LeaveApplyIn(
        leave_type=kw.pop("leave_type", "vacation"),
        start_date=start,
        end_date=end,
        reason=kw.pop("reason", "family trip"),
        **kw,
    )
    return leave_engine.apply(actor, data)


@pytest.fixture
def org(seed):
    t = seed.tenant()
    eng = seed.department(t, "Engineering")
    ops = seed.department(t, "Operations")
    boss = seed.employee(t, eng, "Boss", role="manager")
    ann = seed.employee(t, eng, "Ann", manager=boss)
    ben = seed.employee(t, eng, "Ben", manager=boss)
    olga = seed.employee(t, ops, "Olga", role="manager")
    oscar = seed.employee(t, ops, "Oscar", manager=olga)
    hr = seed.employee(t, ops, "Hana", role="hr")
    return {
        "t": t, "eng": eng, "ops": ops,
        "boss": boss, "ann": ann, "ben": ben, "olga": olga, "oscar": oscar, "hr": hr,
        "actor": seed.actor,
    }


def test_compute_days(app):
    d = date(2024, 1, 1)
    assert leave_engine.compute_days(d, d, False) == 1
    assert leave_engine.compute_days(d, d, True) == 0.5
    assert leave_engine.compute_days(d, date(2024, 1, 5), True) == 0.5
    assert leave_engine.compute_days(d, date(2024, 1, 31), False) == 31
    with pytest.raises(ValidationError):
        leave_engine.compute_days(date(2024, 1, 2), d, False)
    with pytest.raises(ValidationError):
        leave_engine.compute_days(d, date(2024, 6, 1), False)


def test_overlapping_application_is_a_conflict(org):
    me = org["actor"](org["ann"])
    first = _apply(me, date(2024, 6, 1), date(2024, 6, 5))
    assert first.status == "pending"
    assert float(first.days) == 5

    with pytest.raises(Conflict):
        _apply(me, date(2024, 6, 4), date(2024, 6, 6))
    # touching the last day counts as overlap (closed intervals)
    with pytest.raises(Conflict):
        _apply(me, date(2024, 6, 5), date(2024, 6, 5))

    assert _apply(me, date(2024, 6, 6), date(2024, 6, 7)).status == "pending"
    assert LeaveRequest.query.filter_by(employee_id=org["ann"].id).count() == 2

    # another employee is independent
    assert _apply(org["actor"](org["ben"]), date(2024, 6, 1), date(2024, 6, 5))


def test_closed_leaves_do_not_block(org):
    me = org["actor"](org["ann"])
    hr = org["actor"](org["hr"])
    a = _apply(me, date(2024, 7, 1), date(2024, 7, 2))
    leave_engine.set_status(hr, a.id, "rejected", "short staffed")
    b = _apply(me, date(2024, 7, 1), date(2024, 7, 2))
    leave_engine.cancel(me, b.id)
    assert _apply(me, date(2024, 7, 1), date(2024, 7, 2)).status == "pending"


def test_half_day_shape(org):
    me = org["actor"](org["ann"])
    leave = _apply(me, date(2024, 8, 1), date(2024, 8, 1), is_half_day=True, half_day_type="first-half")
    assert float(leave.days) == 0.5
    with pytest.raises(SchemaError):
        LeaveApplyIn(leave_type="sick", start_date=date(2024, 8, 2), end_date=date(2024, 8, 2),
                     reason="x", is_half_day=True)


def test_hr_approval_is_final(org):
    me = org["actor"](org["ann"])
    hr = org["actor"](org["hr"])
    leave = _apply(me, date(2024, 6, 1), date(2024, 6, 5))

    approved = leave_engine.set_status(hr, leave.id, "approved")
    assert approved.status == "approved"
    assert approved.approved_by_user_id == org["hr"].user_id
    assert approved.approved_at is not None

    with pytest.raises(InvalidTransition):
        leave_engine.set_status(hr, leave.id, "rejected", "changed my mind")
    with pytest.raises(NotFound):
        leave_engine.cancel(me, leave.id)
    assert db.session.get(LeaveRequest, leave.id).status == "approved"


def test_manager_of_another_department_is_forbidden(org):
    leave = _apply(org["actor"](org["ann"]), date(2024, 6, 1), date(2024, 6, 2))
    with pytest.raises(Forbidden):
        leave_engine.set_status(org["actor"](org["olga"]), leave.id, "approved")
    assert db.session.get(LeaveRequest, leave.id).status == "pending"

    assert leave_engine.set_status(org["actor"](org["boss"]), leave.id, "approved").status == "approved"


def test_nobody_approves_their_own_leave_as_manager(org):
    boss = org["actor"](org["boss"])
    leave = _apply(boss, date(2024, 9, 1), date(2024, 9, 1))
    with pytest.raises(Forbidden):
        leave_engine.set_status(boss, leave.id, "approved")
    with pytest.raises(Forbidden):
        leave_engine.set_status(org["actor"](org["ann"]), leave.id, "approved")


def test_rejection_needs_a_reason(org):
    hr = org["actor"](org["hr"])
    leave = _apply(org["actor"](org["ann"]), date(2024, 6, 1), date(2024, 6, 2))
    with pytest.raises(ValidationError):
        leave_engine.set_status(hr, leave.id, "rejected", "   ")
    assert db.session.get(LeaveRequest, leave.id).status == "pending"

    rejected = leave_engine.set_status(hr, leave.id, "rejected", "quarter end")
    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "quarter end"


def test_cancel_is_owner_only_and_single_shot(org):
    me = org["actor"](org["ann"])
    leave = _apply(me, date(2024, 6, 1), date(2024, 6, 2))

    for other in ("ben", "boss", "hr"):
        with pytest.raises(NotFound):
            leave_engine.cancel(org["actor"](org[other]), leave.id)

    assert leave_engine.cancel(me, leave.id).status == "cancelled"
    with pytest.raises(NotFound):
        leave_engine.cancel(me, leave.id)
    with pytest.raises(InvalidTransition):
        leave_engine.set_status(org["actor"](org["hr"]), leave.id, "approved")


def test_apply_on_behalf(org):
    hr = org["actor"](org["hr"])
    leave = leave_engine.apply(hr, LeaveApplyIn(
        employee_id=org["ann"].id, leave_type="sick",
        start_date=date(2024, 5, 2), end_date=date(2024, 5, 3), reason="flu",
    ))
    assert leave.employee_id == org["ann"].id
    assert leave.created_by_user_id == org["hr"].user_id

    with pytest.raises(Forbidden):
        leave_engine.apply(org["actor"](org["ben"]), LeaveApplyIn(
            employee_id=org["ann"].id, leave_type="sick",
            start_date=date(2024, 5, 6), end_date=date(2024, 5, 6), reason="flu",
        ))


def test_notifications(org, sent):
    me = org["actor"](org["ann"])
    leave = _apply(me, date(2024, 6, 1), date(2024, 6, 2))
    assert sent[-1][0] == "leave.applied"
    assert sent[-1][1] == org["boss"].user_id

    leave_engine.set_status(org["actor"](org["boss"]), leave.id, "approved")
    assert sent[-1][0] == "leave.approved"
    assert sent[-1][1] == org["ann"].user_id


def test_failing_notifier_does_not_undo_approval(org):
    class Broken(Notifier):
        def notify(self, event, recipient_id, payload):
            raise RuntimeError("smtp down")

    leave = _apply(org["actor"](org["ann"]), date(2024, 6, 1), date(2024, 6, 2))
    done = leave_engine.set_status(org["actor"](org["hr"]), leave.id, "approved", notifier=Broken())
    assert done.status == "approved"
    assert db.session.get(LeaveRequest, leave.id).status == "approved"


def test_team_calendar(org):
    hr = org["actor"](org["hr"])
    boss = org["actor"](org["boss"])

    in_range = _apply(org["actor"](org["ann"]), date(2024, 6, 28), date(2024, 7, 2))
    leave_engine.set_status(hr, in_range.id, "approved")
    _apply(org["actor"](org["ben"]), date(2024, 7, 3), date(2024, 7, 4))  # pending
    outside = _apply(org["actor"](org["ben"]), date(2024, 8, 1), date(2024, 8, 2))
    leave_engine.set_status(hr, outside.id, "approved")
    other_dept = _apply(org["actor"](org["oscar"]), date(2024, 7, 1), date(2024, 7, 1))
    leave_engine.set_status(hr, other_dept.id, "approved")
    boss_own = _apply(boss, date(2024, 7, 15), date(2024, 7, 16))
    leave_engine.set_status(hr, boss_own.id, "approved")

    start, end, rows = leave_engine.team_calendar(boss, date(2024, 7, 1), date(2024, 7, 31))
    # the manager's own leave stays off their team view
    assert [r.id for r in rows] == [in_range.id]

    _, _, everyone = leave_engine.team_calendar(hr, date(2024, 7, 1), date(2024, 7, 31))
    assert {r.id for r in everyone} == {in_range.id, other_dept.id, boss_own.id}

    with pytest.raises(Forbidden):
        leave_engine.team_calendar(boss, date(2024, 7, 1), date(2024, 7, 31), department_id=org["ops"].id)
    with pytest.raises(Forbidden):
        leave_engine.team_calendar(org["actor"](org["ann"]), date(2024, 7, 1), date(2024, 7, 31))


def test_requests_and_stats(org):
    ann = org["actor"](org["ann"])
    boss = org["actor"](org["boss"])
    hr = org["actor"](org["hr"])
    a = _apply(ann, date(2024, 6, 3), date(2024, 6, 4))
    _apply(org["actor"](org["oscar"]), date(2024, 6, 3), date(2024, 6, 3))
    own = _apply(boss, date(2024, 6, 10), date(2024, 6, 10))

    assert [r.id for r in leave_engine.list_requests(boss)] == [a.id]
    assert len(leave_engine.list_requests(hr)) == 3
    with pytest.raises(Forbidden):
        leave_engine.list_requests(ann)

    leave_engine.set_status(hr, a.id, "approved")
    mine = leave_engine.leave_stats(ann, year=2024)
    assert mine["scope"] == "self"
    assert mine["by_status"]["approved"] == {"count": 1, "days": 2.0}
    assert mine["total"] == 1

    team = leave_engine.leave_stats(boss, year=2024)
    assert team["scope"] == "department"
    assert team["by_status"]["pending"]["count"] == 1  # the manager's own request
    assert own.status == "pending"

    company = leave_engine.leave_stats(hr, year=2024)
    assert company["total"] == 3

    assert [l.id for l in leave_engine.my_leaves(ann)] == [a.id]
    assert leave_engine.my_leaves(ann, status="pending") == []


def _rival_after_policy(monkeypatch, write):
    """The next policy check is followed by ``write()``, committed like a second request landing in between."""
    real = policy.enforce

    def enforce_then_write(*args, **kwargs):
        monkeypatch.setattr(policy, "enforce", real)
        decision = real(*args, **kwargs)
        write()
        db.session.commit()
        return decision

    monkeypatch.setattr(policy, "enforce", enforce_then_write)


def test_status_change_loses_to_a_concurrent_cancel(org, monkeypatch):
    lid = _apply(org["actor"](org["ann"]), date(2024, 6, 1), date(2024, 6, 2)).id
    _rival_after_policy(
        monkeypatch,
        lambda: LeaveRequest.query.filter_by(id=lid).update({"status": "cancelled"}, synchronize_session=False),
    )

    with pytest.raises(InvalidTransition):
        leave_engine.set_status(org["actor"](org["hr"]), lid, "approved")

    leave = db.session.get(LeaveRequest, lid)
    assert leave.status == "cancelled"
    assert leave.approved_by_user_id is None


def test_cancel_loses_to_a_concurrent_approval(org, monkeypatch):
    me = org["actor"](org["ann"])
    lid = _apply(me, date(2024, 6, 1), date(2024, 6, 2)).id
    _rival_after_policy(
        monkeypatch,
        lambda: LeaveRequest.query.filter_by(id=lid).update({"status": "approved"}, synchronize_session=False),
    )

    with pytest.raises(NotFound):
        leave_engine.cancel(me, lid)
    assert db.session.get(LeaveRequest, lid).status == "approved"
