from __future__ import annotations

import pytest

from placement.errors import (
    AuthorizationError,
    CapacityError,
    CapacityOrVisibilityError,
    DuplicateError,
    NotFoundError,
    StateError,
    ValidationError,
)
from placement.modules.applications.models import ApplicationStatus
from placement.modules.opportunities.models import OpportunityStatus


def _statuses(wf, applicant_id: str) -> dict[str, ApplicationStatus]:
    return {a.opportunity_id: a.status for a in wf.applications_for(applicant_id)}


def test_submit_creates_submitted_application(wf, make_opp):
    opp = make_opp()
    app = wf.submit("stu_a", opp.id)

    assert app.status == ApplicationStatus.SUBMITTED
    assert app.pair == ("stu_a", opp.id)
    assert [a.id for a in wf.pending_reviews("rep1")] == [app.id]
    assert wf.pending_reviews("rep2") == []


def test_last_slot_goes_to_first_confirmation(wf, make_opp):
    opp = make_opp(slots=1)
    app_a = wf.submit("stu_a", opp.id)
    app_b = wf.submit("stu_b", opp.id)
    wf.review("rep1", app_a.id, "APPROVED")
    wf.review("rep1", app_b.id, "APPROVED")

    confirmed = wf.confirm("stu_a", app_a.id)
    assert confirmed.status == ApplicationStatus.CONFIRMED

    stored = wf.get_opportunity(opp.id)
    assert stored.filled_slots == 1
    assert stored.status == OpportunityStatus.FILLED

    with pytest.raises(CapacityError):
        wf.confirm("stu_b", app_b.id)
    assert wf.get_application(app_b.id).status == ApplicationStatus.APPROVED
    assert wf.get_opportunity(opp.id).filled_slots == 1


def test_junior_cannot_apply_above_basic(wf, make_opp):
    opp = make_opp(level="INTERMEDIATE")
    with pytest.raises(CapacityOrVisibilityError) as excinfo:
        wf.submit("stu_y1", opp.id)
    assert excinfo.value.details == {"check": "level"}
    assert wf.applications_for("stu_y1") == []


def test_fourth_active_application_is_refused(wf, make_opp):
    opps = [make_opp(title=f"Role {i}") for i in range(4)]
    for opp in opps[:3]:
        wf.submit("stu_a", opp.id)

    with pytest.raises(StateError) as excinfo:
        wf.submit("stu_a", opps[3].id)
    assert excinfo.value.details == {"active": 3, "limit": 3}
    assert len(wf.applications_for("stu_a")) == 3


def test_finished_applications_free_the_active_quota(wf, make_opp):
    opps = [make_opp(title=f"Role {i}") for i in range(4)]
    apps = [wf.submit("stu_a", o.id) for o in opps[:3]]
    wf.review("rep1", apps[0].id, "REJECTED")

    app = wf.submit("stu_a", opps[3].id)
    assert app.status == ApplicationStatus.SUBMITTED


def test_duplicate_application_for_same_pair(wf, make_opp):
    opp = make_opp()
    wf.submit("stu_a", opp.id)
    with pytest.raises(DuplicateError):
        wf.submit("stu_a", opp.id)


def test_rejected_application_still_blocks_the_pair(wf, make_opp):
    opp = make_opp()
    app = wf.submit("stu_a", opp.id)
    wf.review("rep1", app.id, "rejected")
    with pytest.raises(DuplicateError):
        wf.submit("stu_a", opp.id)


def test_reapply_after_withdrawal(wf, make_opp):
    opp = make_opp()
    first = wf.submit("stu_a", opp.id)
    wf.direct_withdraw("stu_a", first.id)

    second = wf.submit("stu_a", opp.id)
    assert second.id != first.id
    assert [a.status for a in wf.applications_for("stu_a")] == [
        ApplicationStatus.WITHDRAWN,
        ApplicationStatus.SUBMITTED,
    ]


def test_confirm_cascades_to_other_active_applications(wf, make_opp):
    target = make_opp(title="Target")
    approved_elsewhere = make_opp(title="Other approved", owner="rep2")
    submitted_elsewhere = make_opp(title="Other submitted", owner="rep2")
    rejected_elsewhere = make_opp(title="Rejected", owner="rep2")

    app = wf.submit("stu_a", target.id)
    other_approved = wf.submit("stu_a", approved_elsewhere.id)
    wf.submit("stu_a", submitted_elsewhere.id)
    wf.review("rep1", app.id, "APPROVED")
    wf.review("rep2", other_approved.id, "APPROVED")

    statuses_before = _statuses(wf, "stu_a")
    assert statuses_before[target.id] == ApplicationStatus.APPROVED

    wf.confirm("stu_a", app.id)

    after = _statuses(wf, "stu_a")
    assert after[target.id] == ApplicationStatus.CONFIRMED
    assert after[approved_elsewhere.id] == ApplicationStatus.WITHDRAWN
    assert after[submitted_elsewhere.id] == ApplicationStatus.WITHDRAWN
    assert rejected_elsewhere.id not in after

    # cascaded withdrawals never held a slot
    assert wf.get_opportunity(approved_elsewhere.id).filled_slots == 0
    assert wf.get_opportunity(target.id).filled_slots == 1


def test_confirm_leaves_rejected_siblings_alone(wf, make_opp):
    target = make_opp(title="Target")
    other = make_opp(title="Other", owner="rep2")
    app = wf.submit("stu_a", target.id)
    rejected = wf.submit("stu_a", other.id)
    wf.review("rep2", rejected.id, "REJECTED")
    wf.review("rep1", app.id, "APPROVED")

    wf.confirm("stu_a", app.id)
    assert wf.get_application(rejected.id).status == ApplicationStatus.REJECTED


def test_failed_confirm_changes_nothing(wf, make_opp):
    full = make_opp(title="Single", slots=1)
    other = make_opp(title="Other", owner="rep2")

    app_a = wf.submit("stu_a", full.id)
    app_b = wf.submit("stu_b", full.id)
    sibling = wf.submit("stu_b", other.id)
    wf.review("rep1", app_a.id, "APPROVED")
    wf.review("rep1", app_b.id, "APPROVED")
    wf.confirm("stu_a", app_a.id)

    before_opps = {o.id: o.model_dump() for o in wf.list_opportunities()}
    before_apps = {a.id: a.model_dump() for a in wf.applications_for("stu_b")}

    with pytest.raises(CapacityError):
        wf.confirm("stu_b", app_b.id)

    assert {o.id: o.model_dump() for o in wf.list_opportunities()} == before_opps
    assert {a.id: a.model_dump() for a in wf.applications_for("stu_b")} == before_apps
    assert wf.get_application(sibling.id).status == ApplicationStatus.SUBMITTED


def test_confirmed_applicant_cannot_apply_again(wf, make_opp):
    opp = make_opp(title="Placed")
    later = make_opp(title="Later", owner="rep2")
    app = wf.submit("stu_a", opp.id)
    wf.review("rep1", app.id, "APPROVED")
    wf.confirm("stu_a", app.id)

    with pytest.raises(StateError):
        wf.submit("stu_a", later.id)


def test_confirm_requires_approved_application(wf, make_opp):
    opp = make_opp()
    app = wf.submit("stu_a", opp.id)
    with pytest.raises(StateError):
        wf.confirm("stu_a", app.id)
    assert wf.get_opportunity(opp.id).filled_slots == 0


def test_review_only_once(wf, make_opp):
    opp = make_opp()
    app = wf.submit("stu_a", opp.id)
    wf.review("rep1", app.id, "APPROVED")
    with pytest.raises(StateError):
        wf.review("rep1", app.id, "REJECTED")


@pytest.mark.parametrize("decision", ["CONFIRMED", "WITHDRAWN", "maybe", ""])
def test_review_rejects_unknown_decisions(wf, make_opp, decision):
    opp = make_opp()
    app = wf.submit("stu_a", opp.id)
    with pytest.raises(ValidationError):
        wf.review("rep1", app.id, decision)
    assert wf.get_application(app.id).status == ApplicationStatus.SUBMITTED


def test_direct_withdraw_only_from_submitted(wf, make_opp):
    opp = make_opp()
    app = wf.submit("stu_a", opp.id)
    wf.review("rep1", app.id, "APPROVED")
    with pytest.raises(StateError):
        wf.direct_withdraw("stu_a", app.id)
    assert wf.get_application(app.id).status == ApplicationStatus.APPROVED


def test_applicant_may_reject_own_submitted_application(wf, make_opp):
    opp = make_opp()
    app = wf.submit("stu_a", opp.id)
    assert wf.reject("stu_a", app.id).status == ApplicationStatus.REJECTED


def test_only_the_owning_representative_reviews(wf, make_opp):
    opp = make_opp()
    app = wf.submit("stu_a", opp.id)
    with pytest.raises(AuthorizationError):
        wf.review("rep2", app.id, "APPROVED")
    with pytest.raises(AuthorizationError):
        wf.review("staff1", app.id, "APPROVED")
    assert wf.get_application(app.id).status == ApplicationStatus.SUBMITTED


def test_applicants_act_only_on_their_own_applications(wf, make_opp):
    opp = make_opp()
    app = wf.submit("stu_a", opp.id)
    wf.review("rep1", app.id, "APPROVED")
    with pytest.raises(AuthorizationError):
        wf.confirm("stu_b", app.id)
    with pytest.raises(AuthorizationError):
        wf.direct_withdraw("stu_b", app.id)
    assert wf.get_application(app.id).status == ApplicationStatus.APPROVED


def test_non_applicants_cannot_submit(wf, make_opp):
    opp = make_opp()
    with pytest.raises(AuthorizationError):
        wf.submit("rep1", opp.id)
    with pytest.raises(AuthorizationError):
        wf.submit("staff1", opp.id)


def test_unknown_ids_are_not_found(wf, make_opp):
    opp = make_opp()
    with pytest.raises(NotFoundError):
        wf.submit("stu_a", "opp_missing")
    with pytest.raises(NotFoundError):
        wf.submit("nobody", opp.id)
    with pytest.raises(NotFoundError):
        wf.confirm("stu_a", "app_missing")


def test_submit_to_unpublished_or_filled_opportunity(wf, make_opp):
    pending = make_opp(title="Pending", approve=False)
    with pytest.raises(CapacityOrVisibilityError) as excinfo:
        wf.submit("stu_a", pending.id)
    assert excinfo.value.details["check"] == "not_approved"

    single = make_opp(title="Single", slots=1)
    app = wf.submit("stu_a", single.id)
    wf.review("rep1", app.id, "APPROVED")
    wf.confirm("stu_a", app.id)
    with pytest.raises(CapacityOrVisibilityError) as excinfo:
        wf.submit("stu_b", single.id)
    assert excinfo.value.details["check"] == "filled"


def test_eligible_opportunities_listing(wf, make_opp):
    basic = make_opp(title="Basic")
    advanced = make_opp(title="Advanced", level="ADVANCED")
    ee_only = make_opp(title="Hardware", majors=["EEE"], owner="rep2")
    make_opp(title="Unapproved", owner="rep2", approve=False)

    assert [o.id for o in wf.eligible_opportunities("stu_y1")] == [basic.id]
    assert [o.id for o in wf.eligible_opportunities("stu_a")] == [basic.id, advanced.id]
    assert {o.id for o in wf.eligible_opportunities("stu_ee")} == {basic.id, advanced.id, ee_only.id}
