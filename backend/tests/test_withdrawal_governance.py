from __future__ import annotations

import pytest

from placement.errors import AuthorizationError, StateError, ValidationError
from placement.modules.applications.models import ApplicationStatus, WithdrawalStatus
from placement.modules.opportunities.models import OpportunityStatus


@pytest.fixture
def placed(wf, make_opp):
    """stu_a holds the only slot of a 1-slot opportunity."""
    opp = make_opp(slots=1)
    app = wf.submit("stu_a", opp.id)
    wf.review("rep1", app.id, "APPROVED")
    wf.confirm("stu_a", app.id)
    return opp, app


def test_request_records_pending_withdrawal(wf, placed, clock):
    _, app = placed
    updated = wf.request_withdrawal("stu_a", app.id, "  Moving abroad  ")

    assert updated.status == ApplicationStatus.CONFIRMED
    assert updated.withdrawal is not None
    assert updated.withdrawal.status == WithdrawalStatus.PENDING
    assert updated.withdrawal.reason == "Moving abroad"
    assert updated.withdrawal.requested_on == clock.today()
    assert [a.id for a in wf.pending_withdrawals("staff1")] == [app.id]


def test_approved_withdrawal_frees_the_slot(wf, placed):
    opp, app = placed
    assert wf.get_opportunity(opp.id).status == OpportunityStatus.FILLED

    wf.request_withdrawal("stu_a", app.id, "Family reasons")
    decided = wf.decide_withdrawal("staff1", app.id, "APPROVED")

    assert decided.status == ApplicationStatus.WITHDRAWN
    assert decided.withdrawal.status == WithdrawalStatus.APPROVED
    assert decided.withdrawal.decided_by == "staff1"

    stored = wf.get_opportunity(opp.id)
    assert stored.filled_slots == 0
    assert stored.status == OpportunityStatus.APPROVED
    assert wf.pending_withdrawals("staff1") == []


def test_freed_slot_can_be_taken_by_another_applicant(wf, placed):
    opp, app = placed
    wf.request_withdrawal("stu_a", app.id, "Offer elsewhere")
    wf.decide_withdrawal("staff1", app.id, "approved")

    other = wf.submit("stu_b", opp.id)
    wf.review("rep1", other.id, "APPROVED")
    wf.confirm("stu_b", other.id)
    assert wf.get_opportunity(opp.id).status == OpportunityStatus.FILLED


def test_rejected_withdrawal_keeps_the_placement(wf, placed):
    opp, app = placed
    wf.request_withdrawal("stu_a", app.id, "Changed my mind")
    opportunity_before = wf.get_opportunity(opp.id).model_dump()

    decided = wf.decide_withdrawal("staff1", app.id, WithdrawalStatus.REJECTED)

    assert decided.status == ApplicationStatus.CONFIRMED
    assert decided.withdrawal.status == WithdrawalStatus.REJECTED
    assert decided.withdrawal.decided_by == "staff1"
    stored = wf.get_application(app.id)
    assert stored.status == ApplicationStatus.CONFIRMED
    assert stored.withdrawal.status == WithdrawalStatus.REJECTED
    assert wf.get_opportunity(opp.id).model_dump() == opportunity_before
    assert wf.pending_withdrawals("staff1") == []


def test_only_one_request_per_application(wf, placed):
    _, app = placed
    wf.request_withdrawal("stu_a", app.id, "First")
    with pytest.raises(StateError):
        wf.request_withdrawal("stu_a", app.id, "Second")

    wf.decide_withdrawal("staff1", app.id, "REJECTED")
    with pytest.raises(StateError):
        wf.request_withdrawal("stu_a", app.id, "Third")


def test_request_needs_confirmed_application_and_reason(wf, make_opp, placed):
    _, app = placed
    with pytest.raises(ValidationError):
        wf.request_withdrawal("stu_a", app.id, "   ")
    assert wf.get_application(app.id).withdrawal is None

    other = make_opp(title="Other", owner="rep2")
    submitted = wf.submit("stu_b", other.id)
    with pytest.raises(StateError):
        wf.request_withdrawal("stu_b", submitted.id, "Not placed yet")


def test_decision_is_final(wf, placed):
    _, app = placed
    wf.request_withdrawal("stu_a", app.id, "Reason")
    wf.decide_withdrawal("staff1", app.id, "APPROVED")
    with pytest.raises(StateError):
        wf.decide_withdrawal("staff1", app.id, "REJECTED")


def test_decide_without_request(wf, placed):
    _, app = placed
    with pytest.raises(StateError):
        wf.decide_withdrawal("staff1", app.id, "APPROVED")


def test_decision_must_be_approved_or_rejected(wf, placed):
    _, app = placed
    wf.request_withdrawal("stu_a", app.id, "Reason")
    with pytest.raises(ValidationError):
        wf.decide_withdrawal("staff1", app.id, "PENDING")
    with pytest.raises(ValidationError):
        wf.decide_withdrawal("staff1", app.id, "later")
    assert wf.get_application(app.id).withdrawal.is_pending


def test_only_approvers_decide_and_only_the_applicant_requests(wf, placed):
    _, app = placed
    with pytest.raises(AuthorizationError):
        wf.request_withdrawal("stu_b", app.id, "Not mine")
    wf.request_withdrawal("stu_a", app.id, "Mine")

    with pytest.raises(AuthorizationError):
        wf.decide_withdrawal("rep1", app.id, "APPROVED")
    with pytest.raises(AuthorizationError):
        wf.decide_withdrawal("stu_a", app.id, "APPROVED")
    with pytest.raises(AuthorizationError):
        wf.pending_withdrawals("rep1")
    assert wf.get_application(app.id).status == ApplicationStatus.CONFIRMED


def test_withdrawn_applicant_can_apply_again(wf, make_opp, placed):
    _, app = placed
    wf.request_withdrawal("stu_a", app.id, "Reason")
    wf.decide_withdrawal("staff1", app.id, "APPROVED")

    later = make_opp(title="Later", owner="rep2")
    assert wf.submit("stu_a", later.id).status == ApplicationStatus.SUBMITTED
