from __future__ import annotations

from datetime import date, timedelta

import pytest

from placement.modules.eligibility.eligibility_filter import (
    FILLED,
    LEVEL,
    MAJOR,
    NOT_APPROVED,
    NOT_VISIBLE,
    OUTSIDE_WINDOW,
    can_apply_for_level,
    filter_eligible,
    first_ineligibility,
)
from placement.modules.identity.models import Applicant
from placement.modules.opportunities.models import Opportunity, OpportunityLevel, OpportunityStatus

TODAY = date(2025, 3, 10)


def _opp(**kw) -> Opportunity:
    base = dict(
        id="opp_1",
        title="Backend Intern",
        owner_id="rep1",
        company_name="Acme",
        open_date=TODAY - timedelta(days=1),
        close_date=TODAY + timedelta(days=1),
        total_slots=2,
        status=OpportunityStatus.APPROVED,
        visible=True,
    )
    base.update(kw)
    return Opportunity(**base)


def _student(year: int = 3, major: str = "CSC") -> Applicant:
    return Applicant(id="stu", name="Student", year=year, major=major)


@pytest.mark.parametrize(
    ("year", "level", "allowed"),
    [
        (1, OpportunityLevel.BASIC, True),
        (2, OpportunityLevel.BASIC, True),
        (2, OpportunityLevel.INTERMEDIATE, False),
        (1, OpportunityLevel.ADVANCED, False),
        (3, OpportunityLevel.INTERMEDIATE, True),
        (4, OpportunityLevel.ADVANCED, True),
    ],
)
def test_level_rule_by_year(year, level, allowed):
    assert can_apply_for_level(_student(year=year), level) is allowed


def test_eligible_opportunity_has_no_reason():
    assert first_ineligibility(_student(), _opp(), TODAY) is None


def test_window_is_inclusive_on_both_ends():
    opp = _opp(open_date=TODAY, close_date=TODAY)
    assert first_ineligibility(_student(), opp, TODAY) is None
    assert first_ineligibility(_student(), opp, TODAY + timedelta(days=1)) == OUTSIDE_WINDOW
    assert first_ineligibility(_student(), opp, TODAY - timedelta(days=1)) == OUTSIDE_WINDOW


@pytest.mark.parametrize(
    ("changes", "reason"),
    [
        ({"status": OpportunityStatus.PENDING, "visible": False}, NOT_APPROVED),
        ({"status": OpportunityStatus.REJECTED, "visible": False}, NOT_APPROVED),
        ({"visible": False}, NOT_VISIBLE),
        ({"close_date": TODAY - timedelta(days=1), "open_date": TODAY - timedelta(days=3)}, OUTSIDE_WINDOW),
        ({"status": OpportunityStatus.FILLED, "filled_slots": 2}, FILLED),
        ({"level": OpportunityLevel.ADVANCED}, None),
        ({"preferred_majors": ["EEE", "MAE"]}, MAJOR),
    ],
)
def test_each_check_reports_its_reason(changes, reason):
    assert first_ineligibility(_student(), _opp(**changes), TODAY) == reason


def test_checks_short_circuit_in_order():
    # Hidden, full, too senior and wrong major: visibility is reported first.
    opp = _opp(
        visible=False,
        filled_slots=2,
        status=OpportunityStatus.FILLED,
        level=OpportunityLevel.ADVANCED,
        preferred_majors=["EEE"],
    )
    assert first_ineligibility(_student(year=1), opp, TODAY) == NOT_VISIBLE

    opp = _opp(level=OpportunityLevel.ADVANCED, preferred_majors=["EEE"])
    assert first_ineligibility(_student(year=1), opp, TODAY) == LEVEL


def test_empty_preferred_majors_admit_everyone():
    assert first_ineligibility(_student(major="History"), _opp(preferred_majors=[]), TODAY) is None


def test_filter_keeps_input_order():
    opps = [
        _opp(id="a"),
        _opp(id="b", visible=False),
        _opp(id="c", level=OpportunityLevel.INTERMEDIATE),
        _opp(id="d"),
    ]
    assert [o.id for o in filter_eligible(_student(year=2), opps, TODAY)] == ["a", "d"]
    assert [o.id for o in filter_eligible(_student(year=3), opps, TODAY)] == ["a", "c", "d"]
