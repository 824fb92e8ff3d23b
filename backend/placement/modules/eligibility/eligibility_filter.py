from __future__ import annotations

from datetime import date
from typing import Iterable

from ..identity.models import Applicant
from ..opportunities.models import Opportunity, OpportunityLevel, OpportunityStatus

# Check names, in evaluation order.
NOT_APPROVED = "not_approved"
NOT_VISIBLE = "not_visible"
OUTSIDE_WINDOW = "outside_window"
FILLED = "filled"
LEVEL = "level"
MAJOR = "major"

REASON_MESSAGES: dict[str, str] = {
    NOT_APPROVED: "Opportunity is not approved",
    NOT_VISIBLE: "Opportunity is not visible",
    OUTSIDE_WINDOW: "Opportunity is not open for applications today",
    FILLED: "Opportunity has no remaining slots",
    LEVEL: "Year 1/2 applicants can only apply to BASIC opportunities",
    MAJOR: "Applicant's major is not among the preferred majors",
}

# Highest year still restricted to BASIC opportunities.
JUNIOR_YEAR_LIMIT = 2


def can_apply_for_level(applicant: Applicant, level: OpportunityLevel) -> bool:
    if applicant.year <= JUNIOR_YEAR_LIMIT:
        return level == OpportunityLevel.BASIC
    return True


def first_ineligibility(applicant: Applicant, opportunity: Opportunity, today: date) -> str | None:
    """
    Return the first failing check for (applicant, opportunity) on `today`, or
    None when the applicant may see and apply to the opportunity.

    Short-circuits in a fixed order: approval, visibility, date window,
    remaining capacity, level, preferred major.
    """
    if not opportunity.is_approved:
        return NOT_APPROVED
    if not opportunity.visible:
        return NOT_VISIBLE
    if not opportunity.is_open_on(today):
        return OUTSIDE_WINDOW
    if opportunity.status == OpportunityStatus.FILLED or opportunity.remaining_slots <= 0:
        return FILLED
    if not can_apply_for_level(applicant, opportunity.level):
        return LEVEL
    if opportunity.preferred_majors and applicant.major not in opportunity.preferred_majors:
        return MAJOR
    return None


def eligible(applicant: Applicant, opportunity: Opportunity, today: date) -> bool:
    return first_ineligibility(applicant, opportunity, today) is None


def filter_eligible(applicant: Applicant, opportunities: Iterable[Opportunity], today: date) -> list[Opportunity]:
    return [o for o in opportunities if eligible(applicant, o, today)]
