"""
Eligibility module.

A pure predicate deciding which opportunities an applicant may see and apply
to. It is re-evaluated on every submit; listings never cache it.
"""

from .eligibility_filter import eligible, filter_eligible, first_ineligibility

__all__ = ["eligible", "filter_eligible", "first_ineligibility"]
