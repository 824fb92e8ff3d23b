from __future__ import annotations

from typing import Any, Iterable, Literal


ROLE_APPLICANT = "applicant"
ROLE_OWNER = "owner"
ROLE_APPROVER = "approver"

Role = Literal["applicant", "owner", "approver"]

# Capabilities are what the workflow checks; roles only decide which ones an actor holds.
CAP_APPLY = "applicant"
CAP_REVIEW = "reviewer"
CAP_SLOT_OWNER = "slot_owner"
CAP_OPPORTUNITY_APPROVER = "opportunity_approver"
CAP_WITHDRAWAL_DECIDER = "withdrawal_decider"
CAP_REGISTRAR = "registrar"

CAPABILITIES_BY_ROLE: dict[str, frozenset[str]] = {
    ROLE_APPLICANT: frozenset({CAP_APPLY}),
    ROLE_OWNER: frozenset({CAP_REVIEW, CAP_SLOT_OWNER}),
    ROLE_APPROVER: frozenset({CAP_OPPORTUNITY_APPROVER, CAP_WITHDRAWAL_DECIDER, CAP_REGISTRAR}),
}


def normalize_role(value: Any) -> str | None:
    """
    Normalize a role label to one of applicant/owner/approver.
    Accepts the legacy labels used in persisted user records.
    """
    s = str(value or "").strip()
    if not s:
        return None
    low = s.lower().replace("_", "").replace("-", "").replace(" ", "")
    if low in ("applicant", "student"):
        return ROLE_APPLICANT
    if low in ("owner", "opportunityowner", "rep", "companyrep", "companyrepresentative"):
        return ROLE_OWNER
    if low in ("approver", "staff", "careercenterstaff"):
        return ROLE_APPROVER
    return None


def capabilities_for(role: Any) -> frozenset[str]:
    r = normalize_role(role)
    if not r:
        return frozenset()
    return CAPABILITIES_BY_ROLE.get(r, frozenset())


def has_capability(actor: Any, want: str) -> bool:
    want2 = str(want or "").strip()
    if not want2 or actor is None:
        return False
    return want2 in capabilities_for(getattr(actor, "role", None))


def has_all(actor: Any, wants: Iterable[str]) -> bool:
    return all(has_capability(actor, w) for w in wants)
