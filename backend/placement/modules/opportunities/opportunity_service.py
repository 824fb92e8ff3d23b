from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Iterable

from ...errors import ValidationError
from .models import Opportunity, OpportunityLevel, OpportunityStatus


def new_opportunity_id() -> str:
    return "opp_" + uuid.uuid4().hex[:10]


def coerce_level(value: Any, *, operation: str) -> OpportunityLevel:
    if isinstance(value, OpportunityLevel):
        return value
    s = str(value or "").strip().upper()
    try:
        return OpportunityLevel(s)
    except ValueError:
        raise ValidationError(
            message=f"Unknown level {value!r}; expected BASIC, INTERMEDIATE or ADVANCED",
            operation=operation,
        ) from None


def coerce_date(value: Any, *, field: str, operation: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value or "").strip()
    if not s:
        raise ValidationError(message=f"{field} is required", operation=operation)
    try:
        return date.fromisoformat(s)
    except ValueError:
        raise ValidationError(message=f"{field} must be an ISO date (YYYY-MM-DD), got {s!r}", operation=operation) from None


def validate_slots(value: Any, *, max_slots: int, operation: str) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError(message=f"Slot count must be an integer, got {value!r}", operation=operation) from None
    if n <= 0:
        raise ValidationError(message="Slot count must be positive", operation=operation)
    if n > int(max_slots):
        raise ValidationError(message=f"Slot count cannot exceed {int(max_slots)}", operation=operation)
    return n


def validate_window(open_date: date, close_date: date, *, operation: str) -> None:
    if close_date < open_date:
        raise ValidationError(
            message=f"Close date {close_date.isoformat()} is before open date {open_date.isoformat()}",
            operation=operation,
        )


def build_opportunity(
    *,
    owner_id: str,
    company_name: str,
    title: str,
    open_date: Any,
    close_date: Any,
    total_slots: Any,
    max_slots: int,
    now: datetime,
    description: str = "",
    level: Any = OpportunityLevel.BASIC,
    preferred_majors: Iterable[str] | str | None = None,
    opportunity_id: str | None = None,
) -> Opportunity:
    """
    Validate raw creation input and return a new PENDING, hidden opportunity.
    """
    op = "create_opportunity"
    t = str(title or "").strip()
    if not t:
        raise ValidationError(message="Title is required", operation=op)
    company = str(company_name or "").strip()
    if not company:
        raise ValidationError(message="Company name is required", operation=op)

    od = coerce_date(open_date, field="open_date", operation=op)
    cd = coerce_date(close_date, field="close_date", operation=op)
    validate_window(od, cd, operation=op)

    return Opportunity(
        id=str(opportunity_id or "").strip() or new_opportunity_id(),
        title=t,
        owner_id=owner_id,
        company_name=company,
        description=str(description or "").strip(),
        level=coerce_level(level, operation=op),
        preferred_majors=preferred_majors,  # type: ignore[arg-type]
        open_date=od,
        close_date=cd,
        total_slots=validate_slots(total_slots, max_slots=max_slots, operation=op),
        filled_slots=0,
        status=OpportunityStatus.PENDING,
        visible=False,
        created_at=now,
        updated_at=now,
    )


_EDITABLE = ("title", "description", "level", "preferred_majors", "open_date", "close_date", "total_slots")


def apply_edits(opp: Opportunity, changes: dict[str, Any], *, max_slots: int, now: datetime) -> Opportunity:
    """
    Apply owner edits to a PENDING opportunity copy. Unknown keys are rejected;
    None values are ignored.
    """
    op = "update_opportunity"
    unknown = sorted(k for k in changes if k not in _EDITABLE)
    if unknown:
        raise ValidationError(message=f"Fields cannot be edited: {', '.join(unknown)}", operation=op, entity_id=opp.id)

    patch = {k: v for k, v in changes.items() if v is not None}
    if "title" in patch:
        t = str(patch["title"] or "").strip()
        if not t:
            raise ValidationError(message="Title is required", operation=op, entity_id=opp.id)
        opp.title = t
    if "description" in patch:
        opp.description = str(patch["description"] or "").strip()
    if "level" in patch:
        opp.level = coerce_level(patch["level"], operation=op)
    if "preferred_majors" in patch:
        opp.preferred_majors = patch["preferred_majors"]
    od = coerce_date(patch["open_date"], field="open_date", operation=op) if "open_date" in patch else opp.open_date
    cd = coerce_date(patch["close_date"], field="close_date", operation=op) if "close_date" in patch else opp.close_date
    validate_window(od, cd, operation=op)
    opp.open_date = od
    opp.close_date = cd
    if "total_slots" in patch:
        opp.total_slots = validate_slots(patch["total_slots"], max_slots=max_slots, operation=op)
    opp.touch(now)
    return opp


def count_active_for_owner(opportunities: Iterable[Opportunity], owner_id: str) -> int:
    return sum(1 for o in opportunities if o.owner_id == owner_id and o.is_active())
