from __future__ import annotations

import uuid

from ...errors import StateError, ValidationError
from ...observability.context import operation_context
from ...observability.logging import get_logger
from .authorization import require_capability
from .directory import Directory
from .models import Approver, OpportunityOwner
from .roles import CAP_REGISTRAR, ROLE_OWNER

log = get_logger("placement.identity")


def _new_owner_id() -> str:
    return "own_" + uuid.uuid4().hex[:10]


def register_owner(
    directory: Directory,
    *,
    company_name: str,
    name: str,
    credential: str,
    department: str = "",
    position: str = "",
    owner_id: str | None = None,
) -> OpportunityOwner:
    """
    Self-registration for an opportunity owner.

    The account starts `pending`; it cannot create opportunities until an
    approver accepts the registration. Company names are unique.
    """
    company = str(company_name or "").strip()
    nm = str(name or "").strip()
    cred = str(credential or "").strip()
    if not company or not nm or not cred:
        raise ValidationError(
            message="Company name, name and credential are required",
            operation="register_owner",
        )

    with operation_context("register_owner"):
        owner = OpportunityOwner(
            id=str(owner_id or "").strip() or _new_owner_id(),
            name=nm,
            credential=cred,
            company_name=company,
            department=str(department or "").strip(),
            position=str(position or "").strip(),
            registration="pending",
        )
        directory.add_unique(
            owner,
            conflict=lambda it: it.role == ROLE_OWNER
            and str(getattr(it, "company_name", "")).strip().lower() == company.lower(),
            message=f"A representative for {company} is already registered",
            operation="register_owner",
        )
        log.info("owner_registered", owner_id=owner.id, company=company)
        return owner


def _decide_registration(
    directory: Directory, approver: Approver, owner_id: str, *, decision: str, operation: str
) -> OpportunityOwner:
    require_capability(approver, CAP_REGISTRAR, operation=operation)
    with operation_context(operation):
        owner = directory.owner(owner_id)
        if owner.registration != "pending":
            raise StateError(
                message=f"Registration for {owner.id} was already {owner.registration}",
                operation=operation,
                entity_id=owner.id,
            )
        owner.registration = decision  # type: ignore[assignment]
        directory.put(owner)
        log.info("owner_registration_decided", owner_id=owner.id, decision=decision, approver_id=approver.id)
        return owner


def approve_owner(directory: Directory, approver: Approver, owner_id: str) -> OpportunityOwner:
    return _decide_registration(directory, approver, owner_id, decision="approved", operation="approve_owner")


def reject_owner(directory: Directory, approver: Approver, owner_id: str) -> OpportunityOwner:
    return _decide_registration(directory, approver, owner_id, decision="rejected", operation="reject_owner")


def pending_owner_registrations(directory: Directory, approver: Approver) -> list[OpportunityOwner]:
    require_capability(approver, CAP_REGISTRAR, operation="pending_owner_registrations")
    return [
        o
        for o in directory.by_role(ROLE_OWNER)
        if isinstance(o, OpportunityOwner) and o.registration == "pending"
    ]
