from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ...errors import StateError, ValidationError
from ..workflow.stage_machine import (
    APPLICATION_MACHINE,
    WITHDRAWAL_MACHINE,
    ensure_state,
    ensure_transition,
)


class ApplicationStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CONFIRMED = "CONFIRMED"
    WITHDRAWN = "WITHDRAWN"


class WithdrawalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


ACTIVE_STATUSES = frozenset({ApplicationStatus.SUBMITTED, ApplicationStatus.APPROVED})
TERMINAL_STATUSES = frozenset({ApplicationStatus.REJECTED, ApplicationStatus.WITHDRAWN})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WithdrawalRequest(BaseModel):
    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    applicant_id: str
    reason: str
    requested_on: date
    status: WithdrawalStatus = WithdrawalStatus.PENDING
    decided_by: str | None = None
    decided_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == WithdrawalStatus.PENDING

    def decide(self, *, approver_id: str, decision: WithdrawalStatus, at: datetime) -> None:
        ensure_transition(WITHDRAWAL_MACHINE, self.status, decision, operation="decide_withdrawal")
        self.status = decision
        self.decided_by = approver_id
        self.decided_at = at


class Application(BaseModel):
    """
    One applicant's pursuit of one opportunity.

    Records are identified by id, but two records are "the same application"
    when they share the (applicant_id, opportunity_id) pair; see `pair`.
    """

    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    id: str
    applicant_id: str
    opportunity_id: str
    status: ApplicationStatus = ApplicationStatus.SUBMITTED
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    withdrawal: WithdrawalRequest | None = None

    @property
    def pair(self) -> tuple[str, str]:
        return (self.applicant_id, self.opportunity_id)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_live(self) -> bool:
        """Blocks a new application for the same pair."""
        return self.status != ApplicationStatus.WITHDRAWN

    def _move(self, target: ApplicationStatus, *, operation: str, at: datetime) -> None:
        ensure_transition(APPLICATION_MACHINE, self.status, target, operation=operation, entity_id=self.id)
        self.status = target
        self.updated_at = at

    def review(self, decision: ApplicationStatus, *, at: datetime) -> None:
        if decision not in (ApplicationStatus.APPROVED, ApplicationStatus.REJECTED):
            raise ValidationError(
                message=f"Review decision must be APPROVED or REJECTED, got {getattr(decision, 'value', decision)}",
                operation="review",
                entity_id=self.id,
            )
        ensure_state(APPLICATION_MACHINE, self.status, {ApplicationStatus.SUBMITTED}, operation="review", entity_id=self.id)
        self._move(decision, operation="review", at=at)

    def decline(self, *, at: datetime) -> None:
        ensure_state(APPLICATION_MACHINE, self.status, {ApplicationStatus.SUBMITTED}, operation="reject", entity_id=self.id)
        self._move(ApplicationStatus.REJECTED, operation="reject", at=at)

    def confirm(self, *, at: datetime) -> None:
        ensure_state(APPLICATION_MACHINE, self.status, {ApplicationStatus.APPROVED}, operation="confirm", entity_id=self.id)
        self._move(ApplicationStatus.CONFIRMED, operation="confirm", at=at)

    def withdraw_directly(self, *, at: datetime) -> None:
        ensure_state(
            APPLICATION_MACHINE, self.status, {ApplicationStatus.SUBMITTED}, operation="direct_withdraw", entity_id=self.id
        )
        self._move(ApplicationStatus.WITHDRAWN, operation="direct_withdraw", at=at)

    def withdraw_by_cascade(self, *, at: datetime) -> None:
        ensure_state(APPLICATION_MACHINE, self.status, ACTIVE_STATUSES, operation="confirm_cascade", entity_id=self.id)
        self._move(ApplicationStatus.WITHDRAWN, operation="confirm_cascade", at=at)

    def open_withdrawal(self, *, reason: str, on: date, at: datetime) -> WithdrawalRequest:
        ensure_state(
            APPLICATION_MACHINE,
            self.status,
            {ApplicationStatus.CONFIRMED},
            operation="request_withdrawal",
            entity_id=self.id,
        )
        if self.withdrawal is not None:
            raise StateError(
                message=f"Application {self.id} already has a withdrawal request ({self.withdrawal.status.value})",
                operation="request_withdrawal",
                entity_id=self.id,
            )
        text = str(reason or "").strip()
        if not text:
            raise ValidationError(
                message="A withdrawal reason is required", operation="request_withdrawal", entity_id=self.id
            )
        self.withdrawal = WithdrawalRequest(applicant_id=self.applicant_id, reason=text, requested_on=on)
        self.updated_at = at
        return self.withdrawal

    def close_withdrawal(self, *, approver_id: str, decision: WithdrawalStatus, at: datetime) -> None:
        if self.withdrawal is None:
            raise StateError(
                message=f"Application {self.id} has no withdrawal request",
                operation="decide_withdrawal",
                entity_id=self.id,
            )
        if decision not in (WithdrawalStatus.APPROVED, WithdrawalStatus.REJECTED):
            raise ValidationError(
                message="Withdrawal decision must be APPROVED or REJECTED",
                operation="decide_withdrawal",
                entity_id=self.id,
            )
        if decision == WithdrawalStatus.APPROVED:
            # Check the application side before touching the request so a failure leaves both as-is.
            ensure_transition(
                APPLICATION_MACHINE,
                self.status,
                ApplicationStatus.WITHDRAWN,
                operation="decide_withdrawal",
                entity_id=self.id,
            )
        self.withdrawal.decide(approver_id=approver_id, decision=decision, at=at)
        if decision == WithdrawalStatus.APPROVED:
            self._move(ApplicationStatus.WITHDRAWN, operation="decide_withdrawal", at=at)

    def summary(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "applicantId": self.applicant_id,
            "opportunityId": self.opportunity_id,
            "status": self.status.value,
        }
        if self.withdrawal is not None:
            out["withdrawal"] = self.withdrawal.status.value
        return out
