from __future__ import annotations

import uuid
from datetime import date
from enum import Enum
from typing import Any, Iterable, TypeVar

from ...clock import Clock, SystemClock
from ...errors import (
    AuthorizationError,
    CapacityOrVisibilityError,
    DuplicateError,
    StateError,
    ValidationError,
)
from ...observability.context import operation_context
from ...observability.logging import get_logger
from ...repositories.entity_store import EntityStore
from ...repositories.snapshot_repo import Snapshot, reconcile_snapshot
from ...settings import Settings, get_settings
from ..applications.models import Application, ApplicationStatus, WithdrawalStatus
from ..eligibility.eligibility_filter import REASON_MESSAGES, filter_eligible, first_ineligibility
from ..identity import identity_service
from ..identity.authorization import require_capability, require_same_actor
from ..identity.directory import Directory, Identity
from ..identity.models import Applicant, Approver, OpportunityOwner
from ..identity.roles import (
    CAP_APPLY,
    CAP_OPPORTUNITY_APPROVER,
    CAP_REVIEW,
    CAP_SLOT_OWNER,
    CAP_WITHDRAWAL_DECIDER,
)
from ..opportunities.models import Opportunity, OpportunityStatus
from ..opportunities.opportunity_service import apply_edits, build_opportunity, count_active_for_owner
from .locks import AggregateLocks

log = get_logger("placement.workflow")

E = TypeVar("E", bound=Enum)


def _new_application_id() -> str:
    return "app_" + uuid.uuid4().hex[:10]


def _coerce_enum(enum_type: type[E], value: Any, *, operation: str) -> E:
    if isinstance(value, enum_type):
        return value
    s = str(getattr(value, "value", value) or "").strip().upper()
    try:
        return enum_type(s)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_type)  # type: ignore[attr-defined]
        raise ValidationError(
            message=f"Unknown decision {value!r}; expected one of {allowed}", operation=operation
        ) from None


class PlacementWorkflow:
    """
    Orchestrator for the placement lifecycle.

    Every mutating operation follows the same shape:
    1) resolve the actor and check its capability
    2) take the aggregate locks (applicant, then owner, then opportunity)
    3) load fresh copies, compute the whole change on those copies
    4) commit once through `EntityStore.transact_write`

    A failure in 1-3 raises a `PlacementError` before anything is written, so
    state before and after a failed call is identical.
    """

    def __init__(
        self,
        *,
        directory: Directory | None = None,
        store: EntityStore | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        self.directory = directory or Directory()
        self.store = store or EntityStore()
        self.clock: Clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self._locks = AggregateLocks()

    # --- snapshot boundary ---

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Snapshot,
        *,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> "PlacementWorkflow":
        """
        Build an engine from a loaded snapshot after re-validating it.
        See `repositories.snapshot_repo.reconcile_snapshot`.
        """
        s = settings or get_settings()
        clean = reconcile_snapshot(snapshot, settings=s)
        directory = Directory(clean.identities)
        store = EntityStore()
        store.transact_write(creates=[*clean.opportunities, *clean.applications])
        log.info(
            "workflow_loaded_from_snapshot",
            identities=len(clean.identities),
            opportunities=len(clean.opportunities),
            applications=len(clean.applications),
            adjustments=len(clean.adjustments),
        )
        return cls(directory=directory, store=store, clock=clock, settings=s)

    def to_snapshot(self) -> Snapshot:
        view = self.store.view()
        return Snapshot(
            identities=self.directory.all(),
            opportunities=view.opportunities,
            applications=view.applications,
        )

    # --- actor resolution ---

    def _resolve(self, actor: Identity | str) -> Identity:
        """Use the directory's current record for the actor (registration state may have changed)."""
        aid = actor if isinstance(actor, str) else getattr(actor, "id", "")
        return self.directory.require(str(aid or ""))

    # --- owner registration ---

    def register_owner(self, **kwargs: Any) -> OpportunityOwner:
        return identity_service.register_owner(self.directory, **kwargs)

    def approve_owner(self, approver: Approver | str, owner_id: str) -> OpportunityOwner:
        return identity_service.approve_owner(self.directory, self._resolve(approver), owner_id)  # type: ignore[arg-type]

    def reject_owner(self, approver: Approver | str, owner_id: str) -> OpportunityOwner:
        return identity_service.reject_owner(self.directory, self._resolve(approver), owner_id)  # type: ignore[arg-type]

    def pending_owner_registrations(self, approver: Approver | str) -> list[OpportunityOwner]:
        return identity_service.pending_owner_registrations(self.directory, self._resolve(approver))  # type: ignore[arg-type]

    # --- opportunities ---

    def create_opportunity(
        self,
        owner: OpportunityOwner | str,
        *,
        title: str,
        open_date: Any,
        close_date: Any,
        total_slots: Any,
        description: str = "",
        level: Any = "BASIC",
        preferred_majors: Iterable[str] | str | None = None,
        company_name: str | None = None,
    ) -> Opportunity:
        op = "create_opportunity"
        with operation_context(op):
            rep = self._resolve(owner)
            require_capability(rep, CAP_SLOT_OWNER, operation=op)
            if not getattr(rep, "is_approved", False):
                raise AuthorizationError(
                    message=f"Representative {rep.id} is not approved to post opportunities",
                    operation=op,
                    entity_id=rep.id,
                )
            opp = build_opportunity(
                owner_id=rep.id,
                company_name=company_name or getattr(rep, "company_name", ""),
                title=title,
                description=description,
                level=level,
                preferred_majors=preferred_majors,
                open_date=open_date,
                close_date=close_date,
                total_slots=total_slots,
                max_slots=self.settings.max_slots_per_opportunity,
                now=self.clock.now(),
            )
            with self._locks.hold(owners=[rep.id]):
                self._ensure_below_active_limit(rep.id, operation=op)
                self.store.transact_write(creates=[opp])
            log.info("opportunity_created", opportunity_id=opp.id, owner_id=rep.id, total_slots=opp.total_slots)
            return opp

    def _active_count(self, owner_id: str) -> tuple[int, int]:
        active = count_active_for_owner(self.store.opportunities.list(lambda o: o.owner_id == owner_id), owner_id)
        return active, int(self.settings.max_active_opportunities_per_owner)

    def _ensure_below_active_limit(self, owner_id: str, *, operation: str, entity_id: str | None = None) -> None:
        """Caller holds the owner's lock."""
        active, limit = self._active_count(owner_id)
        if active >= limit:
            raise StateError(
                message=f"Representative {owner_id} already has {active} active opportunities (limit {limit})",
                operation=operation,
                entity_id=entity_id or owner_id,
                details={"active": active, "limit": limit},
            )

    def _owned_pending(self, owner: OpportunityOwner | str, opportunity_id: str, *, operation: str) -> tuple[Identity, Opportunity]:
        rep = self._resolve(owner)
        require_capability(rep, CAP_SLOT_OWNER, operation=operation)
        opp = self.store.require_opportunity(opportunity_id)
        require_same_actor(rep, opp.owner_id, operation=operation, entity_id=opp.id)
        if opp.status != OpportunityStatus.PENDING:
            raise StateError(
                message=f"Opportunity {opp.id} can only be changed by its owner while PENDING (is {opp.status.value})",
                operation=operation,
                entity_id=opp.id,
            )
        return rep, opp

    def update_opportunity(self, owner: OpportunityOwner | str, opportunity_id: str, **changes: Any) -> Opportunity:
        op = "update_opportunity"
        with operation_context(op), self._locks.hold(opportunities=[opportunity_id]):
            rep, opp = self._owned_pending(owner, opportunity_id, operation=op)
            apply_edits(opp, changes, max_slots=self.settings.max_slots_per_opportunity, now=self.clock.now())
            self.store.transact_write(puts=[opp])
            log.info("opportunity_updated", opportunity_id=opp.id, owner_id=rep.id, fields=sorted(changes))
            return opp

    def delete_opportunity(self, owner: OpportunityOwner | str, opportunity_id: str) -> None:
        op = "delete_opportunity"
        with operation_context(op):
            with self._locks.hold(opportunities=[opportunity_id]):
                rep, opp = self._owned_pending(owner, opportunity_id, operation=op)
                self.store.transact_write(deletes=[opp])
            self._locks.forget(opportunities=[opportunity_id])
            log.info("opportunity_deleted", opportunity_id=opp.id, owner_id=rep.id)

    def _decide_opportunity(self, approver: Approver | str, opportunity_id: str, *, approve: bool) -> Opportunity:
        op = "approve_opportunity" if approve else "reject_opportunity"
        with operation_context(op):
            staff = self._resolve(approver)
            require_capability(staff, CAP_OPPORTUNITY_APPROVER, operation=op)
            ref = self.store.require_opportunity(opportunity_id)
            with self._locks.hold(owners=[ref.owner_id], opportunities=[opportunity_id]):
                opp = self.store.require_opportunity(opportunity_id)
                if approve:
                    publish = bool(self.settings.publish_on_approval)
                    if publish:
                        active, limit = self._active_count(opp.owner_id)
                        if active >= limit:
                            # Approved but left hidden; the owner can publish once a posting frees up.
                            publish = False
                            log.info(
                                "opportunity_publish_withheld",
                                opportunity_id=opp.id,
                                owner_id=opp.owner_id,
                                active=active,
                                limit=limit,
                            )
                    opp.approve(publish=publish)
                else:
                    opp.reject()
                opp.touch(self.clock.now())
                self.store.transact_write(puts=[opp])
                log.info(
                    "opportunity_decided",
                    opportunity_id=opp.id,
                    approver_id=staff.id,
                    status=opp.status.value,
                    visible=opp.visible,
                )
                return opp

    def approve_opportunity(self, approver: Approver | str, opportunity_id: str) -> Opportunity:
        return self._decide_opportunity(approver, opportunity_id, approve=True)

    def reject_opportunity(self, approver: Approver | str, opportunity_id: str) -> Opportunity:
        return self._decide_opportunity(approver, opportunity_id, approve=False)

    def set_visibility(self, owner: OpportunityOwner | str, opportunity_id: str, visible: bool) -> Opportunity:
        op = "set_visibility"
        with operation_context(op):
            rep = self._resolve(owner)
            require_capability(rep, CAP_SLOT_OWNER, operation=op)
            ref = self.store.require_opportunity(opportunity_id)
            require_same_actor(rep, ref.owner_id, operation=op, entity_id=ref.id)
            with self._locks.hold(owners=[ref.owner_id], opportunities=[opportunity_id]):
                opp = self.store.require_opportunity(opportunity_id)
                was_active = opp.is_active()
                opp.set_visible(bool(visible))
                if opp.is_active() and not was_active:
                    # The stored copy is still hidden, so only the owner's other postings are counted.
                    self._ensure_below_active_limit(opp.owner_id, operation=op, entity_id=opp.id)
                opp.touch(self.clock.now())
                self.store.transact_write(puts=[opp])
                log.info("opportunity_visibility_set", opportunity_id=opp.id, visible=opp.visible)
                return opp

    def toggle_visibility(self, owner: OpportunityOwner | str, opportunity_id: str) -> Opportunity:
        ref = self.store.require_opportunity(opportunity_id)
        # Same lock order as set_visibility; the locks are re-entrant.
        with self._locks.hold(owners=[ref.owner_id], opportunities=[opportunity_id]):
            opp = self.store.require_opportunity(opportunity_id)
            return self.set_visibility(owner, opportunity_id, not opp.visible)

    # --- applications ---

    def submit(self, applicant: Applicant | str, opportunity_id: str) -> Application:
        op = "submit"
        with operation_context(op):
            student = self._resolve(applicant)
            require_capability(student, CAP_APPLY, operation=op)
            with self._locks.hold(applicants=[student.id], opportunities=[opportunity_id]):
                opp = self.store.require_opportunity(opportunity_id)
                reason = first_ineligibility(student, opp, self.clock.today())  # type: ignore[arg-type]
                if reason:
                    raise CapacityOrVisibilityError(
                        message=REASON_MESSAGES.get(reason, "Not eligible for this opportunity"),
                        operation=op,
                        entity_id=opp.id,
                        details={"check": reason},
                    )

                mine = self.store.applications_for_applicant(student.id)
                if any(a.opportunity_id == opp.id and a.is_live for a in mine):
                    raise DuplicateError(
                        message=f"{student.id} has already applied to {opp.title}",
                        operation=op,
                        entity_id=opp.id,
                    )
                if any(a.status == ApplicationStatus.CONFIRMED for a in mine):
                    raise StateError(
                        message="Applicants holding a confirmed placement cannot apply again",
                        operation=op,
                        entity_id=student.id,
                    )
                active = sum(1 for a in mine if a.is_active)
                limit = int(self.settings.max_active_applications)
                if active >= limit:
                    raise StateError(
                        message=f"Maximum of {limit} active applications reached",
                        operation=op,
                        entity_id=student.id,
                        details={"active": active, "limit": limit},
                    )

                now = self.clock.now()
                app = Application(
                    id=_new_application_id(),
                    applicant_id=student.id,
                    opportunity_id=opp.id,
                    status=ApplicationStatus.SUBMITTED,
                    created_at=now,
                    updated_at=now,
                )
                self.store.transact_write(creates=[app])
                log.info("application_submitted", application_id=app.id, applicant_id=student.id, opportunity_id=opp.id)
                return app

    def _load_application(self, application_id: str) -> Application:
        return self.store.require_application(application_id)

    def review(self, owner: OpportunityOwner | str, application_id: str, decision: Any) -> Application:
        op = "review"
        with operation_context(op):
            rep = self._resolve(owner)
            require_capability(rep, CAP_REVIEW, operation=op)
            verdict = _coerce_enum(ApplicationStatus, decision, operation=op)
            ref = self._load_application(application_id)
            with self._locks.hold(applicants=[ref.applicant_id], opportunities=[ref.opportunity_id]):
                app = self._load_application(application_id)
                opp = self.store.require_opportunity(app.opportunity_id)
                require_same_actor(rep, opp.owner_id, operation=op, entity_id=app.id)
                app.review(verdict, at=self.clock.now())
                self.store.transact_write(puts=[app])
                log.info("application_reviewed", application_id=app.id, owner_id=rep.id, decision=verdict.value)
                return app

    def confirm(self, applicant: Applicant | str, application_id: str) -> Application:
        """
        Accept an approved offer: reserve a slot and withdraw every other active
        application of the applicant, all in one commit.
        """
        op = "confirm"
        with operation_context(op):
            student = self._resolve(applicant)
            require_capability(student, CAP_APPLY, operation=op)
            ref = self._load_application(application_id)
            require_same_actor(student, ref.applicant_id, operation=op, entity_id=ref.id)
            with self._locks.hold(applicants=[student.id], opportunities=[ref.opportunity_id]):
                app = self._load_application(application_id)
                opp = self.store.require_opportunity(app.opportunity_id)
                now = self.clock.now()

                app.confirm(at=now)
                opp.reserve_slot()
                opp.touch(now)

                siblings = [
                    a for a in self.store.applications_for_applicant(student.id) if a.id != app.id and a.is_active
                ]
                for sib in siblings:
                    sib.withdraw_by_cascade(at=now)

                self.store.transact_write(puts=[app, opp, *siblings])
                log.info(
                    "application_confirmed",
                    application_id=app.id,
                    applicant_id=student.id,
                    opportunity_id=opp.id,
                    filled=opp.filled_slots,
                    total=opp.total_slots,
                    opportunity_status=opp.status.value,
                    cascaded=[s.id for s in siblings],
                )
                return app

    def _applicant_transition(self, applicant: Applicant | str, application_id: str, *, operation: str) -> Application:
        with operation_context(operation):
            student = self._resolve(applicant)
            require_capability(student, CAP_APPLY, operation=operation)
            ref = self._load_application(application_id)
            require_same_actor(student, ref.applicant_id, operation=operation, entity_id=ref.id)
            with self._locks.hold(applicants=[student.id]):
                app = self._load_application(application_id)
                now = self.clock.now()
                if operation == "direct_withdraw":
                    app.withdraw_directly(at=now)
                else:
                    app.decline(at=now)
                self.store.transact_write(puts=[app])
                log.info("application_closed_by_applicant", application_id=app.id, status=app.status.value)
                return app

    def direct_withdraw(self, applicant: Applicant | str, application_id: str) -> Application:
        """Withdraw a SUBMITTED application; no approval needed and no slot was reserved."""
        return self._applicant_transition(applicant, application_id, operation="direct_withdraw")

    def reject(self, applicant: Applicant | str, application_id: str) -> Application:
        """Applicant-initiated rejection of a SUBMITTED application."""
        return self._applicant_transition(applicant, application_id, operation="reject")

    # --- withdrawal governance ---

    def request_withdrawal(self, applicant: Applicant | str, application_id: str, reason: str) -> Application:
        op = "request_withdrawal"
        with operation_context(op):
            student = self._resolve(applicant)
            require_capability(student, CAP_APPLY, operation=op)
            ref = self._load_application(application_id)
            require_same_actor(student, ref.applicant_id, operation=op, entity_id=ref.id)
            with self._locks.hold(applicants=[student.id]):
                app = self._load_application(application_id)
                app.open_withdrawal(reason=reason, on=self.clock.today(), at=self.clock.now())
                self.store.transact_write(puts=[app])
                log.info("withdrawal_requested", application_id=app.id, applicant_id=student.id)
                return app

    def decide_withdrawal(self, approver: Approver | str, application_id: str, decision: Any) -> Application:
        """
        APPROVED withdraws the confirmed application and frees its slot together;
        REJECTED only records the decision and the placement stands.
        """
        op = "decide_withdrawal"
        with operation_context(op):
            staff = self._resolve(approver)
            require_capability(staff, CAP_WITHDRAWAL_DECIDER, operation=op)
            verdict = _coerce_enum(WithdrawalStatus, decision, operation=op)
            ref = self._load_application(application_id)
            with self._locks.hold(applicants=[ref.applicant_id], opportunities=[ref.opportunity_id]):
                app = self._load_application(application_id)
                now = self.clock.now()
                app.close_withdrawal(approver_id=staff.id, decision=verdict, at=now)
                puts: list[Application | Opportunity] = [app]
                if verdict == WithdrawalStatus.APPROVED:
                    opp = self.store.require_opportunity(app.opportunity_id)
                    opp.free_slot()
                    opp.touch(now)
                    puts.append(opp)
                self.store.transact_write(puts=puts)
                log.info(
                    "withdrawal_decided",
                    application_id=app.id,
                    approver_id=staff.id,
                    decision=verdict.value,
                    application_status=app.status.value,
                )
                return app

    # --- listings (copies; never partial) ---

    def get_opportunity(self, opportunity_id: str) -> Opportunity:
        return self.store.require_opportunity(opportunity_id)

    def get_application(self, application_id: str) -> Application:
        return self.store.require_application(application_id)

    def list_opportunities(self) -> list[Opportunity]:
        return self.store.opportunities.list()

    def eligible_opportunities(self, applicant: Applicant | str, *, today: date | None = None) -> list[Opportunity]:
        student = self._resolve(applicant)
        require_capability(student, CAP_APPLY, operation="eligible_opportunities")
        return filter_eligible(student, self.store.opportunities.list(), today or self.clock.today())  # type: ignore[arg-type]

    def applications_for(self, applicant: Applicant | str) -> list[Application]:
        student = self._resolve(applicant)
        return self.store.applications_for_applicant(student.id)

    def owner_opportunities(self, owner: OpportunityOwner | str) -> list[Opportunity]:
        rep = self._resolve(owner)
        return self.store.opportunities.list(lambda o: o.owner_id == rep.id)

    def pending_reviews(self, owner: OpportunityOwner | str) -> list[Application]:
        rep = self._resolve(owner)
        require_capability(rep, CAP_REVIEW, operation="pending_reviews")
        view = self.store.view()
        mine = {o.id for o in view.opportunities if o.owner_id == rep.id}
        return [a for a in view.applications if a.opportunity_id in mine and a.status == ApplicationStatus.SUBMITTED]

    def pending_opportunities(self, approver: Approver | str) -> list[Opportunity]:
        staff = self._resolve(approver)
        require_capability(staff, CAP_OPPORTUNITY_APPROVER, operation="pending_opportunities")
        return self.store.opportunities.list(lambda o: o.status == OpportunityStatus.PENDING)

    def pending_withdrawals(self, approver: Approver | str) -> list[Application]:
        staff = self._resolve(approver)
        require_capability(staff, CAP_WITHDRAWAL_DECIDER, operation="pending_withdrawals")
        return self.store.applications.list(lambda a: a.withdrawal is not None and a.withdrawal.is_pending)
