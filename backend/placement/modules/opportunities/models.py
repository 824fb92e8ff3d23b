from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...errors import CapacityError, StateError
from ..workflow.stage_machine import OPPORTUNITY_MACHINE, ensure_transition


class OpportunityStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    FILLED = "FILLED"


class OpportunityLevel(str, Enum):
    BASIC = "BASIC"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, OpportunityLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, OpportunityLevel):
            return NotImplemented
        return self.rank <= other.rank

    # str supplies these too, so all four must be defined here.
    def __gt__(self, other: object) -> bool:
        if not isinstance(other, OpportunityLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, OpportunityLevel):
            return NotImplemented
        return self.rank >= other.rank


_LEVEL_RANK = {
    OpportunityLevel.BASIC: 0,
    OpportunityLevel.INTERMEDIATE: 1,
    OpportunityLevel.ADVANCED: 2,
}

# Approved for the approval dimension: FILLED is APPROVED with no capacity left.
APPROVED_STATES = frozenset({OpportunityStatus.APPROVED, OpportunityStatus.FILLED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Opportunity(BaseModel):
    """
    A capacity-bearing internship posting.

    Slot arithmetic lives here and is the only place `filled_slots` changes:
    `reserve_slot` refuses once the posting is full (flipping APPROVED -> FILLED
    on the last slot) and `free_slot` reopens it (FILLED -> APPROVED).
    """

    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    id: str
    title: str
    owner_id: str
    company_name: str = ""
    description: str = ""
    level: OpportunityLevel = OpportunityLevel.BASIC
    preferred_majors: list[str] = Field(default_factory=list)
    open_date: date
    close_date: date
    total_slots: int = 1
    filled_slots: int = 0
    status: OpportunityStatus = OpportunityStatus.PENDING
    visible: bool = False
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("preferred_majors", mode="before")
    @classmethod
    def _normalize_majors(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        out: list[str] = []
        for m in v:
            s = str(m or "").strip()
            if s and s not in out:
                out.append(s)
        return out

    # --- derived state ---

    @property
    def is_approved(self) -> bool:
        return self.status in APPROVED_STATES

    @property
    def is_filled(self) -> bool:
        return self.filled_slots >= self.total_slots

    @property
    def remaining_slots(self) -> int:
        return max(0, self.total_slots - self.filled_slots)

    def is_open_on(self, today: date) -> bool:
        return self.open_date <= today <= self.close_date

    def is_active(self) -> bool:
        """Counts towards an owner's active-posting limit."""
        return self.status == OpportunityStatus.APPROVED and self.visible and not self.is_filled

    def touch(self, at: datetime | None = None) -> None:
        self.updated_at = at or _utcnow()

    # --- approval dimension ---

    def approve(self, *, publish: bool = True) -> None:
        ensure_transition(
            OPPORTUNITY_MACHINE, self.status, OpportunityStatus.APPROVED, operation="approve", entity_id=self.id
        )
        self.status = OpportunityStatus.APPROVED
        if publish:
            self.visible = True

    def reject(self) -> None:
        ensure_transition(
            OPPORTUNITY_MACHINE, self.status, OpportunityStatus.REJECTED, operation="reject", entity_id=self.id
        )
        self.status = OpportunityStatus.REJECTED
        self.visible = False

    def set_visible(self, visible: bool) -> None:
        if visible and not self.is_approved:
            raise StateError(
                message=f"Opportunity {self.id} cannot be made visible before approval",
                operation="set_visible",
                entity_id=self.id,
                details={"status": self.status.value},
            )
        self.visible = bool(visible)

    # --- capacity dimension ---

    def reserve_slot(self) -> None:
        if self.filled_slots >= self.total_slots:
            raise CapacityError(
                message=f"No slots available for {self.title}",
                operation="reserve_slot",
                entity_id=self.id,
                details={"filled": self.filled_slots, "total": self.total_slots},
            )
        self.filled_slots += 1
        if self.filled_slots >= self.total_slots and self.status == OpportunityStatus.APPROVED:
            ensure_transition(
                OPPORTUNITY_MACHINE,
                self.status,
                OpportunityStatus.FILLED,
                operation="reserve_slot",
                entity_id=self.id,
            )
            self.status = OpportunityStatus.FILLED

    def free_slot(self) -> None:
        if self.filled_slots <= 0:
            raise CapacityError(
                message=f"No reserved slot to free on {self.title}",
                operation="free_slot",
                entity_id=self.id,
                details={"filled": self.filled_slots, "total": self.total_slots},
            )
        self.filled_slots -= 1
        if self.status == OpportunityStatus.FILLED:
            self.status = OpportunityStatus.APPROVED

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "company": self.company_name,
            "level": self.level.value,
            "status": self.status.value,
            "slots": f"{self.filled_slots}/{self.total_slots}",
            "visible": self.visible,
        }
