from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ...errors import StateError


@dataclass(frozen=True, slots=True)
class StateMachine:
    """
    Canonical transition table for one entity kind.

    States are plain strings (the enum values), so every caller shares one
    definition regardless of which enum type it holds.
    """

    name: str
    transitions: dict[str, frozenset[str]]

    @property
    def terminal_states(self) -> frozenset[str]:
        return frozenset(s for s, nxt in self.transitions.items() if not nxt)

    def can_transition(self, current: Any, target: Any) -> bool:
        return _value(target) in self.transitions.get(_value(current), frozenset())


def _value(state: Any) -> str:
    return str(getattr(state, "value", state) or "").strip().upper()


# PENDING -> APPROVED/REJECTED is the approver decision; APPROVED <-> FILLED is slot arithmetic.
OPPORTUNITY_MACHINE = StateMachine(
    name="opportunity",
    transitions={
        "PENDING": frozenset({"APPROVED", "REJECTED"}),
        "APPROVED": frozenset({"FILLED"}),
        "FILLED": frozenset({"APPROVED"}),
        "REJECTED": frozenset(),
    },
)

# CONFIRMED -> WITHDRAWN only through an approved withdrawal request.
APPLICATION_MACHINE = StateMachine(
    name="application",
    transitions={
        "SUBMITTED": frozenset({"APPROVED", "REJECTED", "WITHDRAWN"}),
        "APPROVED": frozenset({"CONFIRMED", "WITHDRAWN"}),
        "CONFIRMED": frozenset({"WITHDRAWN"}),
        "REJECTED": frozenset(),
        "WITHDRAWN": frozenset(),
    },
)

WITHDRAWAL_MACHINE = StateMachine(
    name="withdrawal",
    transitions={
        "PENDING": frozenset({"APPROVED", "REJECTED"}),
        "APPROVED": frozenset(),
        "REJECTED": frozenset(),
    },
)


def ensure_transition(
    machine: StateMachine,
    current: Any,
    target: Any,
    *,
    operation: str,
    entity_id: str | None = None,
) -> None:
    if machine.can_transition(current, target):
        return
    label = f"{machine.name} {entity_id}" if entity_id else machine.name
    raise StateError(
        message=f"Cannot move {label} from {_value(current)} to {_value(target)}",
        operation=operation,
        entity_id=entity_id,
        details={"from": _value(current), "to": _value(target)},
    )


def ensure_state(
    machine: StateMachine,
    current: Any,
    allowed: set[Any] | frozenset[Any],
    *,
    operation: str,
    entity_id: str | None = None,
) -> None:
    """Guard an operation that is only legal from specific states."""
    allowed_values = {_value(a) for a in allowed}
    if _value(current) in allowed_values:
        return
    raise StateError(
        message=f"{operation} requires {machine.name} status in {sorted(allowed_values)}, got {_value(current)}",
        operation=operation,
        entity_id=entity_id,
        details={"status": _value(current), "allowed": sorted(allowed_values)},
    )
