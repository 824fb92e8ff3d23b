from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(slots=True)
class PlacementError(Exception):
    """Base error for placement engine operations.

    Every failure the engine reports is one of these. They are recoverable by
    the caller and a failed operation never leaves partial changes behind.
    Callers exposing the engine over a transport can render them with
    `placement.problem_details.problem_payload`.
    """

    kind: ClassVar[str] = "placement_error"

    message: str
    operation: str | None = None
    entity_id: str | None = None
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.operation:
            out["operation"] = self.operation
        if self.entity_id:
            out["entityId"] = self.entity_id
        if self.details:
            out["details"] = dict(self.details)
        return out


@dataclass(slots=True)
class ValidationError(PlacementError):
    kind: ClassVar[str] = "validation"


@dataclass(slots=True)
class NotFoundError(ValidationError):
    kind: ClassVar[str] = "not_found"


@dataclass(slots=True)
class AuthorizationError(PlacementError):
    kind: ClassVar[str] = "authorization"


@dataclass(slots=True)
class StateError(PlacementError):
    kind: ClassVar[str] = "state"


@dataclass(slots=True)
class CapacityError(PlacementError):
    kind: ClassVar[str] = "capacity"


@dataclass(slots=True)
class DuplicateError(PlacementError):
    kind: ClassVar[str] = "duplicate"


@dataclass(slots=True)
class CapacityOrVisibilityError(PlacementError):
    """Raised by `submit` when the eligibility filter does not admit the applicant."""

    kind: ClassVar[str] = "ineligible"


@dataclass(slots=True)
class SnapshotError(PlacementError):
    """A persisted snapshot could not be parsed or violates an invariant."""

    kind: ClassVar[str] = "snapshot"

    path: str | None = None
    line_no: int | None = None

    def __str__(self) -> str:
        if self.path and self.line_no:
            return f"{self.path}:{self.line_no}: {self.message}"
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message
