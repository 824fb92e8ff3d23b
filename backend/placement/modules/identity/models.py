from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


RegistrationStatus = Literal["pending", "approved", "rejected"]

# Credential assigned to accounts loaded without one.
DEFAULT_CREDENTIAL = "password"


class IdentityBase(BaseModel):
    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    id: str
    name: str
    credential: str = DEFAULT_CREDENTIAL

    @field_validator("id", "name", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> str:
        return str(v or "").strip()


class Applicant(IdentityBase):
    role: Literal["applicant"] = "applicant"
    year: int = 1
    major: str = ""

    @field_validator("year", mode="before")
    @classmethod
    def _clamp_year(cls, v: Any) -> int:
        try:
            y = int(v)
        except (TypeError, ValueError):
            y = 1
        return max(1, y)

    @field_validator("major", mode="before")
    @classmethod
    def _strip_major(cls, v: Any) -> str:
        return str(v or "").strip()


class OpportunityOwner(IdentityBase):
    role: Literal["owner"] = "owner"
    company_name: str
    department: str = ""
    position: str = ""
    registration: RegistrationStatus = "pending"

    @property
    def is_approved(self) -> bool:
        return self.registration == "approved"


class Approver(IdentityBase):
    role: Literal["approver"] = "approver"
    department: str = ""


Actor = Annotated[Union[Applicant, OpportunityOwner, Approver], Field(discriminator="role")]

_actor_adapter: TypeAdapter[Any] = TypeAdapter(Actor)


def parse_actor(obj: Any) -> Applicant | OpportunityOwner | Approver:
    """Build the right identity variant from a plain dict keyed by `role`."""
    return _actor_adapter.validate_python(obj)
