from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Iterable

from ..errors import DuplicateError, NotFoundError, ValidationError
from ..modules.applications.models import Application
from ..modules.opportunities.models import Opportunity
from .memory_repository import InMemoryRepository


@dataclass(slots=True)
class StoreView:
    """A consistent copy of the whole store taken under one lock."""

    opportunities: list[Opportunity] = field(default_factory=list)
    applications: list[Application] = field(default_factory=list)


class EntityStore:
    """
    Arena of opportunities and applications keyed by id.

    Cross-entity references are ids only. All writes go through
    `transact_write`, which checks every put/delete before applying any of
    them, so a write either lands completely or not at all. Readers get copies
    taken under the same lock and never see half of a write.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.opportunities: InMemoryRepository[Opportunity] = InMemoryRepository(
            entity_type="Opportunity", lock=self._lock
        )
        self.applications: InMemoryRepository[Application] = InMemoryRepository(
            entity_type="Application", lock=self._lock
        )
        # applicant id -> application ids in creation order
        self._by_applicant: dict[str, list[str]] = {}

    # --- reads ---

    def get_opportunity(self, opportunity_id: str) -> Opportunity | None:
        return self.opportunities.get(opportunity_id)

    def require_opportunity(self, opportunity_id: str) -> Opportunity:
        return self.opportunities.require(opportunity_id)

    def get_application(self, application_id: str) -> Application | None:
        return self.applications.get(application_id)

    def require_application(self, application_id: str) -> Application:
        return self.applications.require(application_id)

    def applications_for_applicant(self, applicant_id: str) -> list[Application]:
        with self._lock:
            ids = list(self._by_applicant.get(str(applicant_id or ""), []))
            return [a for a in (self.applications.get(i) for i in ids) if a is not None]

    def applications_for_opportunity(self, opportunity_id: str) -> list[Application]:
        oid = str(opportunity_id or "")
        return self.applications.list(lambda a: a.opportunity_id == oid)

    def view(self) -> StoreView:
        with self._lock:
            return StoreView(opportunities=self.opportunities.list(), applications=self.applications.list())

    # --- writes ---

    def transact_write(
        self,
        *,
        puts: Iterable[Opportunity | Application] = (),
        deletes: Iterable[Opportunity | Application] = (),
        creates: Iterable[Opportunity | Application] = (),
    ) -> dict[str, int]:
        """
        Apply creates/puts/deletes as one unit.

        - creates must not exist yet
        - puts and deletes must already exist
        """
        creates_l = list(creates)
        puts_l = list(puts)
        deletes_l = list(deletes)
        if not (creates_l or puts_l or deletes_l):
            return {"created": 0, "updated": 0, "deleted": 0}

        with self._lock:
            for ent in creates_l:
                if ent.id in self._repo_for(ent):
                    raise DuplicateError(
                        message=f"{type(ent).__name__} {ent.id} already exists",
                        operation="transact_write",
                        entity_id=ent.id,
                    )
            for ent in puts_l + deletes_l:
                if ent.id not in self._repo_for(ent):
                    raise NotFoundError(
                        message=f"{type(ent).__name__} {ent.id} not found",
                        operation="transact_write",
                        entity_id=ent.id,
                    )

            for ent in creates_l:
                self._repo_for(ent).create(ent)
                if isinstance(ent, Application):
                    self._by_applicant.setdefault(ent.applicant_id, []).append(ent.id)
            for ent in puts_l:
                self._repo_for(ent).update(ent)
            for ent in deletes_l:
                self._repo_for(ent).delete(ent.id)
                if isinstance(ent, Application):
                    ids = self._by_applicant.get(ent.applicant_id) or []
                    if ent.id in ids:
                        ids.remove(ent.id)

        return {"created": len(creates_l), "updated": len(puts_l), "deleted": len(deletes_l)}

    def _repo_for(self, ent: Opportunity | Application) -> InMemoryRepository:
        if isinstance(ent, Opportunity):
            return self.opportunities
        if isinstance(ent, Application):
            return self.applications
        raise ValidationError(message=f"Unsupported entity type {type(ent).__name__}", operation="transact_write")
