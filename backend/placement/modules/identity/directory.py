from __future__ import annotations

import threading
from typing import Callable, Iterable

from ...errors import DuplicateError, NotFoundError, ValidationError
from .models import Applicant, Approver, OpportunityOwner
from .roles import ROLE_APPLICANT, ROLE_APPROVER, ROLE_OWNER

Identity = Applicant | OpportunityOwner | Approver


class Directory:
    """
    In-memory identity directory keyed by id.

    Identities handed out are copies; changes go back through `put`.
    Authentication is not done here: callers hand in ids they already trust.
    """

    def __init__(self, identities: Iterable[Identity] = ()):
        self._lock = threading.RLock()
        self._by_id: dict[str, Identity] = {}
        for ident in identities:
            self.add(ident)

    def add(self, identity: Identity) -> Identity:
        iid = str(identity.id or "").strip()
        if not iid:
            raise ValidationError(message="Identity id is required", operation="directory.add")
        with self._lock:
            if iid in self._by_id:
                raise DuplicateError(
                    message=f"Identity {iid} already exists", operation="directory.add", entity_id=iid
                )
            self._by_id[iid] = identity.model_copy(deep=True)
        return identity.model_copy(deep=True)

    def add_unique(
        self,
        identity: Identity,
        *,
        conflict: Callable[[Identity], bool],
        message: str,
        operation: str = "directory.add",
    ) -> Identity:
        """Add `identity` unless an existing one matches `conflict`; scan and insert are one step."""
        with self._lock:
            for existing in self._by_id.values():
                if conflict(existing):
                    raise DuplicateError(message=message, operation=operation, entity_id=existing.id)
            return self.add(identity)

    def put(self, identity: Identity) -> None:
        with self._lock:
            if identity.id not in self._by_id:
                raise NotFoundError(message=f"Identity {identity.id} not found", entity_id=identity.id)
            self._by_id[identity.id] = identity.model_copy(deep=True)

    def get(self, identity_id: str) -> Identity | None:
        with self._lock:
            it = self._by_id.get(str(identity_id or "").strip())
            return it.model_copy(deep=True) if it else None

    def require(self, identity_id: str) -> Identity:
        it = self.get(identity_id)
        if it is None:
            raise NotFoundError(message=f"Identity {identity_id} not found", entity_id=str(identity_id or ""))
        return it

    def _require_role(self, identity_id: str, role: str) -> Identity:
        it = self.require(identity_id)
        if it.role != role:
            raise NotFoundError(
                message=f"Identity {identity_id} is not an {role}",
                entity_id=str(identity_id),
                details={"role": it.role},
            )
        return it

    def applicant(self, identity_id: str) -> Applicant:
        return self._require_role(identity_id, ROLE_APPLICANT)  # type: ignore[return-value]

    def owner(self, identity_id: str) -> OpportunityOwner:
        return self._require_role(identity_id, ROLE_OWNER)  # type: ignore[return-value]

    def approver(self, identity_id: str) -> Approver:
        return self._require_role(identity_id, ROLE_APPROVER)  # type: ignore[return-value]

    def all(self) -> list[Identity]:
        with self._lock:
            return [it.model_copy(deep=True) for it in self._by_id.values()]

    def by_role(self, role: str) -> list[Identity]:
        return [it for it in self.all() if it.role == role]

    def __contains__(self, identity_id: object) -> bool:
        with self._lock:
            return identity_id in self._by_id

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)
