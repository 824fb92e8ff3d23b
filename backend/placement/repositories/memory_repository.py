from __future__ import annotations

import threading
from typing import Callable, Generic, Iterator

from ..errors import DuplicateError, NotFoundError
from .base_repository import Repository, T


class InMemoryRepository(Repository[T], Generic[T]):
    """
    Insertion-ordered table of pydantic entities keyed by `id`.

    Reads return deep copies, so callers can mutate what they get without
    touching stored state. Several repositories may share one lock so a
    multi-table write can be made atomic by the owner of that lock.
    """

    def __init__(self, *, entity_type: str, lock: threading.RLock | None = None):
        self.entity_type = str(entity_type)
        self._lock = lock or threading.RLock()
        self._items: dict[str, T] = {}

    def get(self, id: str) -> T | None:
        with self._lock:
            it = self._items.get(str(id or "").strip())
            return it.model_copy(deep=True) if it is not None else None

    def require(self, id: str) -> T:
        it = self.get(id)
        if it is None:
            raise NotFoundError(message=f"{self.entity_type} {id} not found", entity_id=str(id or ""))
        return it

    def list(self, predicate: Callable[[T], bool] | None = None) -> list[T]:
        with self._lock:
            return [
                it.model_copy(deep=True)
                for it in self._items.values()
                if predicate is None or predicate(it)
            ]

    def create(self, entity: T) -> T:
        eid = str(getattr(entity, "id", "") or "")
        with self._lock:
            if eid in self._items:
                raise DuplicateError(
                    message=f"{self.entity_type} {eid} already exists", operation="create", entity_id=eid
                )
            self._items[eid] = entity.model_copy(deep=True)
        return entity

    def update(self, entity: T) -> T:
        eid = str(getattr(entity, "id", "") or "")
        with self._lock:
            if eid not in self._items:
                raise NotFoundError(message=f"{self.entity_type} {eid} not found", operation="update", entity_id=eid)
            self._items[eid] = entity.model_copy(deep=True)
        return entity

    def upsert(self, entity: T) -> T:
        with self._lock:
            self._items[str(getattr(entity, "id", "") or "")] = entity.model_copy(deep=True)
        return entity

    def delete(self, id: str) -> bool:
        with self._lock:
            return self._items.pop(str(id or "").strip(), None) is not None

    def __contains__(self, id: object) -> bool:
        with self._lock:
            return id in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())
