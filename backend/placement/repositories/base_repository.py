"""
Repository interface for id-keyed pydantic entities.

Implementations hand out copies; callers write changes back explicitly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class Repository(ABC, Generic[T]):
    @abstractmethod
    def get(self, id: str) -> T | None:
        """Get an entity by ID."""
        pass

    @abstractmethod
    def list(self, predicate: Callable[[T], bool] | None = None) -> list[T]:
        """List entities matching a predicate."""
        pass

    @abstractmethod
    def create(self, entity: T) -> T:
        """Create a new entity."""
        pass

    @abstractmethod
    def update(self, entity: T) -> T:
        """Replace an existing entity."""
        pass

    @abstractmethod
    def delete(self, id: str) -> bool:
        """Delete an entity; returns False when it did not exist."""
        pass
