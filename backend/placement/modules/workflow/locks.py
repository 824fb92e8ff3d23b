from __future__ import annotations

import threading
from contextlib import ExitStack, contextmanager
from typing import Iterable, Iterator


class AggregateLocks:
    """
    Per-aggregate mutual exclusion.

    Each applicant (their application set), each owner (their active-posting
    count) and each opportunity (its slot counter) has its own lock. `hold`
    always takes applicant locks, then owner locks, then opportunity locks,
    each group in sorted id order, so two operations touching overlapping
    aggregates cannot deadlock.
    """

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._applicants: dict[str, threading.RLock] = {}
        self._owners: dict[str, threading.RLock] = {}
        self._opportunities: dict[str, threading.RLock] = {}

    def _get(self, table: dict[str, threading.RLock], key: str) -> threading.RLock:
        with self._registry_lock:
            lk = table.get(key)
            if lk is None:
                lk = threading.RLock()
                table[key] = lk
            return lk

    @contextmanager
    def hold(
        self,
        *,
        applicants: Iterable[str] = (),
        owners: Iterable[str] = (),
        opportunities: Iterable[str] = (),
    ) -> Iterator[None]:
        groups = (
            (self._applicants, applicants),
            (self._owners, owners),
            (self._opportunities, opportunities),
        )
        with ExitStack() as stack:
            for table, ids in groups:
                for key in sorted({str(i) for i in ids if i}):
                    stack.enter_context(self._get(table, key))
            yield

    def forget(self, *, opportunities: Iterable[str] = ()) -> None:
        """Drop lock entries for aggregates that no longer exist."""
        with self._registry_lock:
            for oid in opportunities:
                self._opportunities.pop(str(oid), None)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._applicants) + len(self._owners) + len(self._opportunities)
