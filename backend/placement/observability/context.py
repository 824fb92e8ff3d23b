from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

operation_id_var: ContextVar[str | None] = ContextVar("operation_id", default=None)
operation_name_var: ContextVar[str | None] = ContextVar("operation_name", default=None)


def get_operation_id() -> str | None:
    return operation_id_var.get()


def get_operation_name() -> str | None:
    return operation_name_var.get()


@contextmanager
def operation_context(name: str, operation_id: str | None = None) -> Iterator[str]:
    """
    Scope one orchestrator operation so every log event inside it carries the
    same operation id. Nested scopes keep the outer id.
    """
    outer = operation_id_var.get()
    oid = outer or (str(operation_id).strip() if operation_id else "") or ("op_" + uuid.uuid4().hex[:12])
    id_token = operation_id_var.set(oid)
    name_token = operation_name_var.set(str(name or "").strip() or None)
    try:
        yield oid
    finally:
        operation_name_var.reset(name_token)
        operation_id_var.reset(id_token)
