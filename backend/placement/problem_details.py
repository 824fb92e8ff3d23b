"""
RFC7807-style rendering of `PlacementError`.

The engine has no transport of its own; an API layer or CLI embedding it can
return `problem_payload(err)` with `PROBLEM_JSON` as the content type.
"""

from __future__ import annotations

from typing import Any

from .errors import PlacementError
from .settings import get_settings

PROBLEM_JSON = "application/problem+json"

_STATUS_BY_KIND: dict[str, int] = {
    "validation": 400,
    "not_found": 404,
    "authorization": 403,
    "state": 409,
    "duplicate": 409,
    "capacity": 409,
    "ineligible": 422,
    "snapshot": 500,
}

_TITLES: dict[int, str] = {
    400: "Bad Request",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
}


def status_for(err: PlacementError) -> int:
    return _STATUS_BY_KIND.get(str(getattr(err, "kind", "") or ""), 500)


def title_for(status_code: int) -> str:
    return _TITLES.get(status_code) or ("Internal Server Error" if status_code >= 500 else "Error")


def problem_payload(
    err: PlacementError,
    *,
    instance: str | None = None,
    operation_id: str | None = None,
) -> dict[str, Any]:
    status_code = status_for(err)
    payload: dict[str, Any] = {
        "type": f"urn:placement:error:{err.kind}",
        "title": title_for(status_code),
        "status": status_code,
        "kind": err.kind,
    }

    # Snapshot failures can carry file paths; production callers only get the title.
    hide_detail = status_code >= 500 and get_settings().is_production
    detail = None if hide_detail else (str(err) or None)
    if detail:
        payload["detail"] = detail

    target = instance or err.entity_id
    if target:
        payload["instance"] = str(target)
    if operation_id:
        payload["operationId"] = str(operation_id)

    # Extension members are namespaced so they cannot shadow the reserved keys.
    extensions: dict[str, Any] = {}
    if err.operation:
        extensions["operation"] = err.operation
    extensions.update(err.details or {})
    if extensions:
        payload["extensions"] = extensions
    return payload
