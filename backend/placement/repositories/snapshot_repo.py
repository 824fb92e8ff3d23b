"""
Pipe-delimited snapshot files.

Three files live in one directory:

    users.txt          APPLICANT|id|name|credential|year|major
                       OWNER|id|name|credential|company|department|position|registration
                       APPROVER|id|name|credential|department
    opportunities.txt  id|title|owner_id|company|description|level|majors|open|close|status|total|filled|visible|created|updated
    applications.txt   id|applicant_id|opportunity_id|status|created|updated[|wd_status|wd_reason|wd_requested_on|wd_decided_by|wd_decided_at]

`#` lines and blank lines are ignored. Literal `|`, `\\` and newlines inside
fields are backslash-escaped. Legacy application lines
(`applicant_id|opportunity_title|status|created|updated`) are accepted and
resolved by title.

Loading never trusts the files: `reconcile_snapshot` re-checks every
invariant, repairs what can be repaired (recording an adjustment) and
raises `SnapshotError` for the rest.
"""

from __future__ import annotations

import uuid
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from ..errors import SnapshotError
from ..modules.applications.models import Application, ApplicationStatus, WithdrawalRequest, WithdrawalStatus
from ..modules.identity.models import Applicant, Approver, OpportunityOwner
from ..modules.opportunities.models import APPROVED_STATES, Opportunity, OpportunityStatus
from ..observability.logging import get_logger
from ..settings import Settings, get_settings

log = get_logger("placement.snapshot")

USERS_FILE = "users.txt"
OPPORTUNITIES_FILE = "opportunities.txt"
APPLICATIONS_FILE = "applications.txt"

# Legacy application lines reference the opportunity by title until reconciled.
LEGACY_TITLE_PREFIX = "title:"

_LEGACY_APPLICATION_STATUS = {"PENDING": "SUBMITTED", "ACCEPTED": "APPROVED"}

Identity = Applicant | OpportunityOwner | Approver


@dataclass(slots=True)
class Snapshot:
    identities: list[Identity] = field(default_factory=list)
    opportunities: list[Opportunity] = field(default_factory=list)
    applications: list[Application] = field(default_factory=list)
    # Repairs made by `reconcile_snapshot`, human readable.
    adjustments: list[str] = field(default_factory=list)


# --- field codec ---


def _escape(value: Any) -> str:
    s = "" if value is None else str(value)
    return s.replace("\\", "\\\\").replace("|", "\\|").replace("\n", "\\n")


def split_record(line: str) -> list[str]:
    """Split one record on unescaped `|`, undoing the escapes."""
    fields: list[str] = []
    buf: list[str] = []
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "\\" and i + 1 < len(line):
            nxt = line[i + 1]
            buf.append("\n" if nxt == "n" else nxt)
            i += 2
            continue
        if ch == "|":
            fields.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
        i += 1
    fields.append("".join(buf))
    return fields


def join_record(values: Iterable[Any]) -> str:
    return "|".join(_escape(v) for v in values)


def _iso(v: datetime | date | None) -> str:
    if v is None:
        return ""
    if isinstance(v, datetime):
        return v.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    return v.isoformat()


def _parse_dt(s: str) -> datetime | None:
    s = str(s or "").strip()
    if not s:
        return None
    if len(s) == 10:
        d = date.fromisoformat(s)
        return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _parse_bool(s: str) -> bool:
    return str(s or "").strip().lower() in ("1", "true", "yes", "y")


def _records(path: Path) -> Iterable[tuple[int, list[str]]]:
    if not path.exists():
        return
    with path.open("r", encoding="utf-8") as fh:
        for n, raw in enumerate(fh, start=1):
            line = raw.rstrip("\r\n")
            if not line.strip() or line.lstrip().startswith("#"):
                continue
            yield n, split_record(line)


# --- line parsers ---


def parse_identity(fields: list[str]) -> Identity:
    kind = str(fields[0] if fields else "").strip().upper()
    if kind in ("APPLICANT", "STUDENT"):
        if len(fields) < 6:
            raise ValueError("APPLICANT record needs 6 fields")
        return Applicant(id=fields[1], name=fields[2], credential=fields[3] or "password", year=fields[4], major=fields[5])
    if kind in ("OWNER", "REP", "COMPANY_REP"):
        if len(fields) < 8:
            raise ValueError("OWNER record needs 8 fields")
        reg = str(fields[7] or "").strip().lower()
        if reg in ("true", "false"):
            reg = "approved" if reg == "true" else "pending"
        return OpportunityOwner(
            id=fields[1],
            name=fields[2],
            credential=fields[3] or "password",
            company_name=fields[4],
            department=fields[5],
            position=fields[6],
            registration=reg or "pending",
        )
    if kind in ("APPROVER", "STAFF"):
        if len(fields) < 4:
            raise ValueError("APPROVER record needs at least 4 fields")
        return Approver(
            id=fields[1],
            name=fields[2],
            credential=fields[3] or "password",
            department=fields[4] if len(fields) > 4 else "",
        )
    raise ValueError(f"unknown user type {fields[0] if fields else ''!r}")


def format_identity(ident: Identity) -> str:
    if isinstance(ident, Applicant):
        return join_record(["APPLICANT", ident.id, ident.name, ident.credential, ident.year, ident.major])
    if isinstance(ident, OpportunityOwner):
        return join_record(
            [
                "OWNER",
                ident.id,
                ident.name,
                ident.credential,
                ident.company_name,
                ident.department,
                ident.position,
                ident.registration,
            ]
        )
    return join_record(["APPROVER", ident.id, ident.name, ident.credential, ident.department])


def parse_opportunity(fields: list[str]) -> Opportunity:
    if len(fields) < 15:
        raise ValueError("opportunity record needs 15 fields")
    created = _parse_dt(fields[13])
    updated = _parse_dt(fields[14])
    payload: dict[str, Any] = {
        "id": fields[0],
        "title": fields[1],
        "owner_id": fields[2],
        "company_name": fields[3],
        "description": fields[4],
        "level": str(fields[5] or "BASIC").strip().upper(),
        "preferred_majors": fields[6],
        "open_date": fields[7],
        "close_date": fields[8],
        "status": str(fields[9] or "PENDING").strip().upper(),
        "total_slots": int(fields[10]),
        "filled_slots": int(fields[11] or 0),
        "visible": _parse_bool(fields[12]),
    }
    if created:
        payload["created_at"] = created
    if updated:
        payload["updated_at"] = updated
    return Opportunity.model_validate(payload)


def format_opportunity(opp: Opportunity) -> str:
    return join_record(
        [
            opp.id,
            opp.title,
            opp.owner_id,
            opp.company_name,
            opp.description,
            opp.level.value,
            ",".join(opp.preferred_majors),
            _iso(opp.open_date),
            _iso(opp.close_date),
            opp.status.value,
            opp.total_slots,
            opp.filled_slots,
            "true" if opp.visible else "false",
            _iso(opp.created_at),
            _iso(opp.updated_at),
        ]
    )


def _application_status(s: str) -> str:
    v = str(s or "").strip().upper()
    return _LEGACY_APPLICATION_STATUS.get(v, v)


def parse_application(fields: list[str]) -> Application:
    if len(fields) == 5:
        # Legacy: applicant_id|opportunity_title|status|created|updated
        return Application(
            id="app_" + uuid.uuid4().hex[:10],
            applicant_id=fields[0],
            opportunity_id=LEGACY_TITLE_PREFIX + fields[1],
            status=_application_status(fields[2]),
            created_at=_parse_dt(fields[3]) or datetime.now(timezone.utc),
            updated_at=_parse_dt(fields[4]) or datetime.now(timezone.utc),
        )
    if len(fields) < 6:
        raise ValueError("application record needs 6 fields")
    withdrawal: WithdrawalRequest | None = None
    if len(fields) >= 9 and str(fields[6] or "").strip():
        requested = _parse_dt(fields[8])
        withdrawal = WithdrawalRequest(
            applicant_id=fields[1],
            status=str(fields[6]).strip().upper(),
            reason=fields[7],
            requested_on=requested.date() if requested else date.today(),
            decided_by=(fields[9] if len(fields) > 9 else "") or None,
            decided_at=_parse_dt(fields[10]) if len(fields) > 10 else None,
        )
    return Application(
        id=fields[0],
        applicant_id=fields[1],
        opportunity_id=fields[2],
        status=_application_status(fields[3]),
        created_at=_parse_dt(fields[4]) or datetime.now(timezone.utc),
        updated_at=_parse_dt(fields[5]) or datetime.now(timezone.utc),
        withdrawal=withdrawal,
    )


def format_application(app: Application) -> str:
    base: list[Any] = [
        app.id,
        app.applicant_id,
        app.opportunity_id,
        app.status.value,
        _iso(app.created_at),
        _iso(app.updated_at),
    ]
    wd = app.withdrawal
    if wd is not None:
        base += [wd.status.value, wd.reason, _iso(wd.requested_on), wd.decided_by or "", _iso(wd.decided_at)]
    return join_record(base)


# --- files ---


def _load_file(path: Path, parser) -> list[Any]:
    out: list[Any] = []
    for line_no, fields in _records(path):
        try:
            out.append(parser(fields))
        except SnapshotError:
            raise
        except Exception as e:
            raise SnapshotError(
                message=f"Malformed record: {e}",
                operation="load_snapshot",
                path=str(path),
                line_no=line_no,
            ) from e
    return out


def load_snapshot(data_dir: str | Path | None = None) -> Snapshot:
    """Parse the three snapshot files. Missing files load as empty."""
    base = Path(data_dir or get_settings().data_dir)
    snap = Snapshot(
        identities=_load_file(base / USERS_FILE, parse_identity),
        opportunities=_load_file(base / OPPORTUNITIES_FILE, parse_opportunity),
        applications=_load_file(base / APPLICATIONS_FILE, parse_application),
    )
    log.info(
        "snapshot_loaded",
        data_dir=str(base),
        identities=len(snap.identities),
        opportunities=len(snap.opportunities),
        applications=len(snap.applications),
    )
    return snap


def _write(path: Path, header: list[str], lines: Iterable[str]) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        for h in header:
            fh.write(f"# {h}\n")
        fh.write("\n")
        for line in lines:
            fh.write(line + "\n")
    tmp.replace(path)


def save_snapshot(data_dir: str | Path | None, snapshot: Snapshot) -> Path:
    base = Path(data_dir or get_settings().data_dir)
    base.mkdir(parents=True, exist_ok=True)
    _write(
        base / USERS_FILE,
        [
            "User Data File",
            "APPLICANT|id|name|credential|year|major",
            "OWNER|id|name|credential|company|department|position|registration",
            "APPROVER|id|name|credential|department",
        ],
        (format_identity(i) for i in snapshot.identities),
    )
    _write(
        base / OPPORTUNITIES_FILE,
        [
            "Opportunity Data File",
            "id|title|owner_id|company|description|level|majors|open|close|status|total|filled|visible|created|updated",
        ],
        (format_opportunity(o) for o in snapshot.opportunities),
    )
    _write(
        base / APPLICATIONS_FILE,
        [
            "Application Data File",
            "id|applicant_id|opportunity_id|status|created|updated[|wd_status|wd_reason|wd_requested_on|wd_decided_by|wd_decided_at]",
        ],
        (format_application(a) for a in snapshot.applications),
    )
    log.info(
        "snapshot_saved",
        data_dir=str(base),
        identities=len(snapshot.identities),
        opportunities=len(snapshot.opportunities),
        applications=len(snapshot.applications),
    )
    return base


# --- invariant re-validation ---


def _fail(message: str, entity_id: str | None = None) -> SnapshotError:
    return SnapshotError(message=message, operation="reconcile_snapshot", entity_id=entity_id)


def _reconcile_opportunity(opp: Opportunity, *, max_slots: int, adjust: list[str]) -> Opportunity:
    o = opp.model_copy(deep=True)
    if o.total_slots < 1 or o.total_slots > max_slots:
        raise _fail(f"Opportunity {o.id} has {o.total_slots} slots (allowed 1..{max_slots})", o.id)
    if o.close_date < o.open_date:
        raise _fail(f"Opportunity {o.id} closes before it opens", o.id)
    if o.filled_slots < 0:
        adjust.append(f"{o.id}: filled {o.filled_slots} clamped to 0")
        o.filled_slots = 0
    if o.filled_slots > o.total_slots:
        adjust.append(f"{o.id}: filled {o.filled_slots} clamped to total {o.total_slots}")
        o.filled_slots = o.total_slots

    if o.status in APPROVED_STATES:
        derived = OpportunityStatus.FILLED if o.filled_slots >= o.total_slots else OpportunityStatus.APPROVED
        if derived != o.status:
            adjust.append(f"{o.id}: status {o.status.value} re-derived as {derived.value}")
            o.status = derived
    else:
        if o.visible:
            adjust.append(f"{o.id}: hidden because status is {o.status.value}")
            o.visible = False
        if o.filled_slots:
            adjust.append(f"{o.id}: filled {o.filled_slots} cleared because status is {o.status.value}")
            o.filled_slots = 0
    return o


def reconcile_snapshot(snapshot: Snapshot, *, settings: Settings | None = None) -> Snapshot:
    """
    Re-validate a loaded snapshot against every engine invariant.

    Repaired (recorded in `adjustments`): filled outside 0..total, FILLED /
    APPROVED disagreeing with the counter, visible or filled non-approved
    opportunities, filled lower than the number of confirmed placements.

    Rejected with `SnapshotError`: duplicate ids, dangling references, slot
    totals outside 1..max, inverted date windows, two live applications for
    one pair, more than one confirmed placement per applicant, active
    applications next to a confirmed placement or above the active limit,
    more confirmed placements than slots, withdrawal requests that disagree
    with the application status.
    """
    s = settings or get_settings()
    max_slots = int(s.max_slots_per_opportunity)
    max_active = int(s.max_active_applications)
    adjust: list[str] = list(snapshot.adjustments)

    # identities
    ids = Counter(i.id for i in snapshot.identities)
    dup = sorted(k for k, n in ids.items() if n > 1 or not k)
    if dup:
        raise _fail(f"Duplicate or empty identity ids: {', '.join(dup) or '(empty)'}")
    by_id = {i.id: i for i in snapshot.identities}

    # opportunities
    opp_ids = Counter(o.id for o in snapshot.opportunities)
    dup = sorted(k for k, n in opp_ids.items() if n > 1)
    if dup:
        raise _fail(f"Duplicate opportunity ids: {', '.join(dup)}")
    opportunities: list[Opportunity] = []
    for opp in snapshot.opportunities:
        owner = by_id.get(opp.owner_id)
        if not isinstance(owner, OpportunityOwner):
            raise _fail(f"Opportunity {opp.id} references unknown owner {opp.owner_id}", opp.id)
        opportunities.append(_reconcile_opportunity(opp, max_slots=max_slots, adjust=adjust))
    opp_by_id = {o.id: o for o in opportunities}
    by_title: dict[str, list[Opportunity]] = defaultdict(list)
    for o in opportunities:
        by_title[o.title].append(o)

    # applications
    applications: list[Application] = []
    seen_app_ids: set[str] = set()
    live_pairs: set[tuple[str, str]] = set()
    confirmed_by_applicant: Counter[str] = Counter()
    confirmed_by_opp: Counter[str] = Counter()
    for raw in snapshot.applications:
        app = raw.model_copy(deep=True)
        if app.opportunity_id.startswith(LEGACY_TITLE_PREFIX):
            title = app.opportunity_id[len(LEGACY_TITLE_PREFIX):]
            matches = by_title.get(title) or []
            if len(matches) != 1:
                raise _fail(f"Application for {app.applicant_id} names {len(matches)} opportunities titled {title!r}")
            app.opportunity_id = matches[0].id
            adjust.append(f"{app.id}: legacy title {title!r} resolved to {app.opportunity_id}")
        if app.id in seen_app_ids:
            raise _fail(f"Duplicate application id {app.id}", app.id)
        seen_app_ids.add(app.id)
        if not isinstance(by_id.get(app.applicant_id), Applicant):
            raise _fail(f"Application {app.id} references unknown applicant {app.applicant_id}", app.id)
        if app.opportunity_id not in opp_by_id:
            raise _fail(f"Application {app.id} references unknown opportunity {app.opportunity_id}", app.id)
        if app.is_live:
            if app.pair in live_pairs:
                raise _fail(f"Application {app.id} duplicates a live application for {app.pair}", app.id)
            live_pairs.add(app.pair)
        if app.status == ApplicationStatus.CONFIRMED:
            if not opp_by_id[app.opportunity_id].is_approved:
                raise _fail(f"Application {app.id} is confirmed on an unapproved opportunity", app.id)
            confirmed_by_applicant[app.applicant_id] += 1
            confirmed_by_opp[app.opportunity_id] += 1
        wd = app.withdrawal
        if wd is not None:
            # An approved request always withdraws the application; anything else keeps it CONFIRMED.
            if app.status == ApplicationStatus.CONFIRMED:
                ok = wd.status != WithdrawalStatus.APPROVED
            else:
                ok = app.status == ApplicationStatus.WITHDRAWN and wd.status == WithdrawalStatus.APPROVED
            if not ok:
                raise _fail(
                    f"Application {app.id} is {app.status.value} but has a {wd.status.value} withdrawal request",
                    app.id,
                )
        applications.append(app)

    multi = sorted(a for a, n in confirmed_by_applicant.items() if n > 1)
    if multi:
        raise _fail(f"Applicants with more than one confirmed placement: {', '.join(multi)}")

    active_by_applicant = Counter(a.applicant_id for a in applications if a.is_active)
    for applicant_id, n in sorted(active_by_applicant.items()):
        if confirmed_by_applicant[applicant_id]:
            raise _fail(
                f"Applicant {applicant_id} holds a confirmed placement but still has {n} active applications",
                applicant_id,
            )
        if n > max_active:
            raise _fail(
                f"Applicant {applicant_id} has {n} active applications (limit {max_active})",
                applicant_id,
            )

    for oid, n in confirmed_by_opp.items():
        o = opp_by_id[oid]
        if n > o.total_slots:
            raise _fail(f"Opportunity {oid} has {n} confirmed placements for {o.total_slots} slots", oid)
        if o.filled_slots < n:
            adjust.append(f"{oid}: filled {o.filled_slots} raised to {n} confirmed placements")
            o.filled_slots = n
            if o.status in APPROVED_STATES:
                o.status = OpportunityStatus.FILLED if o.filled_slots >= o.total_slots else OpportunityStatus.APPROVED

    for note in adjust[len(snapshot.adjustments):]:
        log.warning("snapshot_adjusted", detail=note)

    return Snapshot(
        identities=[i.model_copy(deep=True) for i in snapshot.identities],
        opportunities=opportunities,
        applications=applications,
        adjustments=adjust,
    )
