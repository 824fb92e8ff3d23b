from __future__ import annotations

import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

# Ensure `backend/` is on sys.path so `import placement.*` works in tests.
BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_DIR))

from placement.clock import FixedClock  # noqa: E402
from placement.modules.identity.directory import Directory  # noqa: E402
from placement.modules.identity.models import Applicant, Approver, OpportunityOwner  # noqa: E402
from placement.modules.workflow.workflow_service import PlacementWorkflow  # noqa: E402
from placement.settings import Settings  # noqa: E402

TODAY = date(2025, 3, 10)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(TODAY)


@pytest.fixture
def cfg() -> Settings:
    return Settings().model_copy(
        update={
            "max_active_applications": 3,
            "max_slots_per_opportunity": 10,
            "max_active_opportunities_per_owner": 5,
            "publish_on_approval": True,
        }
    )


@pytest.fixture
def directory() -> Directory:
    return Directory(
        [
            Approver(id="staff1", name="Staff One", department="CCDS"),
            OpportunityOwner(id="rep1", name="Rep One", company_name="Acme", registration="approved"),
            OpportunityOwner(id="rep2", name="Rep Two", company_name="Globex", registration="approved"),
            Applicant(id="stu_y1", name="Freshman", year=1, major="CSC"),
            Applicant(id="stu_a", name="Alice", year=3, major="CSC"),
            Applicant(id="stu_b", name="Bob", year=4, major="CSC"),
            Applicant(id="stu_ee", name="Eve", year=3, major="EEE"),
        ]
    )


@pytest.fixture
def wf(directory: Directory, clock: FixedClock, cfg: Settings) -> PlacementWorkflow:
    return PlacementWorkflow(directory=directory, clock=clock, settings=cfg)


@pytest.fixture
def make_opp(wf: PlacementWorkflow):
    """Create (and by default approve) an opportunity open around TODAY."""

    def _make(
        *,
        owner: str = "rep1",
        title: str = "Backend Intern",
        slots: int = 2,
        level: str = "BASIC",
        majors: list[str] | None = None,
        approve: bool = True,
        open_date: date | None = None,
        close_date: date | None = None,
    ):
        opp = wf.create_opportunity(
            owner,
            title=title,
            description="Build services",
            level=level,
            preferred_majors=majors,
            open_date=open_date or TODAY - timedelta(days=5),
            close_date=close_date or TODAY + timedelta(days=30),
            total_slots=slots,
        )
        if approve:
            opp = wf.approve_opportunity("staff1", opp.id)
        return opp

    return _make
