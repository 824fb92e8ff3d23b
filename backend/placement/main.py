from __future__ import annotations

from pathlib import Path

from .clock import Clock
from .modules.workflow.workflow_service import PlacementWorkflow
from .observability.logging import configure_logging, get_logger
from .repositories.snapshot_repo import load_snapshot, save_snapshot
from .settings import Settings, get_settings


def create_workflow(
    *,
    data_dir: str | Path | None = None,
    clock: Clock | None = None,
    settings: Settings | None = None,
) -> PlacementWorkflow:
    """
    Build the engine for an embedding caller (CLI, API layer, batch job).

    Loads the snapshot under `data_dir` (default `PLACEMENT_DATA_DIR`) when one
    exists; otherwise starts empty.
    """
    s = settings or get_settings()
    # Logging must be configured before the first operation runs.
    configure_logging(level=s.log_level, json_logs=s.log_json)
    log = get_logger("startup")

    base = Path(data_dir or s.data_dir)
    if base.is_dir():
        wf = PlacementWorkflow.from_snapshot(load_snapshot(base), clock=clock, settings=s)
    else:
        wf = PlacementWorkflow(clock=clock, settings=s)
    log.info("placement_engine_ready", loaded_from=str(base) if base.is_dir() else None, **s.public_summary())
    return wf


def save_workflow(workflow: PlacementWorkflow, *, data_dir: str | Path | None = None) -> Path:
    return save_snapshot(data_dir or workflow.settings.data_dir, workflow.to_snapshot())
