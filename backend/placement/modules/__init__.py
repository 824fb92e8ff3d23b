"""
Bounded-context modules.

Each lifecycle concern (identity, opportunities, applications, eligibility,
workflow) lives under `placement/modules/*`. Callers use
`workflow.workflow_service.PlacementWorkflow` rather than mutating
entities or repositories directly.
"""
