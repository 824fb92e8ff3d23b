"""
Workflow module.

`stage_machine` holds the transition tables shared by every entity;
`workflow_service.PlacementWorkflow` is the orchestrator that callers use.
"""
