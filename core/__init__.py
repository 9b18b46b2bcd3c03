"""
Core module initialization - controls import order to prevent circular dependencies

Import order:
1. Storage and collaborator interfaces (no project imports)
2. Dependency container (imports the service packages, which import core.storage/core.collaborators)
3. Orchestrator

Nothing is imported eagerly here: escalation/ and telemetry/ import core.storage,
so an eager container import would make them circular. Import
core.dependencies and core.orchestrator directly.
"""
