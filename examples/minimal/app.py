"""Minimal example of litestar-crews integration.

This example demonstrates the basic usage of the CrewsPlugin with a small
editorial crew: a researcher, a writer and an editor whose work has to be
approved before it is published.

Run with:
    cd examples/minimal
    litestar run

Or:
    uvicorn app:app --reload
"""

from __future__ import annotations

import asyncio
from typing import Any

from litestar import Controller, Litestar, get, post
from litestar.exceptions import NotFoundException

from litestar_crews import (
    ApprovalDecision,
    ApprovalGateManager,
    CrewsPlugin,
    CrewsPluginConfig,
    StateManager,
    WorkerRegistry,
    WorkflowExecutor,
)

# =============================================================================
# Workers
# =============================================================================


async def research(topic: str) -> str:
    """Collect notes on a topic."""
    return f"Notes on {topic}: markets are growing"


async def write(notes: str) -> str:
    """Turn notes into a draft."""
    return f"Draft based on [{notes}]"


async def edit(draft: str) -> str:
    """Polish a draft."""
    return draft.replace("Draft", "Article")


workers = WorkerRegistry()
workers.register("researcher", research, name="Researcher")
workers.register("writer", write, name="Writer")
workers.register("editor", edit, name="Editor")


# =============================================================================
# Workflow Definition
# =============================================================================

EDITORIAL_WORKFLOW: dict[str, Any] = {
    "type": "sequential",
    "steps": [
        {"workerId": "researcher"},
        {"workerId": "writer"},
        {"workerId": "editor", "requiresApproval": True},
    ],
}

# Runs started in the background; kept referenced until they finish.
_background: set[asyncio.Task[Any]] = set()


# =============================================================================
# API Controllers
# =============================================================================


class CrewController(Controller):
    """REST API for crew runs."""

    path = "/crews"
    tags = ["Crews"]

    @post("/{run_id:str}/start")
    async def start_crew(self, run_id: str, data: dict[str, Any], crew_executor: WorkflowExecutor) -> dict[str, Any]:
        """Start the editorial crew in the background."""
        task = asyncio.create_task(
            crew_executor.execute(run_id, data.get("name", "Editorial"), EDITORIAL_WORKFLOW, data["topic"])
        )
        _background.add(task)
        task.add_done_callback(_background.discard)
        return {"run_id": run_id, "status": "started"}

    @get("/{run_id:str}")
    async def get_crew(self, run_id: str, crew_state_manager: StateManager) -> dict[str, Any]:
        """Get the latest state of a crew run."""
        states = await crew_state_manager.list_states(workflow_id=run_id)
        if not states:
            raise NotFoundException(detail=f"No run found for {run_id}")
        latest = max(states, key=lambda state: state.start_time)
        return latest.to_dict()


class ApprovalController(Controller):
    """REST API for approval gates."""

    path = "/approvals"
    tags = ["Approvals"]

    @get("/")
    async def list_approvals(self, crew_approvals: ApprovalGateManager) -> list[dict[str, Any]]:
        """List pending approval gates."""
        return [gate.to_dict() for gate in crew_approvals.get_pending_approvals()]

    @post("/{gate_id:str}")
    async def decide(self, gate_id: str, data: dict[str, Any], crew_approvals: ApprovalGateManager) -> dict[str, Any]:
        """Approve or reject a gate."""
        decision = ApprovalDecision(
            approved=bool(data["approved"]),
            comment=data.get("comment"),
            user_id=data.get("user_id"),
        )
        gate = await crew_approvals.provide_decision(gate_id, decision)
        return gate.to_dict()


# =============================================================================
# Application
# =============================================================================

# Configure the plugin
plugin_config = CrewsPluginConfig(worker=workers)

# Create the Litestar application
app = Litestar(
    route_handlers=[CrewController, ApprovalController],
    plugins=[CrewsPlugin(config=plugin_config)],
    debug=True,
)


# =============================================================================
# Health Check (for testing)
# =============================================================================


@get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


# Add health check to app
app.register(health_check)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
