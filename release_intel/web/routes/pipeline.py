"""Admin routes for triggering and inspecting release sync runs."""

import asyncio

from fastapi import APIRouter, BackgroundTasks
from fastapi.responses import JSONResponse

from release_intel.core.enums import RunTrigger
from release_intel.web.dependencies import AdminDep, OrchestratorDep

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[AdminDep])


@router.post("/release-sync")
async def trigger_release_sync(
    background_tasks: BackgroundTasks,
    orchestrator: OrchestratorDep,
) -> JSONResponse:
    """
    Start a manual release sync.

    Returns 202 and runs the cycle in the background, or 409 with the run
    already in progress.
    """
    begin = await asyncio.to_thread(orchestrator.start, RunTrigger.MANUAL)
    body = {
        "runId": begin.run.run_id,
        "startedAt": begin.run.started_at.isoformat(),
    }

    if not begin.accepted:
        return JSONResponse(
            {"error": "sync_in_progress", **body},
            status_code=409,
        )

    background_tasks.add_task(orchestrator.execute, begin.run)
    return JSONResponse(body, status_code=202)


@router.get("/release-sync/status")
async def release_sync_status(orchestrator: OrchestratorDep) -> JSONResponse:
    """Current and last run of the release sync pipeline."""
    state = await asyncio.to_thread(orchestrator.tracker.get_state)
    return JSONResponse(state.to_dict())
