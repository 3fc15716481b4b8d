"""Scheduled engine jobs: list and delete.

Deleting unloads the job's OS unit, so it goes through the same approval and
audit gate as workspace file writes.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from deskgate.control_plane.deps import ResolvedWorkspace, Scheduler, Writable, WriteContext, require_client
from deskgate.control_plane.errors import ApiError
from deskgate.control_plane.managers.scheduler import JobNotFoundError, LocatedJob, SchedulerUnsupportedError
from deskgate.control_plane.managers.validators import InvalidItemError

router = APIRouter(
    prefix="/workspace/{workspace_id}/scheduler",
    tags=["scheduler"],
    dependencies=[Depends(require_client)],
)


def _unsupported(exc: SchedulerUnsupportedError) -> ApiError:
    return ApiError(400, "scheduler_unsupported", str(exc))


@router.get("/jobs")
async def get_jobs(workspace: ResolvedWorkspace, scheduler: Scheduler) -> dict[str, Any]:
    try:
        jobs = await scheduler.list_jobs()
    except SchedulerUnsupportedError as exc:
        raise _unsupported(exc) from exc
    return {"items": [job.to_wire() for job in jobs]}


@router.delete("/jobs/{name}", dependencies=[Writable])
async def delete_job(name: str, write: WriteContext, scheduler: Scheduler) -> dict[str, Any]:
    try:
        located: LocatedJob = await scheduler.resolve(name)
    except SchedulerUnsupportedError as exc:
        raise _unsupported(exc) from exc
    except InvalidItemError as exc:
        raise ApiError(400, exc.code, str(exc)) from exc
    except JobNotFoundError as exc:
        raise ApiError(404, "job_not_found", str(exc)) from exc

    job_file = str(located.job_file)
    job_name = located.job.name
    await write.approve(
        "scheduler.delete",
        f"Delete scheduled job {job_name}",
        [job_file, *(str(path) for path in located.system_paths)],
    )
    await scheduler.delete(located)
    await write.audit("scheduler.delete", job_file, f"Deleted scheduled job {job_name}")
    return {"job": located.job.to_wire()}
