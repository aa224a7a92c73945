"""Job tracking router."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from stack_backup.api.jobs import JobManager
from stack_backup.api.models import JobResponse, JobStatus
from stack_backup.api.routers.backup import get_job_manager

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=List[JobResponse])
async def list_jobs(
    status: Optional[JobStatus] = None,
    limit: int = 100,
    job_manager: JobManager = Depends(get_job_manager),
):
    """List backup/restore jobs with optional status filter."""
    return await job_manager.list_jobs(status=status, limit=limit)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    job_manager: JobManager = Depends(get_job_manager),
):
    """Get specific job details."""
    job = await job_manager.get_job(job_id)

    if not job:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")

    return job
