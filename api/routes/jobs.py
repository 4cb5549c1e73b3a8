"""Job routes for the REST API."""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from api.dependencies import get_execution_service, get_job_service
from api.models.job import JobStatusEnum
from api.schemas.requests import JobCreateRequest, JobUpdateRequest
from api.schemas.responses import (
    ErrorResponse,
    ExecutionResponse,
    JobActionResponse,
    JobMetricsResponse,
    JobResponse,
    RemainingTopicsResponse,
    TopicItem
)
from api.services.job_service import JobService
from engine.executions import ExecutionService


router = APIRouter(
    prefix="/jobs",
    tags=["jobs"],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)


@router.post("", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
async def create_job(
    request: JobCreateRequest,
    service: JobService = Depends(get_job_service)
):
    """
    Create a new content job.

    - Validates the configuration and every referenced record
    - Creates the job with a zeroed scheduling state
    - Plans the first run from the schedule
    """
    job = await service.create_job(request)
    _, state = await service.get_job_with_state(job.id)
    return JobResponse.from_models(job, state)


@router.get("", response_model=List[JobResponse])
async def list_jobs(
    status_filter: Optional[JobStatusEnum] = None,
    site_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    skip: int = Query(0, ge=0),
    service: JobService = Depends(get_job_service)
):
    """List jobs with optional status and site filters."""
    jobs = await service.list_jobs(status=status_filter, site_id=site_id, limit=limit, skip=skip)
    result = []
    for job in jobs:
        state = await service.states.get(job.id)
        result.append(JobResponse.from_models(job, state))
    return result


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, service: JobService = Depends(get_job_service)):
    """Get a job and its scheduling state."""
    job, state = await service.get_job_with_state(job_id)
    return JobResponse.from_models(job, state)


@router.put("/{job_id}", response_model=JobResponse)
async def update_job(
    job_id: str,
    request: JobUpdateRequest,
    service: JobService = Depends(get_job_service)
):
    """Update a job; the next run is recomputed."""
    job = await service.update_job(job_id, request)
    _, state = await service.get_job_with_state(job.id)
    return JobResponse.from_models(job, state)


@router.delete("/{job_id}", response_model=JobActionResponse)
async def delete_job(job_id: str, service: JobService = Depends(get_job_service)):
    """Delete a job. Its executions are kept as history."""
    await service.delete_job(job_id)
    return JobActionResponse(job_id=job_id, status="deleted", message="Job deleted")


@router.post("/{job_id}/pause", response_model=JobActionResponse)
async def pause_job(job_id: str, service: JobService = Depends(get_job_service)):
    """Pause a job; it will not be scheduled until resumed."""
    job = await service.pause_job(job_id)
    return JobActionResponse(job_id=job_id, status=job.status.value, message="Job paused")


@router.post("/{job_id}/resume", response_model=JobActionResponse)
async def resume_job(job_id: str, service: JobService = Depends(get_job_service)):
    """Resume a paused job and plan its next run."""
    job = await service.resume_job(job_id)
    return JobActionResponse(job_id=job_id, status=job.status.value, message="Job resumed")


@router.post("/{job_id}/trigger", response_model=JobActionResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_job(job_id: str, service: JobService = Depends(get_job_service)):
    """Queue a manual run of an active job."""
    job = await service.execute_manually(job_id)
    return JobActionResponse(job_id=job_id, status=job.status.value, message="Manual run queued")


@router.get("/{job_id}/topics/remaining", response_model=RemainingTopicsResponse)
async def get_remaining_topics(job_id: str, service: JobService = Depends(get_job_service)):
    """Topics the job's strategy can still choose from."""
    job, topics, count = await service.get_remaining_topics(job_id)
    return RemainingTopicsResponse(
        job_id=job_id,
        strategy=job.topic_strategy.value,
        count=count,
        topics=[TopicItem.from_model(topic) for topic in topics]
    )


@router.get("/{job_id}/executions", response_model=List[ExecutionResponse])
async def list_job_executions(
    job_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    job_service: JobService = Depends(get_job_service),
    service: ExecutionService = Depends(get_execution_service)
):
    """List a job's executions, newest first."""
    await job_service.get_job(job_id)
    executions = await service.list_executions(job_id, limit=limit, offset=offset)
    return [ExecutionResponse.from_model(execution) for execution in executions]


@router.get("/{job_id}/metrics", response_model=JobMetricsResponse)
async def get_job_metrics(
    job_id: str,
    job_service: JobService = Depends(get_job_service),
    service: ExecutionService = Depends(get_execution_service)
):
    """Run counts, average generation time and last-30-days usage."""
    await job_service.get_job(job_id)
    return JobMetricsResponse(**await service.get_job_metrics(job_id))
