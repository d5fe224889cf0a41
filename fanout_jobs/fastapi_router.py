"""FastAPI router for the pipeline's HTTP surface."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Response
from pydantic import BaseModel

from fanout_jobs import metrics
from fanout_jobs.http_client import TOKEN_HEADER
from fanout_jobs.models import (
    DepthSample,
    DispatchSummary,
    DurationPercentiles,
    Message,
    PipelineStatus,
    RunOutcome,
    StallReport,
    TenantFailures,
)
from fanout_jobs.service import PipelineService


logger = logging.getLogger(__name__)


class RunRequest(BaseModel):
    """Request model for a manual run."""

    tenant_id: Optional[str] = None
    job_key: Optional[str] = None
    force: bool = False


class RunResponse(BaseModel):
    """Response model for a manual run."""

    mode: str  # "enqueue" or "tenant"
    result: Dict[str, Any]


class WorkerMessageRequest(BaseModel):
    """A queue message handed over by a remote dispatcher."""

    message_id: str
    tenant_id: str
    job_key: str
    enqueued_at: Optional[str] = None  # ISO8601 datetime string
    delivery_count: int = 1
    visible_at: Optional[str] = None
    payload: Dict[str, Any] = {}
    receipt: Optional[str] = None


class WorkerAcceptedResponse(BaseModel):
    """Response model for an accepted worker invocation."""

    accepted: bool
    message_id: str


def create_pipeline_router(
    service_factory: Callable[[], PipelineService],
    auth_token: Optional[str] = None,
) -> APIRouter:
    """
    Create FastAPI router for the pipeline.

    Args:
        service_factory: Callable that returns the PipelineService instance
        auth_token: Optional auth token required on the POST endpoints

    Returns:
        APIRouter instance
    """
    router = APIRouter()

    async def get_service() -> PipelineService:
        """Dependency to get the PipelineService instance."""
        return service_factory()

    async def verify_auth_token(
        x_fanout_jobs_token: Optional[str] = Header(None, alias=TOKEN_HEADER)
    ) -> None:
        """Verify auth token if configured."""
        if auth_token:
            if not x_fanout_jobs_token or x_fanout_jobs_token != auth_token:
                raise HTTPException(
                    status_code=401, detail="Invalid or missing auth token"
                )

    @router.post("/jobs/run", response_model=RunResponse)
    async def run_jobs(
        request: RunRequest,
        service: PipelineService = Depends(get_service),
        _: None = Depends(verify_auth_token),
    ):
        """Run an enqueue pass, or process one tenant when tenant_id is given."""
        try:
            if request.tenant_id:
                result = await service.run_tenant(
                    request.tenant_id, job_key=request.job_key, force=request.force
                )
                return RunResponse(mode="tenant", result=result.model_dump())

            summary = await service.run_enqueue_pass(request.job_key)
            return RunResponse(mode="enqueue", result=summary.model_dump())

        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error running jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.post("/jobs/dispatch", response_model=DispatchSummary)
    async def dispatch_jobs(
        service: PipelineService = Depends(get_service),
        _: None = Depends(verify_auth_token),
    ):
        """Run one dispatch pass."""
        try:
            return await service.run_dispatch_pass()
        except Exception as e:
            logger.exception("Error dispatching jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.post("/jobs/worker", response_model=WorkerAcceptedResponse, status_code=202)
    async def invoke_worker(
        request: WorkerMessageRequest,
        background_tasks: BackgroundTasks,
        service: PipelineService = Depends(get_service),
        _: None = Depends(verify_auth_token),
    ):
        """Accept a message and process it after the response is sent."""
        try:
            message = Message.from_dict(request.model_dump())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid message: {e}") from e

        background_tasks.add_task(service.process_message, message)
        return WorkerAcceptedResponse(accepted=True, message_id=message.message_id)

    @router.get("/jobs/status", response_model=PipelineStatus)
    async def get_status(service: PipelineService = Depends(get_service)):
        """Current depth and age of the primary and dead-letter queues."""
        try:
            return await service.views.pipeline_status()
        except Exception as e:
            logger.exception("Error getting status")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/jobs/observability/depth", response_model=List[DepthSample])
    async def get_depth_history(
        since: Optional[datetime] = Query(None),
        service: PipelineService = Depends(get_service),
    ):
        """Queue depth samples, oldest first."""
        return await service.views.queue_depth_history(since)

    @router.get("/jobs/observability/runs/{job_key}", response_model=RunOutcome)
    async def get_run_outcomes(
        job_key: str,
        service: PipelineService = Depends(get_service),
    ):
        """Completion versus failure counts for one run."""
        return await service.views.run_outcomes(job_key)

    @router.get("/jobs/observability/durations", response_model=DurationPercentiles)
    async def get_duration_percentiles(
        job_key: Optional[str] = Query(None),
        since: Optional[datetime] = Query(None),
        service: PipelineService = Depends(get_service),
    ):
        """Attempt duration percentiles."""
        return await service.views.duration_percentiles(job_key=job_key, since=since)

    @router.get("/jobs/observability/failures", response_model=List[TenantFailures])
    async def get_failure_leaderboard(
        job_key: Optional[str] = Query(None),
        since: Optional[datetime] = Query(None),
        limit: int = Query(10, ge=1, le=1000),
        service: PipelineService = Depends(get_service),
    ):
        """Tenants with the most failed attempts."""
        return await service.views.tenant_failure_leaderboard(
            job_key=job_key, since=since, limit=limit
        )

    @router.get("/jobs/observability/stall", response_model=StallReport)
    async def get_stall(
        window_seconds: float = Query(3600, gt=0),
        service: PipelineService = Depends(get_service),
    ):
        """Whether the queue holds work while nothing is happening."""
        return await service.views.detect_stall(window_seconds)

    @router.get("/metrics")
    async def get_metrics():
        """Prometheus exposition."""
        payload, content_type = metrics.render_latest()
        return Response(content=payload, media_type=content_type)

    return router
