"""Trawl routes: submit a menu, submit a batch, poll a job."""

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from findadram.core.schema import BatchRequest, TrawlRequest
from findadram.web.dependencies import BatchDep, PipelineDep, TrackerDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["trawl"])


@router.post("/trawl")
async def api_trawl(request: TrawlRequest, pipeline: PipelineDep) -> JSONResponse:
    """
    Trawl a single menu (URL, base64 image or base64 PDF) for a bar.

    Returns the ingestion counts and the extracted menu. Pipeline errors
    are turned into JSON responses by the application's error handler.
    """
    logger.info(f"Trawl requested for bar {request.bar_id} ({request.source_type.value})")
    result = await pipeline.submit(request)
    return JSONResponse(result.model_dump(mode="json"))


@router.post("/trawl/batch")
async def api_trawl_batch(request: BatchRequest, coordinator: BatchDep) -> JSONResponse:
    """
    Trawl several menu URLs one after another.

    A URL that fails shows up as a failed entry; the response is still 200.
    """
    results = await coordinator.run_batch(request.urls, bar_id=request.bar_id)
    return JSONResponse({"results": [r.model_dump(mode="json") for r in results]})


@router.get("/trawl/{job_id}/status")
def api_trawl_status(job_id: str, tracker: TrackerDep) -> JSONResponse:
    """Get the current state of a trawl job."""
    job = tracker.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Trawl job not found")
    return JSONResponse(job.model_dump(mode="json"))


@router.get("/health")
async def api_health() -> JSONResponse:
    """Liveness check."""
    return JSONResponse({"status": "ok"})
