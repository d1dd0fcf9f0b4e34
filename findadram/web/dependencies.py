"""FastAPI dependencies for the trawl API.

The pipeline is built once per process from config and the environment.
Tests replace these providers through ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends

from findadram.ingestion.batch import BatchCoordinator
from findadram.ingestion.jobs import JobTracker
from findadram.ingestion.pipeline import TrawlPipeline

_pipeline: TrawlPipeline | None = None


def get_pipeline() -> TrawlPipeline:
    """Dependency returning the shared trawl pipeline."""
    global _pipeline
    if _pipeline is None:
        _pipeline = TrawlPipeline.from_config()
    return _pipeline


def reset_pipeline() -> None:
    """Drop the shared pipeline (useful for testing)."""
    global _pipeline
    _pipeline = None


PipelineDep = Annotated[TrawlPipeline, Depends(get_pipeline)]


def get_batch_coordinator(pipeline: PipelineDep) -> BatchCoordinator:
    """Dependency returning a batch coordinator over the shared pipeline."""
    return BatchCoordinator(pipeline)


def get_tracker(pipeline: PipelineDep) -> JobTracker:
    """Dependency returning the pipeline's job tracker."""
    return pipeline.tracker


BatchDep = Annotated[BatchCoordinator, Depends(get_batch_coordinator)]
TrackerDep = Annotated[JobTracker, Depends(get_tracker)]
