"""
Trawl Jobs Module
=================

Tracks the lifecycle of trawl jobs in the database and defines the arq
tasks used to run trawls in a background worker. Uses Redis as the job
queue backend.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from sqlalchemy.orm import Session

from findadram.core.enums import JobSourceType, TrawlStatus
from findadram.core.errors import JobNotFoundError, JobStateError
from findadram.core.schema import ExtractedMenu, TrawlJob, TrawlRequest, TrawlResult
from findadram.db.engine import get_session_factory, init_db
from findadram.db.repositories import TrawlJobRepository

if TYPE_CHECKING:
    from findadram.ingestion.pipeline import TrawlPipeline

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


class JobTracker:
    """
    Single writer of trawl job status, counts, results and provenance.

    Every transition is a conditional update, so a job that already
    reached completed or failed can never be moved again.
    """

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or get_session_factory()

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    def create(
        self,
        bar_id: str | None,
        source_url: str | None,
        source_type: JobSourceType | str,
        submitted_by: str | None = None,
        status: TrawlStatus = TrawlStatus.PROCESSING,
    ) -> TrawlJob:
        """
        Create a job record.

        Args:
            bar_id: Bar the submission is for
            source_url: Submitted URL, or None for uploads
            source_type: url, image or pdf
            submitted_by: Optional submitter reference
            status: processing for inline runs, pending for queued ones
        """
        source_type = JobSourceType(source_type)
        with self._session() as session:
            job = TrawlJobRepository(session).create(
                bar_id=bar_id,
                source_url=source_url,
                source_type=source_type.value,
                status=status,
                submitted_by=submitted_by,
            )
            session.commit()

        logger.info(f"Created trawl job {job.id} ({source_type.value}, {status.value})")
        return job

    def start(self, job_id: str) -> TrawlJob:
        """Move a queued job from pending to processing."""
        return self._transition(job_id, [TrawlStatus.PENDING], TrawlStatus.PROCESSING)

    def complete(
        self,
        job_id: str,
        result: TrawlResult,
        menu: ExtractedMenu | None = None,
    ) -> TrawlJob:
        """
        Mark a job completed and record its outcome and provenance.

        Raises:
            JobNotFoundError: If the job does not exist
            JobStateError: If the job is not processing
        """
        menu = menu or result.menu
        fields: dict[str, Any] = {
            "whiskey_count": result.whiskeys_added + result.whiskeys_updated,
            "result": result.model_dump(mode="json"),
            "error": None,
        }
        if menu is not None:
            fields.update(
                scraped_at=menu.scraped_at or datetime.now(UTC),
                source_date=menu.source_date,
                source_attribution=menu.source_attribution,
                content_hash=menu.content_hash,
            )

        job = self._transition(job_id, [TrawlStatus.PROCESSING], TrawlStatus.COMPLETED, **fields)
        logger.info(f"Trawl job {job_id} completed ({job.whiskey_count} whiskeys)")
        return job

    def fail(self, job_id: str, error: str) -> TrawlJob:
        """
        Mark a job failed with a short error description.

        Raises:
            JobNotFoundError: If the job does not exist
            JobStateError: If the job already finished
        """
        job = self._transition(
            job_id,
            [TrawlStatus.PENDING, TrawlStatus.PROCESSING],
            TrawlStatus.FAILED,
            error=error[:MAX_ERROR_LENGTH],
        )
        logger.info(f"Trawl job {job_id} failed: {error}")
        return job

    def get(self, job_id: str) -> TrawlJob | None:
        """Get a job by ID."""
        with self._session() as session:
            return TrawlJobRepository(session).get_by_id(job_id)

    def list_recent(self, limit: int = 20, status: TrawlStatus | None = None) -> list[TrawlJob]:
        """List the most recently created jobs."""
        with self._session() as session:
            return TrawlJobRepository(session).list_recent(limit=limit, status=status)

    def _transition(
        self,
        job_id: str,
        from_statuses: list[TrawlStatus],
        to_status: TrawlStatus,
        **fields: Any,
    ) -> TrawlJob:
        with self._session() as session:
            repo = TrawlJobRepository(session)
            if repo.transition(job_id, from_statuses, to_status, **fields):
                session.commit()
                job = repo.get_by_id(job_id)
                if job is not None:
                    return job

            session.rollback()
            current = repo.get_by_id(job_id)

        if current is None:
            raise JobNotFoundError(f"Trawl job {job_id} not found")
        raise JobStateError(
            f"Cannot move trawl job {job_id} from {current.status.value} to {to_status.value}"
        )


# ============================================================================
# Background Execution (arq)
# ============================================================================


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from environment."""
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


async def enqueue_trawl(
    request: TrawlRequest,
    pipeline: TrawlPipeline | None = None,
    redis: ArqRedis | None = None,
) -> TrawlJob:
    """
    Validate a submission, record it as pending and queue it for the worker.

    Input validation and the URL safety check run here, so a rejected
    submission never creates a job.

    Args:
        request: The trawl submission
        pipeline: Pipeline used for validation (default built from config)
        redis: Existing arq connection; a temporary one is opened otherwise

    Returns:
        The pending TrawlJob
    """
    if pipeline is None:
        from findadram.ingestion.pipeline import TrawlPipeline

        pipeline = TrawlPipeline.from_config()

    await pipeline.prepare(request)
    job = pipeline.tracker.create(
        bar_id=request.bar_id,
        source_url=request.url,
        source_type=request.source_type,
        submitted_by=request.submitted_by,
        status=TrawlStatus.PENDING,
    )

    try:
        pool = redis or await create_pool(get_redis_settings())
        try:
            await pool.enqueue_job("run_trawl_job", job.id, request.model_dump(), _job_id=job.id)
        finally:
            if redis is None:
                await pool.close()
    except Exception:
        logger.exception(f"Could not queue trawl job {job.id}")
        pipeline.tracker.fail(job.id, "Could not queue job")
        raise

    logger.info(f"Queued trawl job {job.id}")
    return job


async def run_trawl_job(
    ctx: dict[str, Any],
    job_id: str,
    request_data: dict[str, Any],
) -> dict[str, Any]:
    """
    Worker task: run the pipeline for a queued job.

    Args:
        ctx: arq context; holds the pipeline built at worker startup
        job_id: ID of the pending job
        request_data: The original TrawlRequest as a dict

    Returns:
        TrawlResult as dictionary
    """
    pipeline: TrawlPipeline = ctx["pipeline"]
    request = TrawlRequest.model_validate(request_data)

    pipeline.tracker.start(job_id)
    result = await pipeline.process(job_id, request)
    return result.model_dump(mode="json")


async def startup(ctx: dict[str, Any]) -> None:
    """Build shared worker state."""
    from findadram.ingestion.pipeline import TrawlPipeline

    init_db()
    ctx["pipeline"] = TrawlPipeline.from_config()


class WorkerSettings:
    """arq worker settings."""

    functions = [run_trawl_job]
    on_startup = startup
    redis_settings = get_redis_settings()
    max_jobs = 5
    job_timeout = 300
    keep_result = 86400  # 24 hours
