"""
Trawl Pipeline Module
=====================

Runs one submission (a menu URL, image or PDF) through validation,
safety, fetch, extraction and ingestion, recording the outcome on a
trawl job.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from urllib.parse import urlsplit

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from findadram.core.enums import MenuSourceType
from findadram.core.errors import IngestionFatalError, PipelineError, TrawlerError, ValidationError
from findadram.core.schema import ExtractedMenu, TrawlRequest, TrawlResult
from findadram.db.engine import get_session_factory
from findadram.db.repositories import BarRepository
from findadram.ingestion.cache import TTLCache
from findadram.ingestion.config import TrawlerConfig, get_default_config
from findadram.ingestion.crawler import ContentFetcher
from findadram.ingestion.engine import IngestionEngine
from findadram.ingestion.extractor import MenuExtractor, validate_image, validate_pdf
from findadram.ingestion.jobs import JobTracker
from findadram.ingestion.resolver import WhiskeyResolver
from findadram.ingestion.safety import UrlSafetyValidator
from findadram.services.ai.client import AIClient, get_ai_client_from_env

logger = logging.getLogger(__name__)


@dataclass
class PreparedSubmission:
    """A validated request with its upload decoded."""

    request: TrawlRequest
    data: bytes | None = None


def decode_upload(value: str, label: str) -> bytes:
    """
    Decode a base64 upload, accepting an optional data: URL prefix.

    Raises:
        ValidationError: If the value is not valid base64
    """
    if value.startswith("data:") and "," in value:
        value = value.split(",", 1)[1]
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"{label} is not valid base64") from e


class TrawlPipeline:
    """
    Orchestrates a single trawl.

    Pipeline stages:
    1. Validate input (bar exists, upload type and size)
    2. URL safety check, before any job exists
    3. Create the job
    4. Fetch and extract
    5. Stamp provenance
    6. Ingest into the catalog
    7. Complete the job, or fail it on any stage error
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: TrawlerConfig | None = None,
        fetcher: ContentFetcher | None = None,
        extractor: MenuExtractor | None = None,
        tracker: JobTracker | None = None,
        judge: AIClient | None = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            session_factory: Creates database sessions
            config: Trawler settings (default loaded from trawler.yaml)
            fetcher: Content fetcher; its safety validator is reused for pre-checks
            extractor: Menu extractor
            tracker: Job tracker
            judge: AI client for duplicate judging during ingestion, optional
        """
        self.config = config or get_default_config()
        self.session_factory = session_factory
        self.fetcher = fetcher or ContentFetcher(
            UrlSafetyValidator(self.config.safety), self.config.fetch
        )
        self.validator = self.fetcher.validator
        self.extractor = extractor or MenuExtractor(
            config=self.config.extraction,
            cache=TTLCache(
                ttl_seconds=self.config.extraction.cache_ttl_seconds,
                max_entries=self.config.extraction.cache_max_entries,
            ),
        )
        self.tracker = tracker or JobTracker(session_factory)
        self.judge = judge

    @classmethod
    def from_config(cls, config: TrawlerConfig | None = None) -> TrawlPipeline:
        """Build a pipeline on the global database with the AI client from the environment."""
        config = config or get_default_config()
        try:
            ai_client = get_ai_client_from_env()
        except ValueError as e:
            logger.warning(f"AI client not configured, extraction will fail: {e}")
            ai_client = None

        extractor = MenuExtractor(
            ai_client=ai_client,
            config=config.extraction,
            cache=TTLCache(
                ttl_seconds=config.extraction.cache_ttl_seconds,
                max_entries=config.extraction.cache_max_entries,
            ),
        )
        judge = ai_client if config.matching.use_ai_judge else None
        return cls(get_session_factory(), config=config, extractor=extractor, judge=judge)

    # ========================================================================
    # Public API
    # ========================================================================

    async def submit(self, request: TrawlRequest) -> TrawlResult:
        """
        Run a submission end to end.

        Returns:
            TrawlResult for the completed job

        Raises:
            ValidationError: Bad input; no job is created
            SafetyRejection: Blocked URL; no job is created if caught before fetching
            IngestionFatalError: Storage is unavailable; the job is failed if one exists
            FetchError, ExtractionError: The job is failed
            PipelineError: Unexpected failure; the job is failed
        """
        prepared = await self.prepare(request)
        try:
            job = await asyncio.to_thread(
                self.tracker.create,
                request.bar_id,
                request.url,
                request.source_type,
                request.submitted_by,
            )
        except SQLAlchemyError as e:
            logger.error(f"Could not create trawl job for bar {request.bar_id}: {e}")
            raise IngestionFatalError("Storage unavailable; no job was created") from e
        return await self.run_job(job.id, prepared)

    async def process(self, job_id: str, request: TrawlRequest) -> TrawlResult:
        """Run an already-created processing job, validating the request inside the job."""
        return await self._guarded(job_id, self._prepare_and_run(job_id, request))

    async def preview(self, url: str) -> ExtractedMenu:
        """
        Fetch and extract a URL without creating a job or writing the catalog.

        Raises:
            SafetyRejection, FetchError, ExtractionError: Stage failures
            PipelineError: Unexpected failure
        """
        try:
            await self.validator.ensure_safe(url)
            return await self._acquire_url(url)
        except TrawlerError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error previewing {url}")
            raise PipelineError(f"Unexpected error previewing {url}") from e

    async def prepare(self, request: TrawlRequest) -> PreparedSubmission:
        """
        Validate a request before anything is written or fetched.

        Raises:
            ValidationError: Unknown bar, bad upload type, size or encoding
            SafetyRejection: The URL is blocked
        """
        await self.ensure_bar_exists(request.bar_id)

        data: bytes | None = None
        if request.image:
            data = decode_upload(request.image, "Image")
            validate_image(data, request.image_mime_type, self.config.extraction.max_image_bytes)
        elif request.pdf:
            data = decode_upload(request.pdf, "PDF")
            validate_pdf(data, self.config.extraction.max_image_bytes)
        elif request.url:
            await self.validator.ensure_safe(request.url)

        return PreparedSubmission(request, data)

    async def ensure_bar_exists(self, bar_id: str) -> None:
        """
        Raise ValidationError if the bar is unknown.

        Raises:
            IngestionFatalError: If the bar table cannot be read
        """
        try:
            exists = await asyncio.to_thread(self._bar_exists, bar_id)
        except SQLAlchemyError as e:
            logger.error(f"Could not look up bar {bar_id}: {e}")
            raise IngestionFatalError("Storage unavailable") from e
        if not exists:
            raise ValidationError(f"Bar {bar_id} not found")

    async def run_job(self, job_id: str, prepared: PreparedSubmission) -> TrawlResult:
        """Run the fetch, extract and ingest stages for a processing job."""
        return await self._guarded(job_id, self._run_stages(job_id, prepared))

    # ========================================================================
    # Stages
    # ========================================================================

    async def _guarded(self, job_id: str, stages: Awaitable[TrawlResult]) -> TrawlResult:
        try:
            return await stages
        except TrawlerError as e:
            e.job_id = job_id
            await self._fail(job_id, e.user_message)
            raise
        except asyncio.CancelledError:
            await asyncio.shield(self._fail(job_id, "Cancelled"))
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in trawl job {job_id}")
            await self._fail(job_id, "Unexpected error")
            error = PipelineError(f"Unexpected error in trawl job {job_id}")
            error.job_id = job_id
            raise error from e

    async def _prepare_and_run(self, job_id: str, request: TrawlRequest) -> TrawlResult:
        prepared = await self.prepare(request)
        return await self._run_stages(job_id, prepared)

    async def _run_stages(self, job_id: str, prepared: PreparedSubmission) -> TrawlResult:
        menu = await self._acquire(prepared)
        result = await asyncio.to_thread(self._ingest, prepared.request.bar_id, menu, job_id)
        await asyncio.to_thread(self.tracker.complete, job_id, result, menu)
        return result

    async def _acquire(self, prepared: PreparedSubmission) -> ExtractedMenu:
        """Fetch (for URLs) and extract, then stamp provenance onto the menu."""
        request = prepared.request
        if request.url:
            return await self._acquire_url(request.url)

        data = prepared.data or b""
        if request.image:
            menu = await asyncio.to_thread(
                self.extractor.extract_from_image, data, request.image_mime_type
            )
            menu.source_type = MenuSourceType.USER_SUBMITTED
        else:
            menu = await asyncio.to_thread(self.extractor.extract_from_pdf, data)
            menu.source_type = MenuSourceType.PDF_MENU

        menu.scraped_at = datetime.now(UTC)
        menu.content_hash = hashlib.sha256(data).hexdigest()
        menu.source_attribution = request.submitted_by
        return menu

    async def _acquire_url(self, url: str) -> ExtractedMenu:
        fetched = await self.fetcher.fetch(url)
        menu = await asyncio.to_thread(
            self.extractor.extract_from_text, fetched.text, fetched.content_hash
        )
        menu.source_url = url
        menu.scraped_at = fetched.fetched_at
        menu.content_hash = fetched.content_hash
        menu.source_type = MenuSourceType.WEBSITE_SCRAPE
        menu.source_attribution = urlsplit(fetched.final_url).hostname
        return menu

    def _ingest(self, bar_id: str, menu: ExtractedMenu, job_id: str) -> TrawlResult:
        session = self.session_factory()
        try:
            resolver = WhiskeyResolver(session, ai_client=self.judge, config=self.config.matching)
            return IngestionEngine(session, resolver).ingest(bar_id, menu, job_id)
        finally:
            session.close()

    def _bar_exists(self, bar_id: str) -> bool:
        session = self.session_factory()
        try:
            return BarRepository(session).exists(bar_id)
        finally:
            session.close()

    async def _fail(self, job_id: str, error: str) -> None:
        try:
            await asyncio.to_thread(self.tracker.fail, job_id, error)
        except (TrawlerError, SQLAlchemyError) as e:
            logger.error(f"Could not mark trawl job {job_id} failed: {e}")
