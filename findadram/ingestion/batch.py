"""
Batch Coordinator Module
========================

Processes a list of menu URLs one after another with a polite delay
between requests. A failing URL becomes a failed entry in the results;
it never stops the rest of the batch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from findadram.core.errors import TrawlerError, ValidationError
from findadram.core.schema import MAX_BATCH_URLS, BatchItemResult, TrawlRequest, TrawlResult
from findadram.ingestion.pipeline import TrawlPipeline

logger = logging.getLogger(__name__)


class BatchCoordinator:
    """
    Sequential multi-URL trawling.

    With a bar_id every URL runs the full pipeline (job, ingest). Without
    one, URLs are only fetched and extracted, and every item counts as
    skipped because nothing is written.
    """

    def __init__(
        self,
        pipeline: TrawlPipeline,
        delay_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            pipeline: Pipeline used for each URL
            delay_seconds: Pause between URLs (default from batch config)
            sleep: Awaitable sleep, replaceable in tests
        """
        self.pipeline = pipeline
        self.delay_seconds = (
            pipeline.config.batch.delay_seconds if delay_seconds is None else delay_seconds
        )
        self._sleep = sleep

    async def run_batch(self, urls: list[str], bar_id: str | None = None) -> list[BatchItemResult]:
        """
        Trawl each URL in order.

        If the awaiting task is cancelled, the URL in flight finishes and
        the remaining URLs are abandoned.

        Args:
            urls: 1 to MAX_BATCH_URLS menu URLs
            bar_id: Bar to ingest into; preview only when None

        Returns:
            One BatchItemResult per input URL, in input order

        Raises:
            ValidationError: If the URL count is out of range or the bar is unknown
            IngestionFatalError: If the bar cannot be looked up
        """
        if not 1 <= len(urls) <= MAX_BATCH_URLS:
            raise ValidationError(f"Provide between 1 and {MAX_BATCH_URLS} URLs")
        if bar_id is not None:
            await self.pipeline.ensure_bar_exists(bar_id)

        logger.info(f"Starting batch of {len(urls)} URLs (bar={bar_id or 'preview'})")
        results: list[BatchItemResult] = []

        for index, url in enumerate(urls):
            if index > 0 and self.delay_seconds > 0:
                await self._sleep(self.delay_seconds)

            task = asyncio.ensure_future(self._run_one(url, bar_id))
            try:
                result = await asyncio.shield(task)
            except asyncio.CancelledError:
                remaining = len(urls) - index - 1
                logger.warning(
                    f"Batch cancelled; finishing {url} and abandoning {remaining} remaining URLs"
                )
                await asyncio.wait({task})
                raise

            results.append(BatchItemResult(url=url, result=result))

        failed = sum(1 for r in results if not r.result.success)
        logger.info(f"Batch finished: {len(results) - failed} succeeded, {failed} failed")
        return results

    async def _run_one(self, url: str, bar_id: str | None) -> TrawlResult:
        try:
            if bar_id is not None:
                return await self.pipeline.submit(TrawlRequest(bar_id=bar_id, url=url))

            menu = await self.pipeline.preview(url)
            return TrawlResult(success=True, menu=menu, whiskeys_skipped=len(menu.whiskeys))
        except TrawlerError as e:
            logger.warning(f"Batch URL failed: {url}: {e.user_message}")
            return TrawlResult.failure(e.user_message)
