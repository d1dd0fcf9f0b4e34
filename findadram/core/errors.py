"""Error taxonomy for the trawl pipeline.

Stage-level errors (safety, fetch, extraction, storage) terminate a
submission and fail its job. Item-level errors are recovered by the
ingestion engine and counted as skipped.
"""


class TrawlerError(Exception):
    """Base class for all pipeline errors."""

    # HTTP-ish classification used by the web layer
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        # Set once a job exists for the failing submission
        self.job_id: str | None = None

    @property
    def user_message(self) -> str:
        """Short description safe to show to callers."""
        return self.message


class ValidationError(TrawlerError):
    """Bad or missing caller input. Raised before any side effect."""

    status_code = 400


class SafetyRejection(TrawlerError):
    """A URL was blocked by the safety validator."""

    status_code = 400

    def __init__(self, reason: str) -> None:
        super().__init__(f"URL blocked: {reason}")
        self.reason = reason


class FetchError(TrawlerError):
    """Network, timeout, size or content-type failure while fetching."""

    status_code = 502


class ExtractionError(TrawlerError):
    """The AI extraction capability was unavailable or returned unusable output."""

    status_code = 502


class IngestionItemError(TrawlerError):
    """A single menu line could not be merged into the catalog."""


class IngestionFatalError(TrawlerError):
    """Storage became unavailable; the whole ingestion pass is aborted."""

    status_code = 503


class JobStateError(TrawlerError):
    """An illegal trawl job status transition was attempted."""

    status_code = 409


class JobNotFoundError(TrawlerError):
    """No trawl job exists with the given id."""

    status_code = 404


class PipelineError(TrawlerError):
    """Unexpected failure inside the pipeline."""

    @property
    def user_message(self) -> str:
        return "Internal error"
