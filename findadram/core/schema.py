"""Pydantic v2 models for the trawl pipeline.

These models define the data exchanged between pipeline stages:
- ExtractedWhiskey, ExtractedMenu (extraction output)
- TrawlRequest, BatchRequest (caller input)
- TrawlResult, BatchItemResult (caller output)
- TrawlJob (persisted job lifecycle record)
- CatalogWhiskey, BarWhiskeyListing (catalog entities)
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    TypeAdapter,
    field_validator,
    model_validator,
)

from findadram.core.enums import (
    ExtractionMethod,
    JobSourceType,
    MenuSourceType,
    PourSize,
    SpiritType,
    TrawlStatus,
)

MAX_BATCH_URLS = 20

_http_url_adapter = TypeAdapter(HttpUrl)


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


# ============================================================================
# Extraction Output
# ============================================================================


class ExtractedWhiskey(BaseModel):
    """One candidate menu line."""

    name: str
    distillery: str | None = None
    type: SpiritType | None = None
    age: int | None = Field(default=None, ge=0, le=100)
    abv: float | None = Field(default=None, gt=0, le=100, allow_inf_nan=False)
    price: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    pour_size: PourSize | None = None
    notes: str | None = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()


class ExtractedMenu(BaseModel):
    """
    Output of one extraction pass.

    An empty whiskeys list is a valid result, not an error.
    """

    bar_name: str | None = None
    whiskeys: list[ExtractedWhiskey] = Field(default_factory=list)
    source_url: str | None = None
    extraction_method: ExtractionMethod
    confidence: float = Field(ge=0.0, le=1.0)
    source_date: str | None = None
    scraped_at: datetime | None = None
    source_attribution: str | None = None
    content_hash: str | None = None
    source_type: MenuSourceType | None = None


# ============================================================================
# Caller Input
# ============================================================================


class TrawlRequest(BaseModel):
    """Submission of a single menu source for a bar."""

    bar_id: str
    url: str | None = None
    image: str | None = None  # base64-encoded image bytes
    image_mime_type: str | None = None
    pdf: str | None = None  # base64-encoded PDF bytes
    submitted_by: str | None = None

    @field_validator("bar_id")
    @classmethod
    def bar_id_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("bar_id is required")
        return v.strip()

    @model_validator(mode="after")
    def exactly_one_source(self) -> "TrawlRequest":
        provided = [s for s in (self.url, self.image, self.pdf) if s]
        if len(provided) != 1:
            raise ValueError("Provide exactly one of url, image or pdf")
        return self

    @property
    def source_type(self) -> JobSourceType:
        if self.url:
            return JobSourceType.URL
        if self.image:
            return JobSourceType.IMAGE
        return JobSourceType.PDF


class BatchRequest(BaseModel):
    """Submission of several menu URLs processed one after another."""

    urls: list[str] = Field(min_length=1, max_length=MAX_BATCH_URLS)
    bar_id: str | None = None

    @field_validator("urls")
    @classmethod
    def urls_are_http(cls, v: list[str]) -> list[str]:
        for url in v:
            # Validate the shape only; the original string is kept as given
            _http_url_adapter.validate_python(url)
        return v


# ============================================================================
# Caller Output
# ============================================================================


class TrawlResult(BaseModel):
    """Outward-facing summary of one ingestion."""

    success: bool
    menu: ExtractedMenu | None = None
    whiskeys_added: int = Field(default=0, ge=0)
    whiskeys_updated: int = Field(default=0, ge=0)
    whiskeys_skipped: int = Field(default=0, ge=0)
    error: str | None = None

    @model_validator(mode="after")
    def counts_cover_menu(self) -> "TrawlResult":
        if self.success and self.menu is not None:
            total = self.whiskeys_added + self.whiskeys_updated + self.whiskeys_skipped
            if total != len(self.menu.whiskeys):
                raise ValueError(
                    f"Counters sum to {total} but menu has {len(self.menu.whiskeys)} whiskeys"
                )
        return self

    @classmethod
    def failure(cls, error: str) -> "TrawlResult":
        """Build a failed result carrying a short error description."""
        return cls(success=False, error=error)


class BatchItemResult(BaseModel):
    """Result for one URL of a batch."""

    url: str
    result: TrawlResult


# ============================================================================
# Persisted Records
# ============================================================================


class TrawlJob(BaseModel):
    """Persisted lifecycle record of one ingestion attempt."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    bar_id: str | None = None
    source_url: str | None = None
    source_type: str
    status: TrawlStatus
    whiskey_count: int = 0
    result: dict[str, Any] | None = None
    error: str | None = None
    submitted_by: str | None = None
    scraped_at: datetime | None = None
    source_date: str | None = None
    source_attribution: str | None = None
    content_hash: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class CatalogWhiskey(BaseModel):
    """Canonical whiskey identified by normalized name and distillery."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    normalized_name: str
    distillery: str | None = None
    type: SpiritType = SpiritType.OTHER
    age: int | None = None
    abv: float | None = None
    description: str | None = None
    region: str | None = None
    country: str | None = None


class BarWhiskeyListing(BaseModel):
    """A whiskey offered at a bar, with price and freshness metadata."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    bar_id: str
    whiskey_id: str
    price: float | None = None
    pour_size: str | None = None
    available: bool = True
    notes: str | None = None
    last_verified: datetime
    first_seen_at: datetime
    source_type: str | None = None
    source_trawl_id: str | None = None
    confidence: float = 0.0
    is_stale: bool = False
