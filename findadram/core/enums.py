"""Enums for whiskey catalog and trawl pipeline fields."""

from enum import Enum


class SpiritType(str, Enum):
    """Whiskey style classification."""

    BOURBON = "bourbon"
    SCOTCH = "scotch"
    IRISH = "irish"
    RYE = "rye"
    JAPANESE = "japanese"
    CANADIAN = "canadian"
    SINGLE_MALT = "single_malt"
    BLENDED = "blended"
    OTHER = "other"


class PourSize(str, Enum):
    """Pour size vocabulary used on bar listings."""

    ONE_OZ = "1oz"
    ONE_HALF_OZ = "1.5oz"
    TWO_OZ = "2oz"
    ML_25 = "25ml"
    ML_35 = "35ml"
    ML_50 = "50ml"
    DRAM = "dram"
    FLIGHT = "flight"
    BOTTLE = "bottle"
    OTHER = "other"


class ExtractionMethod(str, Enum):
    """How a menu was extracted."""

    TEXT = "text"
    VISION = "vision"
    REVIEW = "review"  # Low confidence - route to manual verification


class MenuSourceType(str, Enum):
    """Where extracted menu content came from."""

    WEBSITE_SCRAPE = "website_scrape"
    GOOGLE_PHOTO = "google_photo"
    PDF_MENU = "pdf_menu"
    USER_SUBMITTED = "user_submitted"
    MANUAL = "manual"


class JobSourceType(str, Enum):
    """Kind of input a trawl job was created for."""

    URL = "url"
    IMAGE = "image"
    PDF = "pdf"


class TrawlStatus(str, Enum):
    """Lifecycle status of a trawl job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TrawlStatus.COMPLETED, TrawlStatus.FAILED)
