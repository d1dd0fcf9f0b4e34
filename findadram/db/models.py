"""SQLAlchemy ORM models for the Find a Dram catalog.

These models define the database tables:
- BarDB (venues)
- WhiskeyDB (canonical whiskey catalog)
- BarWhiskeyDB (bar-to-whiskey listings with provenance)
- TrawlJobDB (ingestion job lifecycle)
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class BarDB(Base):
    """Database model for bars (venues carrying whiskey menus)."""

    __tablename__ = "bars"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    website: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    listings: Mapped[list["BarWhiskeyDB"]] = relationship("BarWhiskeyDB", back_populates="bar")

    def __repr__(self) -> str:
        return f"<BarDB(id={self.id}, name='{self.name}')>"


class WhiskeyDB(Base):
    """
    Database model for canonical whiskeys.

    A whiskey is identified by its normalized name plus normalized
    distillery key ("" when the distillery is unknown).
    """

    __tablename__ = "whiskeys"
    __table_args__ = (
        UniqueConstraint("normalized_name", "distillery_key", name="uq_whiskey_identity"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    normalized_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    distillery: Mapped[str | None] = mapped_column(String(255), nullable=True)
    distillery_key: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="other")
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    abv: Mapped[float | None] = mapped_column(Float, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    listings: Mapped[list["BarWhiskeyDB"]] = relationship("BarWhiskeyDB", back_populates="whiskey")

    def __repr__(self) -> str:
        return f"<WhiskeyDB(id={self.id}, name='{self.name}')>"


class BarWhiskeyDB(Base):
    """
    Database model for bar-to-whiskey listings.

    At most one listing exists per (bar, whiskey) pair.
    """

    __tablename__ = "bar_whiskeys"
    __table_args__ = (
        UniqueConstraint("bar_id", "whiskey_id", name="uq_bar_whiskey_pair"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    bar_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("bars.id"), nullable=False, index=True
    )
    whiskey_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("whiskeys.id"), nullable=False, index=True
    )
    price: Mapped[float | None] = mapped_column(Float, nullable=True)
    pour_size: Mapped[str | None] = mapped_column(String(20), nullable=True)
    available: Mapped[bool] = mapped_column(Boolean, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_verified: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    first_seen_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    source_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    source_trawl_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("trawl_jobs.id"), nullable=True
    )
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    is_stale: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    bar: Mapped["BarDB"] = relationship("BarDB", back_populates="listings")
    whiskey: Mapped["WhiskeyDB"] = relationship("WhiskeyDB", back_populates="listings")

    def __repr__(self) -> str:
        return f"<BarWhiskeyDB(bar_id={self.bar_id}, whiskey_id={self.whiskey_id})>"


class TrawlJobDB(Base):
    """
    Database model for trawl jobs.

    Tracks one ingestion attempt from acceptance to a terminal state.
    """

    __tablename__ = "trawl_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    bar_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    source_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    whiskey_count: Mapped[int] = mapped_column(Integer, default=0)
    result_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    scraped_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    source_date: Mapped[str | None] = mapped_column(String(50), nullable=True)
    source_attribution: Mapped[str | None] = mapped_column(String(500), nullable=True)
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    def __repr__(self) -> str:
        return f"<TrawlJobDB(id={self.id}, status='{self.status}')>"
