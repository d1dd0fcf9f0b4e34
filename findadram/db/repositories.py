"""Repository classes for catalog and trawl job database operations."""

import json
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from findadram.core.enums import SpiritType, TrawlStatus
from findadram.core.schema import BarWhiskeyListing, CatalogWhiskey, TrawlJob
from findadram.db.models import BarDB, BarWhiskeyDB, TrawlJobDB, WhiskeyDB


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class BarRepository:
    """Repository for Bar lookups."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        name: str,
        website: str | None = None,
        city: str | None = None,
        bar_id: str | None = None,
    ) -> str:
        """Create a bar and return its id."""
        db_item = BarDB(id=bar_id or str(uuid4()), name=name, website=website, city=city)
        self.session.add(db_item)
        self.session.flush()
        return db_item.id

    def exists(self, bar_id: str) -> bool:
        """Check whether a bar with this id exists."""
        stmt = select(BarDB.id).where(BarDB.id == bar_id)
        return self.session.execute(stmt).scalar_one_or_none() is not None


class WhiskeyRepository:
    """Repository for canonical whiskey operations."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        name: str,
        normalized_name: str,
        distillery: str | None = None,
        distillery_key: str = "",
        spirit_type: SpiritType | None = None,
        age: int | None = None,
        abv: float | None = None,
        description: str | None = None,
    ) -> CatalogWhiskey:
        """Create a new catalog whiskey."""
        db_item = WhiskeyDB(
            id=str(uuid4()),
            name=name,
            normalized_name=normalized_name,
            distillery=distillery,
            distillery_key=distillery_key,
            type=(spirit_type or SpiritType.OTHER).value,
            age=age,
            abv=abv,
            description=description,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get_by_id(self, whiskey_id: str) -> CatalogWhiskey | None:
        """Get a whiskey by ID."""
        stmt = select(WhiskeyDB).where(WhiskeyDB.id == whiskey_id)
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def find_by_normalized_name(self, normalized_name: str) -> list[tuple[CatalogWhiskey, str]]:
        """Find whiskeys with an exact normalized name, paired with their distillery key."""
        stmt = (
            select(WhiskeyDB)
            .where(WhiskeyDB.normalized_name == normalized_name)
            .order_by(WhiskeyDB.created_at)
        )
        result = self.session.execute(stmt).scalars().all()
        return [(self._to_domain(w), w.distillery_key) for w in result]

    def find_candidates(self, prefix: str, limit: int = 50) -> list[tuple[CatalogWhiskey, str]]:
        """Find whiskeys whose normalized name starts with a prefix."""
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        stmt = (
            select(WhiskeyDB)
            .where(WhiskeyDB.normalized_name.like(f"{escaped}%", escape="\\"))
            .order_by(WhiskeyDB.created_at)
            .limit(limit)
        )
        result = self.session.execute(stmt).scalars().all()
        return [(self._to_domain(w), w.distillery_key) for w in result]

    def fill_missing(self, whiskey_id: str, **fields: Any) -> None:
        """Set fields that are currently null; known values are never replaced."""
        db_item = self.session.get(WhiskeyDB, whiskey_id)
        if db_item is None:
            raise ValueError(f"Whiskey with id {whiskey_id} not found")

        changed = False
        for name, value in fields.items():
            if value is not None and getattr(db_item, name) is None:
                setattr(db_item, name, value)
                changed = True
        if changed:
            self.session.flush()

    def count(self) -> int:
        """Get total count of whiskeys."""
        stmt = select(func.count()).select_from(WhiskeyDB)
        return self.session.execute(stmt).scalar() or 0

    def _to_domain(self, db_item: WhiskeyDB) -> CatalogWhiskey:
        """Convert DB model to domain model."""
        return CatalogWhiskey.model_validate(db_item)


class BarWhiskeyRepository:
    """Repository for bar-to-whiskey listings."""

    def __init__(self, session: Session):
        self.session = session

    def get_for_pair(self, bar_id: str, whiskey_id: str) -> BarWhiskeyListing | None:
        """Get the listing for a (bar, whiskey) pair."""
        db_item = self._get_db(bar_id, whiskey_id)
        return self._to_domain(db_item) if db_item else None

    def create(
        self,
        bar_id: str,
        whiskey_id: str,
        price: float | None = None,
        pour_size: str | None = None,
        notes: str | None = None,
        source_type: str | None = None,
        source_trawl_id: str | None = None,
        confidence: float = 0.0,
    ) -> BarWhiskeyListing:
        """Create a new listing."""
        now = _utc_now()
        db_item = BarWhiskeyDB(
            id=str(uuid4()),
            bar_id=bar_id,
            whiskey_id=whiskey_id,
            price=price,
            pour_size=pour_size,
            available=True,
            notes=notes,
            last_verified=now,
            first_seen_at=now,
            source_type=source_type,
            source_trawl_id=source_trawl_id,
            confidence=confidence,
            is_stale=False,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def update(self, listing_id: str, **fields: Any) -> BarWhiskeyListing:
        """Update fields on an existing listing."""
        db_item = self.session.get(BarWhiskeyDB, listing_id)
        if db_item is None:
            raise ValueError(f"Listing with id {listing_id} not found")

        for name, value in fields.items():
            setattr(db_item, name, value)
        db_item.updated_at = _utc_now()

        self.session.flush()
        return self._to_domain(db_item)

    def list_for_bar(self, bar_id: str) -> list[BarWhiskeyListing]:
        """List all listings for a bar."""
        stmt = (
            select(BarWhiskeyDB)
            .where(BarWhiskeyDB.bar_id == bar_id)
            .order_by(BarWhiskeyDB.first_seen_at)
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(item) for item in result]

    def count_for_bar(self, bar_id: str) -> int:
        """Count listings for a bar."""
        stmt = select(func.count()).select_from(BarWhiskeyDB).where(BarWhiskeyDB.bar_id == bar_id)
        return self.session.execute(stmt).scalar() or 0

    def _get_db(self, bar_id: str, whiskey_id: str) -> BarWhiskeyDB | None:
        stmt = select(BarWhiskeyDB).where(
            BarWhiskeyDB.bar_id == bar_id,
            BarWhiskeyDB.whiskey_id == whiskey_id,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _to_domain(self, db_item: BarWhiskeyDB) -> BarWhiskeyListing:
        """Convert DB model to domain model."""
        return BarWhiskeyListing.model_validate(db_item)


class TrawlJobRepository:
    """Repository for trawl job records."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        bar_id: str | None,
        source_url: str | None,
        source_type: str,
        status: TrawlStatus = TrawlStatus.PROCESSING,
        submitted_by: str | None = None,
    ) -> TrawlJob:
        """Create a new job record."""
        db_item = TrawlJobDB(
            id=str(uuid4()),
            bar_id=bar_id,
            source_url=source_url,
            source_type=source_type,
            status=status.value,
            whiskey_count=0,
            result_json=None,
            error=None,
            submitted_by=submitted_by,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get_by_id(self, job_id: str) -> TrawlJob | None:
        """Get a job by ID."""
        stmt = select(TrawlJobDB).where(TrawlJobDB.id == job_id)
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def transition(
        self,
        job_id: str,
        from_statuses: list[TrawlStatus],
        to_status: TrawlStatus,
        **fields: Any,
    ) -> bool:
        """
        Move a job to a new status if it is currently in one of from_statuses.

        The status check and the write happen in one UPDATE statement.

        Returns:
            True if a row was updated, False otherwise.
        """
        values: dict[str, Any] = {"status": to_status.value, "updated_at": _utc_now()}
        if "result" in fields:
            result = fields.pop("result")
            values["result_json"] = json.dumps(result) if result is not None else None
        values.update(fields)

        stmt = (
            update(TrawlJobDB)
            .where(
                TrawlJobDB.id == job_id,
                TrawlJobDB.status.in_([s.value for s in from_statuses]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount == 1

    def list_recent(self, limit: int = 20, status: TrawlStatus | None = None) -> list[TrawlJob]:
        """List the most recently created jobs."""
        stmt = select(TrawlJobDB)
        if status is not None:
            stmt = stmt.where(TrawlJobDB.status == status.value)
        stmt = stmt.order_by(TrawlJobDB.created_at.desc()).limit(limit)
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(j) for j in result]

    def _to_domain(self, db_item: TrawlJobDB) -> TrawlJob:
        """Convert DB model to domain model."""
        return TrawlJob(
            id=db_item.id,
            bar_id=db_item.bar_id,
            source_url=db_item.source_url,
            source_type=db_item.source_type,
            status=TrawlStatus(db_item.status),
            whiskey_count=db_item.whiskey_count,
            result=json.loads(db_item.result_json) if db_item.result_json else None,
            error=db_item.error,
            submitted_by=db_item.submitted_by,
            scraped_at=db_item.scraped_at,
            source_date=db_item.source_date,
            source_attribution=db_item.source_attribution,
            content_hash=db_item.content_hash,
            created_at=db_item.created_at,
            updated_at=db_item.updated_at,
        )
