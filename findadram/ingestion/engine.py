"""
Ingestion Engine Module
=======================

Merges an extracted menu into the catalog: resolves or creates each
whiskey, upserts the bar listing, and classifies every item as added,
updated or skipped. Each item is committed on its own so one bad line
never costs the rest of the menu.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy.exc import (
    DataError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm import Session

from findadram.core.errors import IngestionFatalError, IngestionItemError
from findadram.core.schema import (
    BarWhiskeyListing,
    CatalogWhiskey,
    ExtractedMenu,
    ExtractedWhiskey,
    TrawlResult,
)
from findadram.db.repositories import BarWhiskeyRepository, WhiskeyRepository
from findadram.ingestion.normalizer import (
    normalize_distillery,
    normalize_whiskey_name,
    parse_private_barrel,
)
from findadram.ingestion.resolver import WhiskeyResolver

logger = logging.getLogger(__name__)

# Storage is unreachable; continuing would only fail every remaining item
FATAL_STORAGE_ERRORS = (OperationalError, InterfaceError, DisconnectionError)

# One item's data was rejected by the store
ITEM_STORAGE_ERRORS = (IntegrityError, DataError)


class ItemOutcome(str, Enum):
    """How a single menu item affected the catalog."""

    ADDED = "added"
    UPDATED = "updated"
    SKIPPED = "skipped"


class IngestionEngine:
    """
    Reconciles extracted menus against the catalog.

    Mutable listing fields (price, pour size, notes) are only overwritten
    by values that are present on the menu; a missing value never erases
    a stored one.
    """

    def __init__(self, session: Session, resolver: WhiskeyResolver | None = None) -> None:
        self.session = session
        self.resolver = resolver or WhiskeyResolver(session)
        self.whiskeys = WhiskeyRepository(session)
        self.listings = BarWhiskeyRepository(session)

    def ingest(self, bar_id: str, menu: ExtractedMenu, job_id: str | None = None) -> TrawlResult:
        """
        Merge every item of a menu into a bar's listings.

        Args:
            bar_id: Bar the menu belongs to
            menu: Extraction output, in menu order
            job_id: Trawl job recorded as the source of each listing

        Returns:
            TrawlResult whose counters sum to len(menu.whiskeys)

        Raises:
            IngestionFatalError: If storage becomes unavailable mid-pass
        """
        counts = {outcome: 0 for outcome in ItemOutcome}

        for position, item in enumerate(menu.whiskeys, start=1):
            try:
                outcome = self._ingest_item(bar_id, item, menu, job_id)
                self.session.commit()
            except FATAL_STORAGE_ERRORS as e:
                self._rollback()
                logger.error(f"Storage unavailable at item {position}/{len(menu.whiskeys)}: {e}")
                raise IngestionFatalError("Storage unavailable during ingestion") from e
            except ITEM_STORAGE_ERRORS as e:
                self._rollback()
                logger.warning(f"Skipping {item.name!r}: store rejected item ({type(e).__name__})")
                outcome = ItemOutcome.SKIPPED
            except IngestionItemError as e:
                self._rollback()
                logger.warning(f"Skipping {item.name!r}: {e.message}")
                outcome = ItemOutcome.SKIPPED

            counts[outcome] += 1

        logger.info(
            f"Ingested menu for bar {bar_id}: {counts[ItemOutcome.ADDED]} added, "
            f"{counts[ItemOutcome.UPDATED]} updated, {counts[ItemOutcome.SKIPPED]} skipped"
        )
        return TrawlResult(
            success=True,
            menu=menu,
            whiskeys_added=counts[ItemOutcome.ADDED],
            whiskeys_updated=counts[ItemOutcome.UPDATED],
            whiskeys_skipped=counts[ItemOutcome.SKIPPED],
        )

    # ========================================================================
    # Per-item steps
    # ========================================================================

    def _ingest_item(
        self,
        bar_id: str,
        item: ExtractedWhiskey,
        menu: ExtractedMenu,
        job_id: str | None,
    ) -> ItemOutcome:
        whiskey = self._find_or_create_whiskey(item)
        # The catalog entry stands on its own even if the listing write fails
        self.session.commit()
        return self._upsert_listing(bar_id, whiskey, item, menu, job_id)

    def _find_or_create_whiskey(self, item: ExtractedWhiskey) -> CatalogWhiskey:
        barrel = parse_private_barrel(item.name)
        normalized = normalize_whiskey_name(barrel.base_name)
        if not normalized:
            raise IngestionItemError(f"Name {item.name!r} has nothing left to match on")
        distillery_key = normalize_distillery(item.distillery)

        match = self.resolver.resolve(item.name, normalized, distillery_key)
        if match is not None:
            self.whiskeys.fill_missing(
                match.whiskey.id,
                distillery=item.distillery,
                age=item.age,
                abv=item.abv,
            )
            return match.whiskey

        description_parts = [item.notes] if item.notes else []
        if barrel.pick_info:
            description_parts.append(f"Pick: {barrel.pick_info}")

        try:
            whiskey = self.whiskeys.create(
                name=barrel.base_name,
                normalized_name=normalized,
                distillery=item.distillery,
                distillery_key=distillery_key,
                spirit_type=item.type,
                age=item.age,
                abv=item.abv,
                description="; ".join(description_parts) or None,
            )
        except IntegrityError:
            # Another writer created the same whiskey first
            self.session.rollback()
            existing = self.resolver.find_exact(normalized, distillery_key)
            if existing is None:
                raise
            return existing

        logger.info(f"Created whiskey {whiskey.name!r} ({normalized})")
        return whiskey

    def _upsert_listing(
        self,
        bar_id: str,
        whiskey: CatalogWhiskey,
        item: ExtractedWhiskey,
        menu: ExtractedMenu,
        job_id: str | None,
    ) -> ItemOutcome:
        existing = self.listings.get_for_pair(bar_id, whiskey.id)
        if existing is None:
            try:
                self.listings.create(
                    bar_id=bar_id,
                    whiskey_id=whiskey.id,
                    price=item.price,
                    pour_size=item.pour_size.value if item.pour_size else None,
                    notes=item.notes,
                    source_type=menu.source_type.value if menu.source_type else None,
                    source_trawl_id=job_id,
                    confidence=menu.confidence,
                )
                return ItemOutcome.ADDED
            except IntegrityError:
                # Concurrent insert of the same pair; apply ours on top of it
                self.session.rollback()
                existing = self.listings.get_for_pair(bar_id, whiskey.id)
                if existing is None:
                    raise

        changes = self._listing_changes(existing, item)
        refresh: dict[str, Any] = {
            "last_verified": datetime.now(UTC),
            "is_stale": False,
            "confidence": menu.confidence,
        }
        if job_id is not None:
            refresh["source_trawl_id"] = job_id
        if menu.source_type is not None:
            refresh["source_type"] = menu.source_type.value

        self.listings.update(existing.id, **changes, **refresh)
        return ItemOutcome.UPDATED if changes else ItemOutcome.SKIPPED

    @staticmethod
    def _listing_changes(existing: BarWhiskeyListing, item: ExtractedWhiskey) -> dict[str, Any]:
        """Fields whose present menu value differs from the stored one."""
        incoming = {
            "price": item.price,
            "pour_size": item.pour_size.value if item.pour_size else None,
            "notes": item.notes,
        }
        changes = {
            field: value
            for field, value in incoming.items()
            if value is not None and getattr(existing, field) != value
        }
        if not existing.available:
            changes["available"] = True
        return changes

    def _rollback(self) -> None:
        try:
            self.session.rollback()
        except SQLAlchemyError as e:
            logger.warning(f"Rollback failed: {e}")
