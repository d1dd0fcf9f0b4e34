"""
Whiskey Resolver Module
=======================

Matches a menu item to an existing catalog whiskey using tiered string
similarity, with an optional AI judge for close calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.orm import Session

from findadram.core.schema import CatalogWhiskey
from findadram.db.repositories import WhiskeyRepository
from findadram.ingestion.config import MatchingConfig
from findadram.ingestion.normalizer import (
    distilleries_compatible,
    similarity_ratio,
    token_similarity,
)
from findadram.services.ai.client import AIClient

logger = logging.getLogger(__name__)

CANDIDATE_LIMIT = 50


class MatchTier(str, Enum):
    """Which rule produced a match."""

    EXACT = "exact"  # Same normalized name
    FUZZY = "fuzzy"  # Edit-distance similarity
    TOKEN = "token"  # Shared words, any order
    JUDGE = "judge"  # AI judge confirmed


@dataclass
class WhiskeyMatch:
    """An existing catalog whiskey matched to a menu item."""

    whiskey: CatalogWhiskey
    tier: MatchTier
    score: float


class WhiskeyResolver:
    """
    Resolves menu items to canonical catalog whiskeys.

    Tiers, first hit wins:
    1. Exact normalized name
    2. Levenshtein similarity among names sharing the first word
    3. Token (Sorensen-Dice) similarity among the same candidates
    4. AI judge for the closest remaining candidates, if a client is set

    A candidate only matches when its distillery is compatible.
    """

    def __init__(
        self,
        session: Session,
        ai_client: AIClient | None = None,
        config: MatchingConfig | None = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            session: SQLAlchemy database session
            ai_client: Client used for the judge tier; the tier is skipped when None
            config: Matching thresholds
        """
        self.repo = WhiskeyRepository(session)
        self.ai_client = ai_client
        self.config = config or MatchingConfig()

    def resolve(
        self,
        name: str,
        normalized_name: str,
        distillery_key: str = "",
    ) -> WhiskeyMatch | None:
        """
        Find the catalog whiskey a menu item refers to.

        Args:
            name: Name as written on the menu, used for the judge
            normalized_name: Output of normalize_whiskey_name
            distillery_key: Output of normalize_distillery ("" if unknown)

        Returns:
            WhiskeyMatch, or None if the item is a new whiskey
        """
        exact = self.find_exact(normalized_name, distillery_key)
        if exact is not None:
            return WhiskeyMatch(exact, MatchTier.EXACT, 1.0)

        first_word = normalized_name.split(" ", 1)[0]
        if not first_word:
            return None

        candidates = [
            whiskey
            for whiskey, key in self.repo.find_candidates(first_word, limit=CANDIDATE_LIMIT)
            if distilleries_compatible(distillery_key, key)
        ]
        if not candidates:
            return None

        scored = [
            (
                whiskey,
                similarity_ratio(normalized_name, whiskey.normalized_name),
                token_similarity(normalized_name, whiskey.normalized_name),
            )
            for whiskey in candidates
        ]

        best_fuzzy = max(scored, key=lambda s: s[1])
        if best_fuzzy[1] >= self.config.fuzzy_threshold:
            logger.debug(f"Fuzzy match {normalized_name!r} -> {best_fuzzy[0].normalized_name!r}")
            return WhiskeyMatch(best_fuzzy[0], MatchTier.FUZZY, best_fuzzy[1])

        best_token = max(scored, key=lambda s: s[2])
        if best_token[2] >= self.config.token_threshold:
            logger.debug(f"Token match {normalized_name!r} -> {best_token[0].normalized_name!r}")
            return WhiskeyMatch(best_token[0], MatchTier.TOKEN, best_token[2])

        return self._ask_judge(name, scored)

    def find_exact(self, normalized_name: str, distillery_key: str = "") -> CatalogWhiskey | None:
        """Exact normalized-name lookup, preferring the same distillery over an unknown one."""
        compatible = [
            (whiskey, key)
            for whiskey, key in self.repo.find_by_normalized_name(normalized_name)
            if distilleries_compatible(distillery_key, key)
        ]
        if not compatible:
            return None
        compatible.sort(key=lambda pair: pair[1] != distillery_key)
        return compatible[0][0]

    def _ask_judge(
        self,
        name: str,
        scored: list[tuple[CatalogWhiskey, float, float]],
    ) -> WhiskeyMatch | None:
        if self.ai_client is None or not self.config.use_ai_judge:
            return None

        close = [
            s
            for s in scored
            if s[1] >= self.config.judge_similarity_floor or s[2] >= self.config.judge_token_floor
        ]
        close.sort(key=lambda s: max(s[1], s[2]), reverse=True)

        for whiskey, _, _ in close[: self.config.max_judge_calls]:
            judgment = self.ai_client.judge_same_whiskey(name, whiskey.name)
            if judgment is None:
                continue
            if judgment.same_whiskey and judgment.confidence > self.config.judge_confidence:
                logger.info(
                    f"Judge matched {name!r} to {whiskey.name!r} "
                    f"(confidence {judgment.confidence:.2f})"
                )
                return WhiskeyMatch(whiskey, MatchTier.JUDGE, judgment.confidence)

        return None
