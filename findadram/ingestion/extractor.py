"""
Menu Extractor Module
=====================

Turns menu page text, menu photos and PDF menus into an ExtractedMenu
using the AI client, then normalizes and validates each item and scores
the extraction's confidence.
"""

from __future__ import annotations

import hashlib
import logging

from pydantic import ValidationError as SchemaValidationError

from findadram.core.enums import ExtractionMethod
from findadram.core.errors import ExtractionError, ValidationError
from findadram.core.schema import ExtractedMenu, ExtractedWhiskey
from findadram.ingestion.cache import TTLCache
from findadram.ingestion.config import ExtractionConfig
from findadram.ingestion.crawler import strip_html_noise
from findadram.ingestion.normalizer import MenuNormalizer
from findadram.services.ai.client import AIClient, GenerationResult, get_ai_client_from_env

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})

TEXT_BASE_CONFIDENCE = 0.8
IMAGE_BASE_CONFIDENCE = 0.7
PDF_BASE_CONFIDENCE = 0.75


def validate_image(data: bytes, mime_type: str | None, max_bytes: int) -> None:
    """
    Check an uploaded menu image before it is sent anywhere.

    Raises:
        ValidationError: On an unsupported type, an empty upload or an oversized file
    """
    if mime_type not in ALLOWED_IMAGE_TYPES:
        allowed = ", ".join(sorted(ALLOWED_IMAGE_TYPES))
        raise ValidationError(f"Unsupported image type {mime_type!r}; expected one of {allowed}")
    if not data:
        raise ValidationError("Image is empty")
    if len(data) > max_bytes:
        raise ValidationError(f"Image exceeds {max_bytes // (1024 * 1024)} MB limit")


def validate_pdf(data: bytes, max_bytes: int) -> None:
    """
    Check an uploaded PDF menu.

    Raises:
        ValidationError: On an empty, oversized or non-PDF upload
    """
    if not data:
        raise ValidationError("PDF is empty")
    if len(data) > max_bytes:
        raise ValidationError(f"PDF exceeds {max_bytes // (1024 * 1024)} MB limit")
    if not data.startswith(b"%PDF"):
        raise ValidationError("File is not a PDF")


class MenuExtractor:
    """
    Structured extraction of whiskey menus.

    Features:
    - Text, image and PDF inputs
    - Per-item normalization; malformed items are dropped and lower confidence
    - Low-confidence results are marked for review, never rejected
    - Optional cache keyed by content hash
    """

    def __init__(
        self,
        ai_client: AIClient | None = None,
        config: ExtractionConfig | None = None,
        cache: TTLCache[ExtractedMenu] | None = None,
        normalizer: MenuNormalizer | None = None,
    ) -> None:
        self.config = config or ExtractionConfig()
        self.cache = cache
        self.normalizer = normalizer or MenuNormalizer()
        self._ai_client = ai_client

    @property
    def ai_client(self) -> AIClient:
        """Get or create the AI client from environment variables."""
        if self._ai_client is None:
            try:
                self._ai_client = get_ai_client_from_env()
            except ValueError as e:
                logger.error(f"AI client is not configured: {e}")
                raise ExtractionError("AI extraction is not configured") from e
        return self._ai_client

    def extract_from_text(self, html: str, content_hash: str | None = None) -> ExtractedMenu:
        """
        Extract a menu from page HTML or plain text.

        Args:
            html: Raw page content
            content_hash: Hash of the fetched body, used as the cache key

        Returns:
            ExtractedMenu with extraction_method text (or review)

        Raises:
            ExtractionError: If the AI is unavailable or its output is unusable
        """
        text = strip_html_noise(html)[: self.config.max_text_chars]
        key = f"text:{content_hash or hashlib.sha256(text.encode()).hexdigest()}"

        cached = self._cache_get(key)
        if cached is not None:
            return cached

        if not text:
            logger.info("Page has no visible text; returning an empty menu")
            menu = self._score([], [], TEXT_BASE_CONFIDENCE, ExtractionMethod.TEXT)
        else:
            result = self.ai_client.extract_menu(text)
            menu = self._build_menu(result, TEXT_BASE_CONFIDENCE, ExtractionMethod.TEXT)

        self._cache_set(key, menu)
        return menu

    def extract_from_image(self, data: bytes, mime_type: str) -> ExtractedMenu:
        """
        Extract a menu from a photo or scan.

        Raises:
            ValidationError: If the image type or size is not accepted
            ExtractionError: If the AI is unavailable or its output is unusable
        """
        validate_image(data, mime_type, self.config.max_image_bytes)
        key = f"image:{hashlib.sha256(data).hexdigest()}"

        cached = self._cache_get(key)
        if cached is not None:
            return cached

        result = self.ai_client.extract_menu_from_image(data, mime_type)
        menu = self._build_menu(result, IMAGE_BASE_CONFIDENCE, ExtractionMethod.VISION)
        self._cache_set(key, menu)
        return menu

    def extract_from_pdf(self, data: bytes) -> ExtractedMenu:
        """
        Extract a menu from a PDF.

        Raises:
            ValidationError: If the file is not an acceptable PDF
            ExtractionError: If the AI is unavailable or its output is unusable
        """
        validate_pdf(data, self.config.max_image_bytes)
        key = f"pdf:{hashlib.sha256(data).hexdigest()}"

        cached = self._cache_get(key)
        if cached is not None:
            return cached

        result = self.ai_client.extract_menu_from_pdf(data)
        menu = self._build_menu(result, PDF_BASE_CONFIDENCE, ExtractionMethod.VISION)
        self._cache_set(key, menu)
        return menu

    def _build_menu(
        self,
        result: GenerationResult,
        base_confidence: float,
        method: ExtractionMethod,
    ) -> ExtractedMenu:
        if not result.success or result.menu is None:
            reason = result.error_message or "unusable output"
            logger.error(f"Extraction failed after {result.repair_attempts} repair attempts: {reason}")
            raise ExtractionError(f"Menu extraction failed: {reason}")

        raw_items = result.menu.whiskeys
        kept: list[ExtractedWhiskey] = []
        for raw in raw_items:
            try:
                kept.append(ExtractedWhiskey.model_validate(self.normalizer.normalize_item(raw)))
            except SchemaValidationError as e:
                logger.warning(
                    f"Dropping malformed menu item {raw.get('name')!r}: {e.error_count()} errors"
                )

        menu = self._score(raw_items, kept, base_confidence, method)
        menu.bar_name = result.menu.bar_name
        return menu

    def _score(
        self,
        raw_items: list,
        kept: list[ExtractedWhiskey],
        base_confidence: float,
        method: ExtractionMethod,
    ) -> ExtractedMenu:
        """Scale base confidence by the share of items that survived validation."""
        confidence = base_confidence
        if raw_items:
            confidence = base_confidence * len(kept) / len(raw_items)

        if confidence < self.config.review_threshold:
            logger.warning(
                f"Low extraction confidence {confidence:.2f} "
                f"({len(kept)}/{len(raw_items)} items usable); marking for review"
            )
            method = ExtractionMethod.REVIEW

        return ExtractedMenu(
            whiskeys=kept,
            extraction_method=method,
            confidence=round(confidence, 4),
        )

    def _cache_get(self, key: str) -> ExtractedMenu | None:
        if self.cache is None:
            return None
        cached = self.cache.get(key)
        if cached is None:
            return None
        logger.info(f"Extraction cache hit for {key}")
        # Callers stamp provenance onto the menu, so never hand out the cached object
        return cached.model_copy(deep=True)

    def _cache_set(self, key: str, menu: ExtractedMenu) -> None:
        if self.cache is not None:
            self.cache.set(key, menu.model_copy(deep=True))
