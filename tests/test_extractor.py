"""Tests for the menu extractor."""

from unittest.mock import MagicMock

import pytest

from findadram.core.enums import ExtractionMethod, PourSize, SpiritType
from findadram.core.errors import ExtractionError, ValidationError
from findadram.ingestion.cache import TTLCache
from findadram.ingestion.config import ExtractionConfig
from findadram.ingestion.extractor import MenuExtractor, validate_image, validate_pdf
from findadram.services.ai.client import AIClient, GenerationResult, MenuPayload

MENU_HTML = """
<html>
<head><script>trackVisitor();</script></head>
<body>
  <h1>Whiskey List</h1>
  <p>Buffalo Trace 12 | Lagavulin 16 Year 18</p>
</body>
</html>
"""


def make_result(items: list[dict], bar_name: str | None = None) -> GenerationResult:
    """Build a successful generation result."""
    return GenerationResult(
        success=True,
        raw_response="{}",
        menu=MenuPayload(bar_name=bar_name, whiskeys=items),
    )


@pytest.fixture
def ai_client() -> MagicMock:
    """Mock AI client returning two good items."""
    client = MagicMock(spec=AIClient)
    client.extract_menu.return_value = make_result(
        [
            {"name": "Buffalo Trace", "type": "Bourbon", "price": "$12"},
            {"name": " Lagavulin  16 ", "type": "Islay", "price": 18, "pour_size": "2 oz"},
        ],
        bar_name="The Dram Shop",
    )
    return client


class TestTextExtraction:
    """Tests for extract_from_text."""

    def test_extracts_and_normalizes(self, ai_client) -> None:
        extractor = MenuExtractor(ai_client=ai_client)
        menu = extractor.extract_from_text(MENU_HTML)

        assert menu.bar_name == "The Dram Shop"
        assert menu.extraction_method == ExtractionMethod.TEXT
        assert menu.confidence == pytest.approx(0.8)
        assert [w.name for w in menu.whiskeys] == ["Buffalo Trace", "Lagavulin 16"]
        assert menu.whiskeys[0].type == SpiritType.BOURBON
        assert menu.whiskeys[0].price == 12.0
        assert menu.whiskeys[1].pour_size == PourSize.TWO_OZ

        sent_text = ai_client.extract_menu.call_args.args[0]
        assert "trackVisitor" not in sent_text
        assert "Buffalo Trace" in sent_text

    def test_text_is_truncated(self, ai_client) -> None:
        extractor = MenuExtractor(ai_client=ai_client, config=ExtractionConfig(max_text_chars=20))
        extractor.extract_from_text("word " * 100)

        assert len(ai_client.extract_menu.call_args.args[0]) == 20

    def test_empty_page_skips_ai(self, ai_client) -> None:
        extractor = MenuExtractor(ai_client=ai_client)
        menu = extractor.extract_from_text("<html><body><script>x()</script></body></html>")

        assert menu.whiskeys == []
        assert menu.extraction_method == ExtractionMethod.TEXT
        ai_client.extract_menu.assert_not_called()

    def test_empty_menu_from_ai_is_valid(self, ai_client) -> None:
        ai_client.extract_menu.return_value = make_result([])
        menu = MenuExtractor(ai_client=ai_client).extract_from_text(MENU_HTML)

        assert menu.whiskeys == []
        assert menu.confidence == pytest.approx(0.8)

    def test_malformed_items_dropped_and_confidence_scaled(self, ai_client) -> None:
        ai_client.extract_menu.return_value = make_result(
            [
                {"name": "Buffalo Trace"},
                {"name": "Eagle Rare"},
                {"name": ""},
            ]
        )
        menu = MenuExtractor(ai_client=ai_client).extract_from_text(MENU_HTML)

        assert len(menu.whiskeys) == 2
        assert menu.confidence == pytest.approx(0.8 * 2 / 3, abs=1e-4)
        assert menu.extraction_method == ExtractionMethod.TEXT

    def test_non_finite_numbers_become_missing(self, ai_client) -> None:
        """NaN and Infinity are valid JSON to Python's parser; they must not sink the menu."""
        ai_client.extract_menu.return_value = make_result(
            [
                {"name": "Buffalo Trace", "price": 12},
                {"name": "Mystery Cask", "age": float("nan"), "price": float("inf")},
                {"name": "Old Pulteney", "abv": float("-inf")},
            ]
        )
        menu = MenuExtractor(ai_client=ai_client).extract_from_text(MENU_HTML)

        assert [w.name for w in menu.whiskeys] == ["Buffalo Trace", "Mystery Cask", "Old Pulteney"]
        assert menu.whiskeys[1].age is None
        assert menu.whiskeys[1].price is None
        assert menu.whiskeys[2].abv is None
        assert menu.confidence == pytest.approx(0.8)

    def test_low_confidence_marked_for_review(self, ai_client) -> None:
        ai_client.extract_menu.return_value = make_result([{"name": "Buffalo Trace"}, {"price": 10}])
        menu = MenuExtractor(ai_client=ai_client).extract_from_text(MENU_HTML)

        assert len(menu.whiskeys) == 1
        assert menu.confidence == pytest.approx(0.4)
        assert menu.extraction_method == ExtractionMethod.REVIEW

    def test_failed_generation_raises(self, ai_client) -> None:
        ai_client.extract_menu.return_value = GenerationResult(
            success=False,
            raw_response="not json",
            error_message="JSON parse error: Expecting value",
            repair_attempts=2,
        )
        with pytest.raises(ExtractionError, match="JSON parse error"):
            MenuExtractor(ai_client=ai_client).extract_from_text(MENU_HTML)

    def test_missing_ai_configuration(self, monkeypatch) -> None:
        monkeypatch.setenv("AI_PROVIDER", "anthropic")
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        extractor = MenuExtractor()
        with pytest.raises(ExtractionError):
            extractor.extract_from_text(MENU_HTML)


class TestExtractionCache:
    """Tests for content-hash caching."""

    def test_cache_hit_skips_ai(self, ai_client) -> None:
        extractor = MenuExtractor(ai_client=ai_client, cache=TTLCache())

        first = extractor.extract_from_text(MENU_HTML, content_hash="abc")
        second = extractor.extract_from_text(MENU_HTML, content_hash="abc")

        assert ai_client.extract_menu.call_count == 1
        assert second.whiskeys == first.whiskeys

    def test_cached_menu_is_a_copy(self, ai_client) -> None:
        extractor = MenuExtractor(ai_client=ai_client, cache=TTLCache())

        first = extractor.extract_from_text(MENU_HTML, content_hash="abc")
        first.source_url = "https://bar.example/menu"
        first.whiskeys[0].name = "Changed"

        second = extractor.extract_from_text(MENU_HTML, content_hash="abc")
        assert second.source_url is None
        assert second.whiskeys[0].name == "Buffalo Trace"

    def test_different_hash_misses(self, ai_client) -> None:
        extractor = MenuExtractor(ai_client=ai_client, cache=TTLCache())
        extractor.extract_from_text(MENU_HTML, content_hash="abc")
        extractor.extract_from_text(MENU_HTML, content_hash="def")

        assert ai_client.extract_menu.call_count == 2


class TestUploads:
    """Tests for image and PDF extraction."""

    def test_image_extraction(self, ai_client) -> None:
        ai_client.extract_menu_from_image.return_value = make_result([{"name": "Redbreast 12"}])
        menu = MenuExtractor(ai_client=ai_client).extract_from_image(b"\x89PNG...", "image/png")

        assert menu.extraction_method == ExtractionMethod.VISION
        assert menu.confidence == pytest.approx(0.7)
        ai_client.extract_menu_from_image.assert_called_once_with(b"\x89PNG...", "image/png")

    def test_pdf_extraction(self, ai_client) -> None:
        ai_client.extract_menu_from_pdf.return_value = make_result([{"name": "Redbreast 12"}])
        menu = MenuExtractor(ai_client=ai_client).extract_from_pdf(b"%PDF-1.7 ...")

        assert menu.extraction_method == ExtractionMethod.VISION
        assert menu.confidence == pytest.approx(0.75)

    def test_rejected_image_never_reaches_ai(self, ai_client) -> None:
        with pytest.raises(ValidationError):
            MenuExtractor(ai_client=ai_client).extract_from_image(b"data", "image/tiff")
        ai_client.extract_menu_from_image.assert_not_called()


class TestUploadValidation:
    """Tests for validate_image and validate_pdf."""

    def test_accepts_supported_image(self) -> None:
        validate_image(b"\xff\xd8\xff", "image/jpeg", max_bytes=1024)

    @pytest.mark.parametrize("mime_type", ["image/tiff", "application/pdf", None])
    def test_rejects_unsupported_image_type(self, mime_type) -> None:
        with pytest.raises(ValidationError, match="Unsupported image type"):
            validate_image(b"data", mime_type, max_bytes=1024)

    def test_rejects_empty_image(self) -> None:
        with pytest.raises(ValidationError, match="empty"):
            validate_image(b"", "image/png", max_bytes=1024)

    def test_rejects_oversized_image(self) -> None:
        with pytest.raises(ValidationError, match="exceeds"):
            validate_image(b"x" * 2048, "image/png", max_bytes=1024)

    def test_rejects_non_pdf(self) -> None:
        with pytest.raises(ValidationError, match="not a PDF"):
            validate_pdf(b"<html>", max_bytes=1024)

    def test_rejects_oversized_pdf(self) -> None:
        with pytest.raises(ValidationError, match="exceeds"):
            validate_pdf(b"%PDF" + b"x" * 2048, max_bytes=1024)
