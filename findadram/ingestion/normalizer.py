"""
Data Normalizer Module
======================

Cleans and standardizes extracted whiskey data for consistent storage
and matching: canonical names, distillery keys, controlled vocabularies
for spirit type and pour size, and numeric parsing of prices and ABV.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

from findadram.core.enums import PourSize, SpiritType

# ============================================================================
# Private Barrel / Store Pick Detection
# ============================================================================

_PICK_INLINE = re.compile(
    r"^(.+?)\s*[—–\-|]\s*"
    r"(.+?\b(?:private\s+barrel|private\s+selection|store\s+pick|single\s+barrel\s+select"
    r"|barrel\s+pick|cask\s+select(?:ion)?)\b.*)$",
    re.IGNORECASE,
)
_PICK_BRACKETED = re.compile(
    r"^(.+?)\s*([(\[].*?\b(?:pick|private|selection|barrel\s+select)\b.*?[)\]])\s*(.*)$",
    re.IGNORECASE,
)


@dataclass
class PrivateBarrel:
    """A menu name split into its base product and store-pick designation."""

    base_name: str
    pick_info: str | None = None


def parse_private_barrel(name: str) -> PrivateBarrel:
    """
    Separate a whiskey name from any private-barrel or store-pick suffix.

    "Eagle Rare - Store Pick Barrel #12" -> ("Eagle Rare", "Store Pick Barrel #12")
    "Four Roses (Bar Pick OESK)"         -> ("Four Roses", "(Bar Pick OESK)")
    """
    cleaned = re.sub(r"[—–]", " — ", name).strip()

    match = _PICK_INLINE.match(cleaned)
    if match:
        return PrivateBarrel(match.group(1).strip(), match.group(2).strip())

    match = _PICK_BRACKETED.match(cleaned)
    if match:
        trailing = match.group(3).strip()
        base = f"{match.group(1)} {trailing}" if trailing else match.group(1)
        return PrivateBarrel(base.strip(), match.group(2).strip())

    return PrivateBarrel(name.strip())


# ============================================================================
# Name Normalization
# ============================================================================

# Longer phrases first to avoid partial matches
DISTILLERY_ALIASES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bbuffalo\s+trace\s+distillery\b"), "buffalo trace"),
    (re.compile(r"\bthe\s+macallan\b"), "macallan"),
    (re.compile(r"\bthe\s+glenlivet\b"), "glenlivet"),
    (re.compile(r"\bthe\s+glenfarclas\b"), "glenfarclas"),
    (re.compile(r"\bthe\s+dalmore\b"), "dalmore"),
    (re.compile(r"\bthe\s+balvenie\b"), "balvenie"),
    (re.compile(r"\bthe\s+glenrothes\b"), "glenrothes"),
    (re.compile(r"\bthe\s+glendronach\b"), "glendronach"),
    (re.compile(r"\bthe\s+glenmorangie\b"), "glenmorangie"),
    (re.compile(r"\bthe\s+singleton\b"), "singleton"),
    (re.compile(r"\bmaker'?s\s+mark\b"), "maker's mark"),
    (re.compile(r"\bwild\s+turkey\s+distillery\b"), "wild turkey"),
    (re.compile(r"\bjack\s+daniel'?s\b"), "jack daniel's"),
    (re.compile(r"\bwoodford\s+reserve\s+distillery\b"), "woodford reserve"),
    (re.compile(r"\bfour\s+roses\s+distillery\b"), "four roses"),
    (re.compile(r"\bbrown[- ]forman\b"), "brown-forman"),
    (re.compile(r"\blaphroaig\s+distillery\b"), "laphroaig"),
    (re.compile(r"\bhighland\s+park\s+distillery\b"), "highland park"),
]

# Legal category descriptions carry nothing that tells two products apart.
# Cask Strength, Barrel Proof, Single Barrel and Peated are kept.
STRIP_SUFFIXES: list[re.Pattern[str]] = [
    re.compile(r"\bkentucky\s+straight\s+bourbon\s+whiske?y\b"),
    re.compile(r"\bstraight\s+bourbon\s+whiske?y\b"),
    re.compile(r"\bblended\s+(?:scotch\s+)?whiske?y\b"),
    re.compile(r"\bsingle\s+malt\s+scotch\s+whiske?y\b"),
    re.compile(r"\birish\s+whiske?y\b"),
    re.compile(r"\bamerican\s+whiske?y\b"),
    re.compile(r"\btennessee\s+whiske?y\b"),
    re.compile(r"\bjapanese\s+whiske?y\b"),
    re.compile(r"\bcanadian\s+whiske?y\b"),
    re.compile(r"\bscotch\s+whiske?y\b"),
    re.compile(r"\bwhiske?y\s*$"),
    re.compile(r"\bdistillery\s*$"),
]

_PROOF = re.compile(r"\b\d+(?:\.\d+)?\s*proof\b", re.IGNORECASE)
_ABV_PREFIXED = re.compile(r"\babv\s+\d+(?:\.\d+)?\s*%?\s*", re.IGNORECASE)
_ABV_WORD = re.compile(r"\babv\b\s*", re.IGNORECASE)
_ABV_PERCENT = re.compile(r"\b\d+(?:\.\d+)?\s*%\s*(?:abv)?\s*", re.IGNORECASE)
_AGED = re.compile(r"\baged\s+(\d+)\s*(?:years?|yrs?|yo)\b", re.IGNORECASE)
_AGE = re.compile(r"\b(\d+)[-\s]?(?:years?[-\s]?old|years?|yrs?|yo)\b", re.IGNORECASE)


def _normalize_punctuation(s: str) -> str:
    s = re.sub(r"\s*[—–]\s*", " - ", s)
    s = re.sub(r"[‘’‚‛′‵`]", "'", s)
    s = re.sub(r"[“”„‟″‶]", '"', s)
    s = re.sub(r"[™®©]", "", s)
    s = re.sub(r"-{2,}", "-", s)
    return re.sub(r"\s+", " ", s)


def _strip_abv_proof(s: str) -> str:
    s = _PROOF.sub("", s)
    s = _ABV_PREFIXED.sub("", s)
    s = _ABV_WORD.sub("", s)
    return _ABV_PERCENT.sub("", s)


def _normalize_age_statements(s: str) -> str:
    s = _AGED.sub(r"\1 year", s)
    return _AGE.sub(r"\1 year", s)


def normalize_whiskey_name(name: str) -> str:
    """
    Reduce a menu name to its canonical matching key.

    Steps, in order: punctuation folding, lowercase, leading "the",
    distillery aliases, ABV/proof removal, legal category suffixes,
    age statements to "N year", quote removal, whitespace collapse.

    Examples:
        "The Macallan 12 Year Old Single Malt Scotch Whisky" -> "macallan 12 year"
        "Blanton's Single Barrel 93 Proof"                   -> "blantons single barrel"
    """
    s = _normalize_punctuation(name).lower()
    s = re.sub(r"^the\s+", "", s)

    for pattern, canonical in DISTILLERY_ALIASES:
        s = pattern.sub(canonical, s)

    s = _strip_abv_proof(s)

    for pattern in STRIP_SUFFIXES:
        s = pattern.sub("", s)

    s = _normalize_age_statements(s)
    s = re.sub(r"['\"]", "", s)
    s = re.sub(r"\s+", " ", s).strip()
    return re.sub(r"[-\s]+$", "", s)


_DISTILLERY_SUFFIX = re.compile(
    r"\s+(?:distillery|distillers|distilling(?:\s+co(?:mpany)?)?|co|company)\.?$"
)


def normalize_distillery(distillery: str | None) -> str:
    """
    Build the distillery key used in whiskey identity.

    Returns "" for an unknown distillery.
    """
    if not distillery:
        return ""
    s = _normalize_punctuation(distillery).lower().strip()
    s = re.sub(r"^the\s+", "", s)
    for pattern, canonical in DISTILLERY_ALIASES:
        s = pattern.sub(canonical, s)
    s = _DISTILLERY_SUFFIX.sub("", s)
    s = re.sub(r"['\"]", "", s)
    return re.sub(r"\s+", " ", s).strip()


def distilleries_compatible(key_a: str, key_b: str) -> bool:
    """Two distillery keys agree when equal or when either is unknown."""
    return not key_a or not key_b or key_a == key_b


# ============================================================================
# Similarity
# ============================================================================

STOP_WORDS = frozenset({"a", "an", "of", "and", "in", "the", "by", "for"})


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with a single rolling row."""
    if not a:
        return len(b)
    if not b:
        return len(a)

    prev = list(range(len(a) + 1))
    for j, char_b in enumerate(b, start=1):
        curr = [j] + [0] * len(a)
        for i, char_a in enumerate(a, start=1):
            cost = 0 if char_a == char_b else 1
            curr[i] = min(prev[i] + 1, curr[i - 1] + 1, prev[i - 1] + cost)
        prev = curr
    return prev[len(a)]


def similarity_ratio(a: str, b: str) -> float:
    """Normalized Levenshtein similarity of two names in [0, 1]."""
    s1 = normalize_whiskey_name(a)
    s2 = normalize_whiskey_name(b)
    if s1 == s2:
        return 1.0

    longer, shorter = (s1, s2) if len(s1) >= len(s2) else (s2, s1)
    distance = levenshtein_distance(longer, shorter)
    return (len(longer) - distance) / len(longer)


def _tokenize(s: str) -> list[str]:
    tokens = (re.sub(r"[^a-z0-9]", "", t) for t in re.split(r"[\s\-]+", s))
    return [t for t in tokens if t and t not in STOP_WORDS]


def token_similarity(a: str, b: str) -> float:
    """
    Order-independent Sorensen-Dice similarity over word tokens.

    Filler words are excluded so they cannot inflate the score.
    """
    tokens_a = _tokenize(normalize_whiskey_name(a))
    tokens_b = _tokenize(normalize_whiskey_name(b))

    if not tokens_a and not tokens_b:
        return 1.0
    if not tokens_a or not tokens_b:
        return 0.0

    remaining: dict[str, int] = {}
    for token in tokens_b:
        remaining[token] = remaining.get(token, 0) + 1

    intersection = 0
    for token in tokens_a:
        if remaining.get(token, 0) > 0:
            intersection += 1
            remaining[token] -= 1

    return 2 * intersection / (len(tokens_a) + len(tokens_b))


# ============================================================================
# Menu Item Normalization
# ============================================================================


class MenuNormalizer:
    """
    Normalizes raw extracted menu items into ExtractedWhiskey fields.

    Handles:
    - Spirit type vocabulary (e.g., "Kentucky Bourbon" -> bourbon)
    - Pour size vocabulary (e.g., "2 oz" -> 2oz, "half pour" -> 1oz)
    - Prices from strings like "$14" or "14.00"
    - ABV from strings like "46%" or "92 proof"
    - Age statements like "12 yr"
    """

    SPIRIT_TYPE_ALIASES: dict[str, SpiritType] = {
        "bourbon": SpiritType.BOURBON,
        "bourbon whiskey": SpiritType.BOURBON,
        "kentucky bourbon": SpiritType.BOURBON,
        "straight bourbon": SpiritType.BOURBON,
        "wheated bourbon": SpiritType.BOURBON,
        "tennessee": SpiritType.BOURBON,
        "tennessee whiskey": SpiritType.BOURBON,
        "american": SpiritType.BOURBON,
        "american whiskey": SpiritType.BOURBON,
        "scotch": SpiritType.SCOTCH,
        "scotch whisky": SpiritType.SCOTCH,
        "islay": SpiritType.SCOTCH,
        "speyside": SpiritType.SCOTCH,
        "highland": SpiritType.SCOTCH,
        "lowland": SpiritType.SCOTCH,
        "campbeltown": SpiritType.SCOTCH,
        "irish": SpiritType.IRISH,
        "irish whiskey": SpiritType.IRISH,
        "rye": SpiritType.RYE,
        "rye whiskey": SpiritType.RYE,
        "straight rye": SpiritType.RYE,
        "japanese": SpiritType.JAPANESE,
        "japanese whisky": SpiritType.JAPANESE,
        "canadian": SpiritType.CANADIAN,
        "canadian whisky": SpiritType.CANADIAN,
        "single malt": SpiritType.SINGLE_MALT,
        "single_malt": SpiritType.SINGLE_MALT,
        "single-malt": SpiritType.SINGLE_MALT,
        "single malt scotch": SpiritType.SINGLE_MALT,
        "blended": SpiritType.BLENDED,
        "blend": SpiritType.BLENDED,
        "blended scotch": SpiritType.BLENDED,
        "blended whisky": SpiritType.BLENDED,
        "blended whiskey": SpiritType.BLENDED,
    }

    POUR_SIZE_ALIASES: dict[str, PourSize] = {
        "1oz": PourSize.ONE_OZ,
        "1 oz": PourSize.ONE_OZ,
        "1 ounce": PourSize.ONE_OZ,
        "half pour": PourSize.ONE_OZ,
        "1.5oz": PourSize.ONE_HALF_OZ,
        "1.5 oz": PourSize.ONE_HALF_OZ,
        "1 1/2 oz": PourSize.ONE_HALF_OZ,
        "shot": PourSize.ONE_HALF_OZ,
        "jigger": PourSize.ONE_HALF_OZ,
        "2oz": PourSize.TWO_OZ,
        "2 oz": PourSize.TWO_OZ,
        "2 ounces": PourSize.TWO_OZ,
        "double": PourSize.TWO_OZ,
        "neat": PourSize.TWO_OZ,
        "pour": PourSize.TWO_OZ,
        "25ml": PourSize.ML_25,
        "25 ml": PourSize.ML_25,
        "35ml": PourSize.ML_35,
        "35 ml": PourSize.ML_35,
        "50ml": PourSize.ML_50,
        "50 ml": PourSize.ML_50,
        "dram": PourSize.DRAM,
        "wee dram": PourSize.DRAM,
        "flight": PourSize.FLIGHT,
        "tasting flight": PourSize.FLIGHT,
        "bottle": PourSize.BOTTLE,
        "btl": PourSize.BOTTLE,
        "750ml": PourSize.BOTTLE,
    }

    PRICE_PATTERN = re.compile(r"(\d+(?:[.,]\d{1,2})?)")
    # "1,200" and "1,234.50": a comma before exactly three digits groups thousands
    THOUSANDS_SEPARATOR = re.compile(r",(?=\d{3}\b)")

    ABV_PATTERNS: list[re.Pattern[str]] = [
        re.compile(r"(\d+(?:\.\d+)?)\s*%", re.I),
        re.compile(r"(?:abv|alc)[:\s]*(\d+(?:\.\d+)?)", re.I),
    ]
    PROOF_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*proof", re.I)

    AGE_PATTERN = re.compile(r"(\d{1,3})")

    def normalize_item(self, raw: dict[str, Any]) -> dict[str, Any]:
        """
        Normalize one raw item from the AI into ExtractedWhiskey fields.

        Unparseable optional values become None rather than failing
        the whole item. The caller validates the result.
        """
        return {
            "name": self._clean_string(raw.get("name")) or "",
            "distillery": self._clean_string(raw.get("distillery")),
            "type": self.normalize_spirit_type(raw.get("type")),
            "age": self.parse_age(raw.get("age")),
            "abv": self.parse_abv(raw.get("abv")),
            "price": self.parse_price(raw.get("price")),
            "pour_size": self.normalize_pour_size(raw.get("pour_size")),
            "notes": self._clean_string(raw.get("notes")),
        }

    def _clean_string(self, value: Any) -> str | None:
        """Clean and normalize a string value."""
        if value is None:
            return None
        s = re.sub(r"\s+", " ", str(value)).strip()
        return s if s else None

    def normalize_spirit_type(self, value: Any) -> SpiritType | None:
        """Map a free-form type to the spirit vocabulary; unknown text maps to other."""
        cleaned = self._clean_string(value)
        if cleaned is None:
            return None

        key = cleaned.lower()
        if key in self.SPIRIT_TYPE_ALIASES:
            return self.SPIRIT_TYPE_ALIASES[key]
        try:
            return SpiritType(key)
        except ValueError:
            return SpiritType.OTHER

    def normalize_pour_size(self, value: Any) -> PourSize | None:
        """Map a free-form pour size to the pour vocabulary; unknown text maps to other."""
        cleaned = self._clean_string(value)
        if cleaned is None:
            return None

        key = cleaned.lower().replace("ounces", "oz").replace("ounce", "oz").rstrip(".")
        if key in self.POUR_SIZE_ALIASES:
            return self.POUR_SIZE_ALIASES[key]
        compact = key.replace(" ", "")
        if compact in self.POUR_SIZE_ALIASES:
            return self.POUR_SIZE_ALIASES[compact]
        try:
            return PourSize(compact)
        except ValueError:
            return PourSize.OTHER

    def parse_price(self, value: Any) -> float | None:
        """
        Parse a price in dollars.

        Args:
            value: Price value (e.g., "$14", "14.50", 14)

        Returns:
            Price as float, or None if parsing fails
        """
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            price = _finite(value)
            return price if price is not None and price >= 0 else None

        match = self.PRICE_PATTERN.search(self.THOUSANDS_SEPARATOR.sub("", str(value)))
        if not match:
            return None
        return _finite(float(match.group(1).replace(",", ".")))

    def parse_abv(self, value: Any) -> float | None:
        """
        Parse ABV from various formats.

        Args:
            value: ABV value (e.g., "46%", "46", 46.0, "92 proof")

        Returns:
            ABV percent as float, or None if parsing fails
        """
        if value is None or isinstance(value, bool):
            return None

        if isinstance(value, (int, float)):
            abv = _finite(value)
        else:
            s = str(value)
            abv = None
            proof = self.PROOF_PATTERN.search(s)
            if proof:
                abv = float(proof.group(1)) / 2
            else:
                for pattern in self.ABV_PATTERNS:
                    match = pattern.search(s)
                    if match:
                        abv = float(match.group(1))
                        break
                else:
                    try:
                        abv = float(s.strip())
                    except ValueError:
                        return None

        if abv is None or not 0 < abv <= 100:
            return None
        return abv

    def parse_age(self, value: Any) -> int | None:
        """Parse an age statement in years ("12", "12 yr", 12)."""
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            years = _finite(value)
            if years is None:
                return None
            age = int(years)
        else:
            match = self.AGE_PATTERN.search(str(value))
            if not match:
                return None
            age = int(match.group(1))
        return age if 0 <= age <= 100 else None


def _finite(value: int | float) -> float | None:
    """Convert a JSON number to float; NaN, infinities and overflowing ints give None."""
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None
