"""Prompt templates for AI menu extraction and duplicate judging."""

PROMPT_VERSION = "1.0"

MENU_JSON_SHAPE = """{
  "bar_name": "string or null",
  "whiskeys": [
    {
      "name": "Full whiskey name",
      "distillery": "Producer name or null",
      "type": "bourbon|scotch|irish|rye|japanese|canadian|single_malt|blended|other",
      "age": null or integer,
      "abv": null or number,
      "price": null or number,
      "pour_size": "e.g. 1oz, 2oz, dram",
      "notes": "any tasting notes or menu description"
    }
  ]
}"""

TEXT_EXTRACTION_SYSTEM = """You are a whiskey menu extraction expert. Given HTML or text content from a bar's website or menu, extract all whiskey/whisky/bourbon/scotch/rye entries.

Rules:
- Extract ONLY whiskey/whisky spirits (not beer, wine, cocktails, or food)
- Include bourbon, scotch, Irish whiskey, rye, Japanese whisky, Canadian whisky, single malt, blended
- Parse prices if available (convert to numeric USD)
- Parse age statements (e.g., "12 Year", "18yo" -> age: 12, 18)
- Parse ABV if listed
- Identify distillery from context when possible
- Classify type based on name/origin clues
- If the content has no whiskey items, return an empty list"""

VISION_EXTRACTION_SYSTEM = """You are a whiskey menu extraction expert. You are looking at an image or document of a bar menu or drink list. Extract all whiskey/whisky/bourbon/scotch/rye entries that are visible.

Rules:
- Extract ONLY whiskey/whisky spirits (not beer, wine, cocktails, or food)
- Read prices carefully
- Parse age statements when visible
- If text is blurry or partially obscured, make your best guess and note uncertainty
- Return an empty list if no whiskey items are visible"""

DEDUP_JUDGE_SYSTEM = """You are a whiskey identification expert. Given two whiskey names, determine if they refer to the same whiskey product. Consider:
- Spelling variations (e.g., "whisky" vs "whiskey")
- Abbreviations (e.g., "GlenDronach" vs "The GlenDronach")
- Age statement formatting (e.g., "12yr" vs "12 Year Old")
- Common name shortenings
- BUT: different age statements = different whiskeys (e.g., Lagavulin 16 != Lagavulin 8)
- Different expressions = different whiskeys (e.g., Ardbeg 10 != Ardbeg Uigeadail)"""

TEXT_EXTRACTION_TEMPLATE = """Extract all whiskey items from this menu content.

Return ONLY valid JSON with this exact shape:
{shape}

MENU CONTENT:
{content}"""

ATTACHMENT_EXTRACTION_TEMPLATE = """Extract all whiskey/whisky/bourbon/scotch/rye items from this menu {kind}.

Return ONLY valid JSON with this exact shape:
{shape}"""

DEDUP_JUDGE_TEMPLATE = """Are these the same whiskey?
A: "{name_a}"
B: "{name_b}"

Respond with JSON: {{"same_whiskey": boolean, "confidence": number, "reasoning": "..."}}"""

REPAIR_PROMPT_TEMPLATE = """The following JSON is invalid and needs to be repaired.

INVALID JSON:
{invalid_json}

ERROR MESSAGE:
{error_message}

Please fix the JSON to make it valid. Common issues include:
- Missing or extra commas
- Unquoted strings
- Trailing commas in arrays/objects
- Missing closing brackets
- A missing "whiskeys" list

Output ONLY the corrected JSON, no explanation."""


def build_text_prompt(content: str) -> str:
    """Build the extraction prompt for page text."""
    return TEXT_EXTRACTION_TEMPLATE.format(shape=MENU_JSON_SHAPE, content=content)


def build_attachment_prompt(kind: str) -> str:
    """
    Build the extraction prompt sent alongside an image or PDF.

    Args:
        kind: Human-readable attachment kind ("image" or "PDF").
    """
    return ATTACHMENT_EXTRACTION_TEMPLATE.format(kind=kind, shape=MENU_JSON_SHAPE)


def build_dedup_prompt(name_a: str, name_b: str) -> str:
    return DEDUP_JUDGE_TEMPLATE.format(name_a=name_a, name_b=name_b)


def build_repair_prompt(invalid_json: str, error_message: str) -> str:
    """
    Build the JSON repair prompt.

    Args:
        invalid_json: The malformed JSON string.
        error_message: The error from the JSON parser or validator.

    Returns:
        The formatted repair prompt.
    """
    return REPAIR_PROMPT_TEMPLATE.format(
        invalid_json=invalid_json,
        error_message=error_message,
    )
