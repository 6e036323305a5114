"""Prompt templates for AI extraction and strategy generation."""

import json
from typing import Any

PROMPT_VERSION = "1.0"

TRUNCATION_MARKER = "\n...[middle truncated]...\n"

PRODUCT_TYPE_VALUES = (
    "set_default",
    "elite_trainer_box",
    "booster_box",
    "booster_bundle",
    "tin",
    "collection",
    "blister",
    "build_battle",
    "other",
)

# ============================================================================
# Extraction
# ============================================================================

EXTRACTION_JSON_SCHEMA = {
    "type": "object",
    "required": ["releases"],
    "properties": {
        "releases": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["setName", "category", "products"],
                "properties": {
                    "setName": {
                        "type": "string",
                        "description": "Exact set or expansion name as shown (e.g. Ascended Heroes)",
                    },
                    "category": {
                        "type": "string",
                        "enum": ["pokemon", "mtg", "yugioh", "one_piece", "lorcana", "digimon"],
                    },
                    "products": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["name", "productType"],
                            "properties": {
                                "name": {
                                    "type": "string",
                                    "description": "Full product name (e.g. Ascended Heroes Elite Trainer Box)",
                                },
                                "productType": {"type": "string", "enum": list(PRODUCT_TYPE_VALUES)},
                                "msrp": {
                                    "type": ["number", "null"],
                                    "description": "Retail price clearly labeled as MSRP",
                                },
                                "estimatedResale": {
                                    "type": ["number", "null"],
                                    "description": "Current secondary-market price if the page clearly shows one",
                                },
                                "releaseDate": {"type": ["string", "null"], "format": "date"},
                                "preorderDate": {"type": ["string", "null"], "format": "date"},
                                "imageUrl": {"type": ["string", "null"]},
                                "buyUrl": {
                                    "type": ["string", "null"],
                                    "description": "Direct link to buy or preorder this exact product",
                                },
                                "contentsSummary": {
                                    "type": ["string", "null"],
                                    "description": "Short description of contents (e.g. 9 boosters, 1 promo)",
                                },
                                "topChases": {
                                    "type": "array",
                                    "items": {"type": "string"},
                                    "description": "Cards the page highlights as key pulls, or empty",
                                },
                            },
                        },
                    },
                },
            },
        },
    },
}

EXTRACTION_SYSTEM_PROMPT = f"""You are a data extractor for a trading card release calendar. Given the HTML of a webpage about trading card game releases, output a single JSON object matching this JSON schema (no markdown, no code fence):

{json.dumps(EXTRACTION_JSON_SCHEMA, indent=2)}

Rules:
- Only include releases and products you can clearly identify from the page.
- Use "pokemon" for Pokémon TCG, "mtg" for Magic: The Gathering, "yugioh" for Yu-Gi-Oh!, and so on. If the game is unclear, omit that release.
- productType must be one of: {", ".join(PRODUCT_TYPE_VALUES)}.
- If a page is set-level and does not clearly list distinct sealed products, include one product with name = setName and productType = "set_default", plus the release date, image, link and summary when present.
- Be precise about MSRP versus resale or market prices. Only set msrp when the page shows a clearly labeled retail price for that specific product.
- Only set estimatedResale when the page gives a clear, current market price for the sealed product. Do NOT guess.
- Only set buyUrl when there is a clear link to buy or preorder that exact product.
- For topChases, only include card names the page strongly highlights as chase cards. Otherwise use an empty array.
- Dates must be YYYY-MM-DD or null.
- Output only valid JSON, no other text."""


def truncate_for_extraction(content: str, max_chars: int) -> str:
    """
    Fit page content into the extraction budget.

    Dynamic pages often put the relevant data far from the top, so the
    head and the tail are both kept around an explicit marker.
    """
    if len(content) <= max_chars:
        return content
    half = max_chars // 2
    return f"{content[:half]}{TRUNCATION_MARKER}{content[-half:]}"


def build_extraction_prompt(
    content: str,
    source_label: str,
    expected_category: str | None = None,
    max_chars: int = 120_000,
) -> str:
    """
    Build the user prompt for release extraction.

    Args:
        content: Raw page HTML or text.
        source_label: Human readable source name.
        expected_category: Category hint from the source registry.
        max_chars: Maximum content characters sent to the model.

    Returns:
        The formatted prompt string.
    """
    return (
        f"Source: {source_label}\n"
        f"Expected TCG category: {expected_category or 'unknown'}\n\n"
        f"Extract release and product data from this HTML:\n\n"
        f"{truncate_for_extraction(content, max_chars)}"
    )


# ============================================================================
# Strategy
# ============================================================================

STRATEGY_RULES = """
Primary strategy definitions (use exactly one):
- Flip: Sell within 2-4 weeks. Use when estimatedResale is meaningfully above MSRP (15% or more) AND hype is strong.
- Short Hold: Hold 3-6 months. Use for moderate upside versus MSRP, decent hype, or likely singles demand.
- Long Hold: Hold 1+ years. Use for iconic sets, first prints, or products likely to appreciate over years.
- Avoid: Do not buy for investment. Use for weak demand, a high print run, or estimatedResale at or below MSRP.
- Watch: Insufficient data. Use when msrp, estimatedResale or hypeScore is missing. Prefer this over guessing.
"""

STRATEGY_SYSTEM_PROMPT = f"""You are an investment strategy assistant for sealed trading card products.
Given structured JSON about a single sealed product release, output a SHORT strategy recommendation
as JSON. Focus on realistic, conservative guidance. Do NOT invent prices; rely only on the provided
msrp, estimatedResale, hypeScore and textual context.

Output ONLY a JSON object (no markdown, no code fences) with this exact shape:
{{
  "primary": "Flip" | "Short Hold" | "Long Hold" | "Avoid" | "Watch",
  "confidence": number between 0 and 100,
  "reasonSummary": "1-2 sentence summary in plain English.",
  "keyFactors": [
    {{
      "factor": "Short label (e.g. Hype, Print Run, Top Chases)",
      "impact": "positive" | "negative" | "neutral",
      "detail": "Short explanation"
    }}
  ]
}}
{STRATEGY_RULES}
Decision flow:
1. If msrp, estimatedResale or hypeScore is missing, choose Watch.
2. If estimatedResale is at or below MSRP, choose Avoid.
3. If estimatedResale is well above MSRP (20%+) and hype is strong, choose Flip.
4. If there is a modest premium and decent demand, choose Short Hold.
5. If the product is iconic, low print, or shows early scarcity, choose Long Hold.
6. When in doubt, choose the MORE CONSERVATIVE option.

Always base reasoning on the provided fields and sourceUrl context, not on outside knowledge."""


def build_strategy_prompt(payload: dict[str, Any]) -> str:
    """Build the user prompt for a single product's strategy."""
    return (
        "Using ONLY this JSON, recommend a strategy for this sealed product:\n\n"
        f"{json.dumps(payload, default=str)}"
    )
