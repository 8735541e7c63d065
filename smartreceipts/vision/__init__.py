"""Receipt extraction backends, shared prompt and response parsing, factory."""

from __future__ import annotations

import json
import uuid
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ..errors import ExtractionError
from ..models import Receipt

if TYPE_CHECKING:
    from ..config import AppConfig
    from ..models import UserProfile

_PROMPT = """\
Analyze the attached grocery receipt and the user's personal context.

# User Context
{context}

# Output
Return a single JSON object (no other text) with this shape:
{{
  "meta": {{"store": str, "date": "YYYY-MM-DD", "time": "HH:MM",
            "total_spent": number, "total_saved": number,
            "scan_quality": "High" | "Medium" | "Low"}},
  "items": [{{"name_raw": str, "name_clean": str, "category": str,
              "qty": number, "unit_price": number, "total_price": number,
              "is_discounted": bool, "tags": [str]}}],
  "analysis": {{"budget_impact_percentage": number,
                "dietary_compliance": bool,
                "flagged_items": [str], "insights": [str]}},
  "coach_message": str
}}

Rules:
1. name_clean expands abbreviations into a readable product name.
2. category must be one of: {categories}
3. budget_impact_percentage is total_spent as a percentage of the monthly budget.
4. coach_message is a short, supportive message about this purchase.
"""


def build_prompt(profile: UserProfile) -> str:
    context = json.dumps(profile.to_dict(), ensure_ascii=False, indent=2)
    return _PROMPT.format(
        context=context,
        categories=", ".join(profile.custom_categories),
    )


def parse_receipt_response(text: str) -> Receipt:
    """Parse the JSON object returned by a model into a Receipt.

    The receipt gets a fresh id. Raises ExtractionError when the text is
    not a usable receipt.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Model returned invalid JSON: {e}") from e
    if not isinstance(data, dict) or "items" not in data:
        raise ExtractionError("Model response is not a receipt")

    data["id"] = str(uuid.uuid4())
    try:
        return Receipt.from_dict(data)
    except (TypeError, ValueError, AttributeError) as e:
        raise ExtractionError(f"Model response is not a receipt: {e}") from e


class ReceiptExtractor(ABC):
    """Turns one receipt image or PDF into a structured Receipt."""

    @abstractmethod
    async def extract(
        self, data: bytes, mime_type: str, profile: UserProfile
    ) -> Receipt:
        """Extract a receipt from raw file bytes.

        Raises:
            ExtractionError: If the input is unreadable or processing fails.
        """
        ...


def create_extractor(config: AppConfig) -> ReceiptExtractor:
    """Create an extraction backend based on configuration."""
    backend_name = config.vision.backend

    match backend_name:
        case "gemini":
            from .gemini import GeminiReceiptExtractor

            return GeminiReceiptExtractor(
                api_key=config.vision.gemini.api_key,
                model=config.vision.gemini.model,
            )
        case "claude":
            from .claude import ClaudeReceiptExtractor

            return ClaudeReceiptExtractor(
                api_key=config.vision.claude.api_key,
                model=config.vision.claude.model,
            )
        case _:
            raise ValueError(
                f"Unknown vision backend: {backend_name!r} "
                f"(choose gemini or claude)"
            )
