"""Gemini API backend for receipt extraction."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..errors import ExtractionError
from . import ReceiptExtractor, build_prompt, parse_receipt_response

if TYPE_CHECKING:
    from ..models import Receipt, UserProfile


class GeminiReceiptExtractor(ReceiptExtractor):
    """Extract receipts using Google Gemini's vision capability."""

    def __init__(self, api_key: str = "", model: str = "gemini-2.0-flash") -> None:
        self._api_key = api_key
        self._model = model

    async def extract(
        self, data: bytes, mime_type: str, profile: UserProfile
    ) -> Receipt:
        if not self._api_key:
            raise ValueError(
                "Gemini API key is not set. "
                "Check the config file or the GEMINI_API_KEY environment variable."
            )

        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model)

        parts = [
            {"mime_type": mime_type, "data": data},
            build_prompt(profile),
        ]
        try:
            response = await model.generate_content_async(
                parts,
                generation_config={"response_mime_type": "application/json"},
            )
            text = response.text
        except Exception as e:
            raise ExtractionError(f"Gemini could not process the receipt: {e}") from e
        return parse_receipt_response(text)
