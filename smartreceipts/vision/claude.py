"""Claude API backend for receipt extraction."""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING

from ..errors import ExtractionError
from . import ReceiptExtractor, build_prompt, parse_receipt_response

if TYPE_CHECKING:
    from ..models import Receipt, UserProfile


class ClaudeReceiptExtractor(ReceiptExtractor):
    """Extract receipts using Claude's vision capability."""

    def __init__(self, api_key: str = "", model: str = "claude-sonnet-4-5-20250929") -> None:
        self._api_key = api_key
        self._model = model

    async def extract(
        self, data: bytes, mime_type: str, profile: UserProfile
    ) -> Receipt:
        if not self._api_key:
            raise ValueError(
                "Anthropic API key is not set. "
                "Check the config file or the ANTHROPIC_API_KEY environment variable."
            )

        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install anthropic"
            ) from None

        encoded = base64.standard_b64encode(data).decode()
        # PDFs go in a document block, everything else as an image
        block_type = "document" if mime_type == "application/pdf" else "image"
        content: list[dict] = [
            {
                "type": block_type,
                "source": {
                    "type": "base64",
                    "media_type": mime_type,
                    "data": encoded,
                },
            },
            {"type": "text", "text": build_prompt(profile)},
        ]

        client = anthropic.AsyncAnthropic(api_key=self._api_key)
        try:
            response = await client.messages.create(
                model=self._model,
                max_tokens=4096,
                messages=[{"role": "user", "content": content}],
            )
            text = response.content[0].text
        except Exception as e:
            raise ExtractionError(f"Claude could not process the receipt: {e}") from e
        return parse_receipt_response(text)
