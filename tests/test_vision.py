"""Tests for receipt extraction backends (mocked API calls)."""

import json
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from smartreceipts.config import load_config
from smartreceipts.errors import ExtractionError
from smartreceipts.models import UserProfile
from smartreceipts.vision import build_prompt, create_extractor, parse_receipt_response
from smartreceipts.vision.claude import ClaudeReceiptExtractor
from smartreceipts.vision.gemini import GeminiReceiptExtractor

RECEIPT_JSON = {
    "meta": {
        "store": "Pingo Doce",
        "date": "2025-03-14",
        "time": "18:20",
        "total_spent": 12.4,
        "total_saved": 1.1,
        "scan_quality": "High",
    },
    "items": [
        {
            "name_raw": "LEITE MG UHT",
            "name_clean": "Semi-skimmed UHT milk",
            "category": "Dairy",
            "qty": 2,
            "unit_price": 0.89,
            "total_price": 1.78,
            "is_discounted": False,
            "tags": [],
        }
    ],
    "analysis": {
        "budget_impact_percentage": 4.1,
        "dietary_compliance": True,
        "flagged_items": [],
        "insights": ["Milk is cheaper in 6-packs."],
    },
    "coach_message": "Nice, under budget.",
}


class TestParseReceiptResponse:
    def test_parse_json_object(self):
        receipt = parse_receipt_response(json.dumps(RECEIPT_JSON))
        assert receipt.meta.store == "Pingo Doce"
        assert receipt.items[0].name_clean == "Semi-skimmed UHT milk"
        assert receipt.analysis.insights == ["Milk is cheaper in 6-packs."]
        assert receipt.id

    def test_parse_with_markdown_fences(self):
        text = "```json\n" + json.dumps(RECEIPT_JSON) + "\n```"
        receipt = parse_receipt_response(text)
        assert receipt.meta.total_spent == 12.4

    def test_model_id_is_replaced(self):
        first = parse_receipt_response(json.dumps({**RECEIPT_JSON, "id": "1"}))
        second = parse_receipt_response(json.dumps({**RECEIPT_JSON, "id": "1"}))
        assert first.id != "1"
        assert first.id != second.id

    def test_invalid_json(self):
        with pytest.raises(ExtractionError, match="invalid JSON"):
            parse_receipt_response("I cannot read this image")

    def test_not_a_receipt(self):
        with pytest.raises(ExtractionError):
            parse_receipt_response(json.dumps([1, 2, 3]))
        with pytest.raises(ExtractionError):
            parse_receipt_response(json.dumps({"meta": {}}))


def test_build_prompt_lists_categories():
    profile = UserProfile(email="a@x.com", custom_categories=["Fruta", "Peixe"])
    prompt = build_prompt(profile)
    assert "Fruta, Peixe" in prompt
    assert "a@x.com" in prompt


class TestCreateExtractor:
    def test_create_gemini_extractor(self):
        config = load_config()
        assert isinstance(create_extractor(config), GeminiReceiptExtractor)

    def test_create_claude_extractor(self):
        config = load_config()
        config.vision.backend = "claude"
        assert isinstance(create_extractor(config), ClaudeReceiptExtractor)

    def test_create_unknown_extractor(self):
        config = load_config()
        config.vision.backend = "unknown"
        with pytest.raises(ValueError, match="Unknown vision backend"):
            create_extractor(config)


class TestClaudeReceiptExtractor:
    @pytest.mark.asyncio
    async def test_extract_requires_api_key(self):
        extractor = ClaudeReceiptExtractor(api_key="")
        with pytest.raises(ValueError, match="API key"):
            await extractor.extract(b"img", "image/jpeg", UserProfile())

    @pytest.mark.asyncio
    async def test_extract_mocked(self):
        mock_response = MagicMock()
        mock_response.content = [MagicMock(text=json.dumps(RECEIPT_JSON))]

        mock_client = AsyncMock()
        mock_client.messages.create = AsyncMock(return_value=mock_response)

        mock_anthropic = MagicMock()
        mock_anthropic.AsyncAnthropic.return_value = mock_client

        with patch.dict(sys.modules, {"anthropic": mock_anthropic}):
            extractor = ClaudeReceiptExtractor(api_key="test-key")
            receipt = await extractor.extract(b"%PDF-1.4", "application/pdf", UserProfile())

        assert receipt.meta.store == "Pingo Doce"
        content = mock_client.messages.create.call_args.kwargs["messages"][0]["content"]
        assert content[0]["type"] == "document"
        assert content[0]["source"]["media_type"] == "application/pdf"

    @pytest.mark.asyncio
    async def test_api_failure_raises_extraction_error(self):
        mock_client = AsyncMock()
        mock_client.messages.create = AsyncMock(side_effect=RuntimeError("overloaded"))
        mock_anthropic = MagicMock()
        mock_anthropic.AsyncAnthropic.return_value = mock_client

        with patch.dict(sys.modules, {"anthropic": mock_anthropic}):
            extractor = ClaudeReceiptExtractor(api_key="test-key")
            with pytest.raises(ExtractionError, match="overloaded"):
                await extractor.extract(b"img", "image/png", UserProfile())


class TestGeminiReceiptExtractor:
    @pytest.mark.asyncio
    async def test_extract_requires_api_key(self):
        extractor = GeminiReceiptExtractor(api_key="")
        with pytest.raises(ValueError, match="API key"):
            await extractor.extract(b"img", "image/jpeg", UserProfile())

    @pytest.mark.asyncio
    async def test_extract_mocked(self):
        mock_model = MagicMock()
        mock_model.generate_content_async = AsyncMock(
            return_value=MagicMock(text=json.dumps(RECEIPT_JSON))
        )
        mock_genai = MagicMock()
        mock_genai.GenerativeModel.return_value = mock_model
        mock_google = MagicMock()
        mock_google.generativeai = mock_genai

        with patch.dict(sys.modules, {"google": mock_google, "google.generativeai": mock_genai}):
            extractor = GeminiReceiptExtractor(api_key="test-key")
            receipt = await extractor.extract(b"img", "image/jpeg", UserProfile())

        assert receipt.items[0].category == "Dairy"
        mock_genai.configure.assert_called_once_with(api_key="test-key")
        parts = mock_model.generate_content_async.call_args.args[0]
        assert parts[0] == {"mime_type": "image/jpeg", "data": b"img"}
