"""Tests for the data model normalization and serialization."""

import pytest

from smartreceipts.models import (
    CHAT_LIMIT,
    DEFAULT_CATEGORIES,
    HISTORY_LIMIT,
    ChatMessage,
    Item,
    PersistedBundle,
    Receipt,
    ReceiptMeta,
    SessionPointer,
    UserProfile,
    normalize_email,
)


class TestUserProfile:
    def test_defaults(self):
        profile = UserProfile()
        assert profile.email == ""
        assert profile.account_status == "trial"
        assert profile.role == "user"
        assert profile.custom_categories == list(DEFAULT_CATEGORIES)
        assert profile.joined_at

    def test_email_is_normalized(self):
        assert UserProfile(email="  Ana@Example.COM ").email == "ana@example.com"

    def test_empty_categories_fall_back_to_defaults(self):
        profile = UserProfile.from_dict({"email": "a@x.com", "custom_categories": []})
        assert profile.custom_categories == list(DEFAULT_CATEGORIES)

    def test_custom_categories_kept(self):
        profile = UserProfile(custom_categories=["Fruta", " ", "Peixe"])
        assert profile.custom_categories == ["Fruta", "Peixe"]

    def test_invalid_status_rejected(self):
        with pytest.raises(ValueError, match="account_status"):
            UserProfile(account_status="admin")

    def test_legacy_admin_status_maps_to_active(self):
        profile = UserProfile.from_dict({"email": "a@x.com", "account_status": "admin"})
        assert profile.account_status == "active"

    def test_missing_role_defaults_to_user(self):
        profile = UserProfile.from_dict({"email": "a@x.com", "role": None})
        assert profile.role == "user"
        assert profile.is_owner is False

    def test_promo_code_omitted_when_empty(self):
        assert "promo_code" not in UserProfile().to_dict()
        assert UserProfile(promo_code="PROMO2025").to_dict()["promo_code"] == "PROMO2025"


class TestItem:
    def test_price_mismatch(self):
        ok = Item(name_raw="A", name_clean="A", category="Dairy", qty=2, unit_price=1.5, total_price=3.0)
        bad = Item(name_raw="B", name_clean="B", category="Dairy", qty=2, unit_price=1.5, total_price=2.5)
        assert ok.has_price_mismatch is False
        assert bad.has_price_mismatch is True

    def test_clean_name_falls_back_to_raw(self):
        item = Item.from_dict({"name_raw": "LEITE MG", "category": "Dairy"})
        assert item.name_clean == "LEITE MG"


class TestReceipt:
    def test_from_dict_requires_id(self):
        with pytest.raises(ValueError, match="id"):
            Receipt.from_dict({"meta": {}})

    def test_unknown_scan_quality_becomes_low(self):
        assert ReceiptMeta(scan_quality="Great").scan_quality == "Low"

    def test_image_url_wire_key(self):
        receipt = Receipt(id="r1", image_url="data:image/jpeg;base64,AAA")
        d = receipt.to_dict()
        assert d["imageUrl"] == "data:image/jpeg;base64,AAA"
        assert Receipt.from_dict(d).image_url == receipt.image_url

    def test_with_categories(self):
        receipt = Receipt(id="r1", items=[
            Item(name_raw="a", name_clean="a", category="Dairy"),
            Item(name_raw="b", name_clean="b", category="Gadgets"),
        ])
        fixed = receipt.with_categories(["Dairy", "Other"])
        assert [i.category for i in fixed.items] == ["Dairy", "Other"]
        assert receipt.items[1].category == "Gadgets"

    def test_with_categories_without_other(self):
        receipt = Receipt(id="r1", items=[Item(name_raw="b", name_clean="b", category="Gadgets")])
        fixed = receipt.with_categories(["Fruta", "Peixe"])
        assert fixed.items[0].category == "Fruta"


class TestChatAndSession:
    def test_chat_role_validated(self):
        with pytest.raises(ValueError):
            ChatMessage(role="assistant", text="hi")

    def test_session_pointer_requires_email(self):
        with pytest.raises(ValueError):
            SessionPointer.from_dict({})
        assert SessionPointer.from_dict({"email": "A@X.com"}).email == "a@x.com"


class TestPersistedBundle:
    def test_absent_fields_stay_none(self):
        bundle = PersistedBundle.from_dict({"userProfile": {"email": "a@x.com"}})
        assert bundle.history is None
        assert bundle.chat_history is None
        assert bundle.is_cloud_enabled is None
        assert set(bundle.to_dict()) == {"userProfile"}

    def test_wire_keys(self):
        bundle = PersistedBundle(
            user_profile=UserProfile(email="a@x.com"),
            history=[],
            chat_history=[ChatMessage(role="user", text="hi")],
            is_cloud_enabled=False,
            updated_at="2025-01-01T00:00:00+00:00",
        )
        d = bundle.to_dict()
        assert set(d) == {"userProfile", "history", "chatHistory", "isCloudEnabled", "updatedAt"}
        assert d["chatHistory"] == [{"role": "user", "text": "hi"}]

    def test_caps_applied(self):
        bundle = PersistedBundle(
            history=[Receipt(id=str(i)) for i in range(HISTORY_LIMIT + 5)],
            chat_history=[ChatMessage(role="user", text=str(i)) for i in range(CHAT_LIMIT + 5)],
        )
        assert len(bundle.history) == HISTORY_LIMIT
        assert bundle.history[0].id == "0"
        assert len(bundle.chat_history) == CHAT_LIMIT
        assert bundle.chat_history[-1].text == str(CHAT_LIMIT + 4)

    @pytest.mark.parametrize("data", [
        {"history": ["not a receipt"]},
        {"history": [{"id": "1", "items": ["not an item"]}]},
        {"history": [{"id": "1", "meta": "not meta"}]},
        {"history": [{"id": "1", "analysis": ["x"]}]},
        {"chatHistory": ["not a message"]},
    ])
    def test_malformed_nested_values_raise_type_error(self, data):
        with pytest.raises(TypeError):
            PersistedBundle.from_dict(data)


def test_normalize_email():
    assert normalize_email("  X@Y.Z ") == "x@y.z"
    assert normalize_email(None) == ""
