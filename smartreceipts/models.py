"""Data models for profiles, receipts, chat messages and the persisted bundle."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

HISTORY_LIMIT = 100
CHAT_LIMIT = 30

DEFAULT_CATEGORIES: tuple[str, ...] = (
    "Dairy",
    "Produce",
    "Bakery",
    "Butcher",
    "Pantry",
    "Frozen",
    "Snacks",
    "Beverages",
    "Household",
    "Personal Care",
    "Pets",
    "Other",
)

ACCOUNT_STATUSES = ("trial", "active", "expired")
# Older documents carry statuses that no longer exist.
_LEGACY_STATUSES = {"admin": "active"}
ROLES = ("user", "owner")
SCAN_QUALITIES = ("High", "Medium", "Low")
CHAT_ROLES = ("user", "model")


def normalize_email(email: str) -> str:
    """Storage key form of an email: trimmed and lower-cased."""
    return (email or "").strip().lower()


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _str_list(value: Any) -> list[str]:
    if not value:
        return []
    if not isinstance(value, (list, tuple)):
        raise TypeError(f"expected a list, got {type(value).__name__}")
    return [str(v) for v in value]


@dataclass
class UserProfile:
    """Identity and preferences of the signed-in user."""

    user_name: str = ""
    email: str = ""
    dietary_regime: str = "None / Mixed"
    monthly_budget: float = 0.0
    current_month_spend: float = 0.0
    family_context: str = ""
    goals: list[str] = field(default_factory=list)
    account_status: str = "trial"
    role: str = "user"
    joined_at: str = field(default_factory=utc_now)
    promo_code: str | None = None
    custom_categories: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.email = normalize_email(self.email)
        self.monthly_budget = float(self.monthly_budget or 0)
        self.current_month_spend = float(self.current_month_spend or 0)
        if self.account_status not in ACCOUNT_STATUSES:
            raise ValueError(f"invalid account_status: {self.account_status!r}")
        if self.role not in ROLES:
            raise ValueError(f"invalid role: {self.role!r}")
        cleaned = [c.strip() for c in self.custom_categories if c and c.strip()]
        self.custom_categories = cleaned or list(DEFAULT_CATEGORIES)

    @property
    def is_owner(self) -> bool:
        return self.role == "owner"

    @classmethod
    def from_dict(cls, data: dict) -> UserProfile:
        if not isinstance(data, dict):
            raise TypeError("userProfile must be an object")
        return cls(
            user_name=data.get("user_name", "") or "",
            email=data.get("email", "") or "",
            dietary_regime=data.get("dietary_regime", "None / Mixed") or "None / Mixed",
            monthly_budget=data.get("monthly_budget", 0),
            current_month_spend=data.get("current_month_spend", 0),
            family_context=data.get("family_context", "") or "",
            goals=_str_list(data.get("goals")),
            account_status=_LEGACY_STATUSES.get(
                data.get("account_status"), data.get("account_status", "trial")
            ),
            role=data.get("role") or "user",
            joined_at=data.get("joined_at") or utc_now(),
            promo_code=data.get("promo_code"),
            custom_categories=_str_list(data.get("custom_categories")),
        )

    def to_dict(self) -> dict:
        d = {
            "user_name": self.user_name,
            "email": self.email,
            "dietary_regime": self.dietary_regime,
            "monthly_budget": self.monthly_budget,
            "current_month_spend": self.current_month_spend,
            "family_context": self.family_context,
            "goals": list(self.goals),
            "account_status": self.account_status,
            "role": self.role,
            "joined_at": self.joined_at,
            "custom_categories": list(self.custom_categories),
        }
        if self.promo_code:
            d["promo_code"] = self.promo_code
        return d


@dataclass
class Item:
    """A single line item extracted from a receipt."""

    name_raw: str
    name_clean: str
    category: str
    qty: float = 1.0
    unit_price: float = 0.0
    total_price: float = 0.0
    is_discounted: bool = False
    tags: list[str] = field(default_factory=list)

    @property
    def has_price_mismatch(self) -> bool:
        return abs(self.qty * self.unit_price - self.total_price) > 0.01

    @classmethod
    def from_dict(cls, data: dict) -> Item:
        if not isinstance(data, dict):
            raise TypeError("item must be an object")
        name_raw = data.get("name_raw", "") or ""
        return cls(
            name_raw=name_raw,
            name_clean=data.get("name_clean") or name_raw,
            category=data.get("category", "") or "",
            qty=float(data.get("qty", 1) or 0),
            unit_price=float(data.get("unit_price", 0) or 0),
            total_price=float(data.get("total_price", 0) or 0),
            is_discounted=bool(data.get("is_discounted", False)),
            tags=_str_list(data.get("tags")),
        )

    def to_dict(self) -> dict:
        return {
            "name_raw": self.name_raw,
            "name_clean": self.name_clean,
            "category": self.category,
            "qty": self.qty,
            "unit_price": self.unit_price,
            "total_price": self.total_price,
            "is_discounted": self.is_discounted,
            "tags": list(self.tags),
        }


@dataclass
class ReceiptMeta:
    store: str = ""
    date: str = ""
    time: str = ""
    total_spent: float = 0.0
    total_saved: float = 0.0
    scan_quality: str = "Low"

    def __post_init__(self) -> None:
        if self.scan_quality not in SCAN_QUALITIES:
            self.scan_quality = "Low"

    @classmethod
    def from_dict(cls, data: dict) -> ReceiptMeta:
        if not isinstance(data, dict):
            raise TypeError("receipt meta must be an object")
        return cls(
            store=data.get("store", "") or "",
            date=data.get("date", "") or "",
            time=data.get("time", "") or "",
            total_spent=float(data.get("total_spent", 0) or 0),
            total_saved=float(data.get("total_saved", 0) or 0),
            scan_quality=data.get("scan_quality", "Low") or "Low",
        )

    def to_dict(self) -> dict:
        return {
            "store": self.store,
            "date": self.date,
            "time": self.time,
            "total_spent": self.total_spent,
            "total_saved": self.total_saved,
            "scan_quality": self.scan_quality,
        }


@dataclass
class ReceiptAnalysis:
    budget_impact_percentage: float = 0.0
    dietary_compliance: bool = True
    flagged_items: list[str] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> ReceiptAnalysis:
        if not isinstance(data, dict):
            raise TypeError("receipt analysis must be an object")
        return cls(
            budget_impact_percentage=float(data.get("budget_impact_percentage", 0) or 0),
            dietary_compliance=bool(data.get("dietary_compliance", True)),
            flagged_items=_str_list(data.get("flagged_items")),
            insights=_str_list(data.get("insights")),
        )

    def to_dict(self) -> dict:
        return {
            "budget_impact_percentage": self.budget_impact_percentage,
            "dietary_compliance": self.dietary_compliance,
            "flagged_items": list(self.flagged_items),
            "insights": list(self.insights),
        }


@dataclass
class Receipt:
    """One scanned or manually entered purchase."""

    id: str
    meta: ReceiptMeta = field(default_factory=ReceiptMeta)
    items: list[Item] = field(default_factory=list)
    analysis: ReceiptAnalysis = field(default_factory=ReceiptAnalysis)
    coach_message: str = ""
    image_url: str | None = None

    def with_categories(self, categories: list[str]) -> Receipt:
        """Return a copy whose item categories all belong to ``categories``."""
        if not categories:
            return self
        fallback = "Other" if "Other" in categories else categories[0]
        items = [
            item if item.category in categories else replace(item, category=fallback)
            for item in self.items
        ]
        return replace(self, items=items)

    @classmethod
    def from_dict(cls, data: dict) -> Receipt:
        if not isinstance(data, dict):
            raise TypeError("receipt must be an object")
        if not data.get("id"):
            raise ValueError("receipt is missing an id")
        return cls(
            id=str(data["id"]),
            meta=ReceiptMeta.from_dict(data.get("meta") or {}),
            items=[Item.from_dict(i) for i in data.get("items") or []],
            analysis=ReceiptAnalysis.from_dict(data.get("analysis") or {}),
            coach_message=data.get("coach_message", "") or "",
            image_url=data.get("imageUrl"),
        )

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "meta": self.meta.to_dict(),
            "items": [i.to_dict() for i in self.items],
            "analysis": self.analysis.to_dict(),
            "coach_message": self.coach_message,
        }
        if self.image_url:
            d["imageUrl"] = self.image_url
        return d


@dataclass
class ChatMessage:
    role: str
    text: str

    def __post_init__(self) -> None:
        if self.role not in CHAT_ROLES:
            raise ValueError(f"invalid chat role: {self.role!r}")

    @classmethod
    def from_dict(cls, data: dict) -> ChatMessage:
        if not isinstance(data, dict):
            raise TypeError("chat message must be an object")
        return cls(role=data.get("role", ""), text=data.get("text", "") or "")

    def to_dict(self) -> dict:
        return {"role": self.role, "text": self.text}


@dataclass
class SessionPointer:
    """Who is signed in on this device. Stored apart from the bundle."""

    email: str

    def __post_init__(self) -> None:
        self.email = normalize_email(self.email)

    @classmethod
    def from_dict(cls, data: dict) -> SessionPointer:
        if not isinstance(data, dict) or not data.get("email"):
            raise ValueError("session pointer has no email")
        return cls(email=data["email"])

    def to_dict(self) -> dict:
        return {"email": self.email}


@dataclass
class PersistedBundle:
    """The unit written to the local cache and to the remote store.

    A field left as ``None`` was absent from the source document; it is
    omitted on serialization and left untouched by a merge.
    """

    user_profile: UserProfile | None = None
    history: list[Receipt] | None = None
    chat_history: list[ChatMessage] | None = None
    is_cloud_enabled: bool | None = None
    updated_at: str | None = None

    def __post_init__(self) -> None:
        if self.history is not None:
            self.history = list(self.history)[:HISTORY_LIMIT]
        if self.chat_history is not None:
            self.chat_history = list(self.chat_history)[-CHAT_LIMIT:]

    @property
    def email(self) -> str:
        return self.user_profile.email if self.user_profile else ""

    @classmethod
    def from_dict(cls, data: dict) -> PersistedBundle:
        if not isinstance(data, dict):
            raise TypeError("bundle must be an object")
        profile = data.get("userProfile")
        history = data.get("history")
        chat = data.get("chatHistory")
        cloud = data.get("isCloudEnabled")
        return cls(
            user_profile=UserProfile.from_dict(profile) if profile is not None else None,
            history=[Receipt.from_dict(r) for r in history] if history is not None else None,
            chat_history=[ChatMessage.from_dict(m) for m in chat] if chat is not None else None,
            is_cloud_enabled=bool(cloud) if cloud is not None else None,
            updated_at=data.get("updatedAt"),
        )

    def to_dict(self) -> dict:
        d: dict = {}
        if self.user_profile is not None:
            d["userProfile"] = self.user_profile.to_dict()
        if self.history is not None:
            d["history"] = [r.to_dict() for r in self.history]
        if self.chat_history is not None:
            d["chatHistory"] = [m.to_dict() for m in self.chat_history]
        if self.is_cloud_enabled is not None:
            d["isCloudEnabled"] = self.is_cloud_enabled
        if self.updated_at is not None:
            d["updatedAt"] = self.updated_at
        return d
