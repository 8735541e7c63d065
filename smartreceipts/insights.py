"""Spending summaries derived from the receipt history."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date

from .models import Receipt, UserProfile


@dataclass
class BudgetForecast:
    day: int
    days_in_month: int
    spent_so_far: float
    daily_average: float
    projected_spend: float
    monthly_budget: float
    is_over_budget: bool
    utilization_pct: float
    projected_utilization_pct: float

    @property
    def has_data(self) -> bool:
        return self.spent_so_far > 0

    @property
    def remaining(self) -> float:
        return self.monthly_budget - self.spent_so_far


@dataclass
class ShoppingSuggestion:
    name: str
    preferred_store: str
    best_price: float
    count: int


def _receipt_date(receipt: Receipt) -> date | None:
    raw = receipt.meta.date
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except (ValueError, TypeError):
        return None


def forecast_budget(
    profile: UserProfile, history: list[Receipt], today: date | None = None
) -> BudgetForecast:
    """Project month-end spend linearly from the spend so far.

    Spend so far is the profile's manual starting balance plus every
    receipt dated in the current month.
    """
    today = today or date.today()
    days_in_month = calendar.monthrange(today.year, today.month)[1]

    month_spend = 0.0
    for receipt in history:
        d = _receipt_date(receipt)
        if d is not None and d.year == today.year and d.month == today.month:
            month_spend += receipt.meta.total_spent

    spent = profile.current_month_spend + month_spend
    daily_average = spent / today.day if spent > 0 else 0.0
    projected = daily_average * days_in_month
    budget = profile.monthly_budget

    return BudgetForecast(
        day=today.day,
        days_in_month=days_in_month,
        spent_so_far=spent,
        daily_average=daily_average,
        projected_spend=projected,
        monthly_budget=budget,
        is_over_budget=spent > 0 and projected > budget,
        utilization_pct=spent / budget * 100 if budget > 0 else 0.0,
        projected_utilization_pct=projected / budget * 100 if budget > 0 else 0.0,
    )


def category_totals(history: list[Receipt]) -> list[tuple[str, float]]:
    """Total item spend per category, largest first."""
    totals: dict[str, float] = {}
    for receipt in history:
        for item in receipt.items:
            totals[item.category] = totals.get(item.category, 0.0) + item.total_price
    return sorted(totals.items(), key=lambda kv: kv[1], reverse=True)


def spending_trend(history: list[Receipt], limit: int = 7) -> list[tuple[str, float]]:
    """The last ``limit`` receipts as (date, total) points, oldest first.

    History is stored newest first.
    """
    points = [(r.meta.date, r.meta.total_spent) for r in reversed(history)]
    return points[-limit:] if limit > 0 else points


def average_ticket(history: list[Receipt]) -> float:
    if not history:
        return 0.0
    return sum(r.meta.total_spent for r in history) / len(history)


def total_saved(history: list[Receipt]) -> float:
    return sum(r.meta.total_saved for r in history)


def shopping_suggestions(history: list[Receipt]) -> list[ShoppingSuggestion]:
    """Frequently bought products with their usual store and best price.

    Products are grouped by clean name, case-insensitively; the display name
    is the first spelling seen.
    """
    stats: dict[str, dict] = {}
    for receipt in history:
        for item in receipt.items:
            display = item.name_clean.strip()
            if not display:
                continue
            entry = stats.setdefault(
                display.lower(),
                {"name": display, "count": 0, "stores": {}, "min_price": None},
            )
            entry["count"] += 1
            if entry["min_price"] is None or item.unit_price < entry["min_price"]:
                entry["min_price"] = item.unit_price
            store = receipt.meta.store
            entry["stores"][store] = entry["stores"].get(store, 0) + 1

    suggestions = [
        ShoppingSuggestion(
            name=e["name"],
            preferred_store=max(e["stores"].items(), key=lambda kv: kv[1])[0],
            best_price=e["min_price"] or 0.0,
            count=e["count"],
        )
        for e in stats.values()
    ]
    suggestions.sort(key=lambda s: (-s.count, s.name))
    return suggestions


def summarize_users(profiles: list[UserProfile]) -> dict:
    """Counts for the admin listing."""
    return {
        "total": len(profiles),
        "active": sum(
            1 for p in profiles if p.account_status == "active" or p.is_owner
        ),
        "codes": sorted({p.promo_code for p in profiles if p.promo_code}),
    }
