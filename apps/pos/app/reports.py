"""
Sales figures for the admin dashboard, computed from order records as the
store returns them (dicts with nested order_details / menu_item).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .cart import to_decimal

TIME_RANGES = ("today", "week", "month", "all")
PROFIT_MARGIN = Decimal("0.6")


def _utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timestamps back without tzinfo; they were written as UTC.
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def _now(now: Optional[datetime]) -> datetime:
    return _utc(now) if now is not None else datetime.now(timezone.utc)


def _item_name(detail: Mapping[str, Any], default: str) -> str:
    mi = detail.get("menu_item") or {}
    return mi.get("name") or default


def range_start(time_range: str, now: Optional[datetime] = None) -> Optional[datetime]:
    if time_range not in TIME_RANGES:
        raise ValueError(f"unknown time range: {time_range}")
    now = _now(now)
    if time_range == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if time_range == "week":
        return now - timedelta(days=7)
    if time_range == "month":
        return now - timedelta(days=30)
    return None


def filter_range(orders: Iterable[Mapping[str, Any]], time_range: str, now: Optional[datetime] = None) -> List[Mapping[str, Any]]:
    start = range_start(time_range, now)
    if start is None:
        return list(orders)
    return [o for o in orders if (_utc(o.get("created_at")) or start) >= start]


def dashboard_stats(orders: Iterable[Mapping[str, Any]], time_range: str = "today", now: Optional[datetime] = None) -> Dict[str, Any]:
    scoped = filter_range(orders, time_range, now)
    completed = [o for o in scoped if o.get("status") == "completed"]
    revenue = sum((to_decimal(o.get("total_amount")) for o in completed), Decimal("0"))
    count = len(completed)

    sold: Dict[str, int] = {}
    for o in completed:
        for d in o.get("order_details") or []:
            name = _item_name(d, "Unknown")
            sold[name] = sold.get(name, 0) + int(d.get("quantity") or 0)
    best = max(sold.items(), key=lambda kv: kv[1])[0] if sold else "N/A"

    return {
        "time_range": time_range,
        "total_revenue": revenue,
        "total_orders": count,
        "avg_order_value": (revenue / count).quantize(Decimal("0.01")) if count else Decimal("0"),
        "pending_orders": sum(1 for o in scoped if o.get("status") == "pending"),
        "customers_served": len({o.get("table_id") for o in completed}),
        "best_selling_item": best,
    }


def top_items(orders: Iterable[Mapping[str, Any]], limit: int = 5) -> List[Dict[str, Any]]:
    """Completed-order items ranked by revenue, with the assumed 60% margin."""
    agg: Dict[str, Dict[str, Any]] = {}
    for o in orders:
        if o.get("status") != "completed":
            continue
        for d in o.get("order_details") or []:
            name = _item_name(d, "Unknown Item")
            row = agg.setdefault(name, {"name": name, "quantity": 0, "revenue": Decimal("0")})
            row["quantity"] += int(d.get("quantity") or 0)
            row["revenue"] += to_decimal(d.get("subtotal"))
    ranked = sorted(agg.values(), key=lambda r: r["revenue"], reverse=True)[:limit]
    for r in ranked:
        r["profit"] = (r["revenue"] * PROFIT_MARGIN).quantize(Decimal("0.01"))
    return ranked


def revenue_series(orders: Iterable[Mapping[str, Any]], now: Optional[datetime] = None) -> Dict[str, List[Dict[str, Any]]]:
    now = _now(now)
    completed = [(o, _utc(o.get("created_at"))) for o in orders if o.get("status") == "completed"]
    completed = [(o, ts) for o, ts in completed if ts is not None]

    daily = []
    for i in range(6, -1, -1):
        day = (now - timedelta(days=i)).date()
        rev = sum((to_decimal(o.get("total_amount")) for o, ts in completed if ts.date() == day), Decimal("0"))
        daily.append({"day": day.strftime("%a"), "date": day.isoformat(), "revenue": rev})

    weekly = []
    for i in range(3, -1, -1):
        start = now - timedelta(days=(i + 1) * 7)
        end = start + timedelta(days=6)
        rev = sum((to_decimal(o.get("total_amount")) for o, ts in completed if start <= ts <= end), Decimal("0"))
        weekly.append({"week": f"Week {4 - i}", "revenue": rev})

    return {"daily": daily, "weekly": weekly}


def popular_items(orders: Iterable[Mapping[str, Any]], limit: int = 3, days: int = 7, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    since = _now(now) - timedelta(days=days)
    counts: Dict[int, Dict[str, Any]] = {}
    for o in orders:
        ts = _utc(o.get("created_at"))
        if o.get("status") != "completed" or ts is None or ts < since:
            continue
        for d in o.get("order_details") or []:
            item_id = d.get("menu_item_id")
            if item_id is None:
                continue
            mi = d.get("menu_item") or {}
            row = counts.setdefault(
                item_id,
                {"id": item_id, "name": mi.get("name") or "Item", "price": mi.get("price"), "category": mi.get("category"), "count": 0},
            )
            row["count"] += int(d.get("quantity") or 0)
    return sorted(counts.values(), key=lambda r: r["count"], reverse=True)[:limit]
