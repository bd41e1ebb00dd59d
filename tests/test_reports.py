from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from apps.pos.app.reports import dashboard_stats, popular_items, range_start, revenue_series, top_items

NOW = datetime(2024, 5, 10, 15, 0, tzinfo=timezone.utc)


def _line(item_id, name, qty, subtotal):
    return {
        "menu_item_id": item_id,
        "quantity": qty,
        "subtotal": Decimal(subtotal),
        "menu_item": {"id": item_id, "name": name, "price": Decimal(subtotal) / qty, "category": None},
    }


def _order(oid, table_id, status, total, created_at, lines):
    return {
        "id": oid,
        "table_id": table_id,
        "status": status,
        "total_amount": Decimal(total),
        "created_at": created_at,
        "order_details": lines,
    }


@pytest.fixture()
def orders():
    return [
        _order(1, 1, "completed", "300", NOW - timedelta(hours=5), [_line(1, "Espresso", 2, "240"), _line(6, "Cookie", 1, "60")]),
        # naive timestamps, as SQLite returns them
        _order(2, 2, "completed", "240", (NOW - timedelta(days=3)).replace(tzinfo=None), [_line(1, "Espresso", 2, "240")]),
        _order(3, 3, "pending", "150", NOW - timedelta(hours=1), [_line(3, "Croissant", 1, "150")]),
        _order(4, 1, "completed", "500", NOW - timedelta(days=20), [_line(2, "Latte", 2, "360"), _line(7, "Brownie", 1, "140")]),
        _order(5, 2, "completed", "1000", NOW - timedelta(days=60), [_line(8, "Cake", 4, "1000")]),
    ]


def test_today_stats(orders):
    stats = dashboard_stats(orders, "today", now=NOW)
    assert stats["total_revenue"] == Decimal("300")
    assert stats["total_orders"] == 1
    assert stats["avg_order_value"] == Decimal("300.00")
    assert stats["pending_orders"] == 1
    assert stats["customers_served"] == 1
    assert stats["best_selling_item"] == "Espresso"


@pytest.mark.parametrize(
    "time_range, revenue, count, tables",
    [("week", "540", 2, 2), ("month", "1040", 3, 2), ("all", "2040", 4, 2)],
)
def test_wider_ranges(orders, time_range, revenue, count, tables):
    stats = dashboard_stats(orders, time_range, now=NOW)
    assert stats["total_revenue"] == Decimal(revenue)
    assert stats["total_orders"] == count
    assert stats["customers_served"] == tables


def test_empty_range_has_no_best_seller():
    stats = dashboard_stats([], "all", now=NOW)
    assert stats["total_revenue"] == Decimal("0")
    assert stats["avg_order_value"] == Decimal("0")
    assert stats["best_selling_item"] == "N/A"


def test_unknown_range_is_refused():
    with pytest.raises(ValueError):
        range_start("year", now=NOW)


def test_top_items_by_revenue(orders):
    top = top_items(orders)
    assert [t["name"] for t in top] == ["Cake", "Espresso", "Latte", "Brownie", "Cookie"]
    assert top[0]["profit"] == Decimal("600.00")
    assert top[1]["quantity"] == 4
    assert top[1]["revenue"] == Decimal("480")
    assert all(t["name"] != "Croissant" for t in top)


def test_revenue_series(orders):
    series = revenue_series(orders, now=NOW)
    daily = series["daily"]
    assert len(daily) == 7
    assert daily[-1]["date"] == "2024-05-10"
    assert daily[-1]["day"] == "Fri"
    assert daily[-1]["revenue"] == Decimal("300")
    assert daily[3]["revenue"] == Decimal("240")
    assert sum(d["revenue"] for d in daily) == Decimal("540")

    weekly = series["weekly"]
    assert [w["week"] for w in weekly] == ["Week 1", "Week 2", "Week 3", "Week 4"]
    assert [w["revenue"] for w in weekly] == [Decimal("0"), Decimal("500"), Decimal("0"), Decimal("240")]


def test_popular_items_last_week(orders):
    popular = popular_items(orders, now=NOW)
    assert [(p["id"], p["count"]) for p in popular] == [(1, 4), (6, 1)]
    assert popular[0]["name"] == "Espresso"
