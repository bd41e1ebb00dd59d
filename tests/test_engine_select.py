from datetime import datetime, timezone
from decimal import Decimal

from apps.pos.app.engine import select_table
from apps.pos.app.store import Store, StoreError

from .conftest import ESPRESSO, LATTE


def _now():
    return datetime.now(timezone.utc)


def _order_with_lines(store, table_id, lines):
    od = store.create_order(
        table_id=table_id,
        total_amount=Decimal("0"),
        status="pending",
        payment_status="pending",
        payment_method="cash",
        created_at=_now(),
    )
    for item_id, qty, price in lines:
        store.insert_line_item(
            order_id=od["id"],
            menu_item_id=item_id,
            quantity=qty,
            price=Decimal(price),
            subtotal=Decimal(price) * qty,
            created_at=_now(),
        )
    return od


def test_table_without_pending_order_starts_empty(store):
    state = select_table(store, store.get_table(1))
    assert state.active_order is None
    assert state.cart == []
    assert state.total == Decimal("0")


def test_pending_order_is_loaded_and_merged(store):
    od = _order_with_lines(store, 1, [(ESPRESSO, 2, "120"), (LATTE, 1, "180"), (ESPRESSO, 1, "120")])
    state = select_table(store, store.get_table(1))
    assert state.active_order["id"] == od["id"]
    assert [(e.menu_item_id, e.quantity) for e in state.cart] == [(ESPRESSO, 3), (LATTE, 1)]
    assert state.cart[0].name == "Espresso"
    assert state.cart[0].order_detail_id is not None
    assert state.total == Decimal("540")


def test_completed_orders_are_ignored(store):
    od = _order_with_lines(store, 1, [(ESPRESSO, 1, "120")])
    store.update_order(od["id"], status="completed")
    state = select_table(store, store.get_table(1))
    assert state.active_order is None
    assert state.cart == []


def test_multiple_pending_orders_uses_first(store, caplog):
    first = _order_with_lines(store, 2, [(ESPRESSO, 1, "120")])
    _order_with_lines(store, 2, [(LATTE, 4, "180")])
    with caplog.at_level("WARNING", logger="cafepos.engine"):
        state = select_table(store, store.get_table(2))
    assert state.active_order["id"] == first["id"]
    assert [(e.menu_item_id, e.quantity) for e in state.cart] == [(ESPRESSO, 1)]
    assert any("pending orders" in r.getMessage() for r in caplog.records)


class _BrokenLookupStore(Store):
    def fetch_pending_orders(self, table_id):
        raise StoreError("fetch_pending_orders failed: connection reset")


def test_lookup_failure_degrades_to_empty_cart(session, caplog):
    store = _BrokenLookupStore(session)
    with caplog.at_level("ERROR", logger="cafepos.engine"):
        state = select_table(store, store.get_table(1))
    assert state.active_order is None
    assert state.cart == []
    assert any("connection reset" in r.getMessage() for r in caplog.records)
