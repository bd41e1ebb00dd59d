"""
Order reconciliation for a table.

Selecting a table loads its pending order (if any) into a working cart;
submitting writes the cart back as one order: create-or-update the header,
update lines that already exist, insert the rest, then re-derive the total
from what the store actually holds.

The only concurrency guard is `SubmissionLocks`, a per-process set of table
ids. It stops the same process from double-submitting a table; it does not
coordinate separate processes or devices, so "one pending order per table"
stays best effort.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set

from .cart import CartEntry, apply_cart_operation, cart_total, normalize_lines, to_decimal
from .config import PAYMENT_METHODS
from .store import Store, StoreError

_log = logging.getLogger("cafepos.engine")

MSG_EMPTY_CART = "Cart is empty."
MSG_NO_PAYMENT_METHOD = "Please select a payment method before placing the order."
MSG_ALREADY_PROCESSING = "Order is already being processed for this table. Please wait."


class SubmissionLocks:
    def __init__(self):
        self._guard = threading.Lock()
        self._held: Set[int] = set()

    def is_held(self, table_id: int) -> bool:
        with self._guard:
            return table_id in self._held

    @contextmanager
    def hold(self, table_id: int) -> Iterator[bool]:
        """Yield True if the lease was taken; it is released on exit either way."""
        with self._guard:
            acquired = table_id not in self._held
            if acquired:
                self._held.add(table_id)
        try:
            yield acquired
        finally:
            if acquired:
                with self._guard:
                    self._held.discard(table_id)


submission_locks = SubmissionLocks()


@dataclass
class TableState:
    table: Dict[str, Any]
    cart: List[CartEntry] = field(default_factory=list)
    active_order: Optional[Dict[str, Any]] = None
    payment_method: Optional[str] = None
    # Recipe stock is taken once per order; a loaded pending order already paid it.
    stock_deducted: bool = False

    @property
    def table_id(self) -> int:
        return self.table["id"]

    @property
    def total(self) -> Decimal:
        return cart_total(self.cart)


@dataclass(frozen=True)
class OrderSnapshot:
    order_id: int
    table_id: int
    table_number: Optional[int]
    status: str
    payment_method: Optional[str]
    total: Decimal
    items: List[CartEntry]
    created_at: Optional[datetime] = None
    # True when the submission extended an order that was already pending.
    updated: bool = False


@dataclass(frozen=True)
class SubmitOutcome:
    snapshot: Optional[OrderSnapshot] = None
    rejection: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.snapshot is not None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _money_or_none(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        out = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return out if out.is_finite() else None


def select_table(store: Store, table: Mapping[str, Any]) -> TableState:
    """
    Working state for `table`: its pending order merged into a cart, or an
    empty cart. A failed lookup is logged and treated as "no pending order".
    """
    state = TableState(table=dict(table))
    try:
        pending = store.fetch_pending_orders(state.table_id)
    except StoreError as e:
        _log.error("loading table order failed: %s", e, extra={"table_id": state.table_id})
        return state
    if not pending:
        return state
    if len(pending) > 1:
        _log.warning(
            "%d pending orders for one table, using the first",
            len(pending),
            extra={"table_id": state.table_id, "order_id": pending[0]["id"]},
        )
    order = pending[0]
    state.active_order = order
    state.stock_deducted = True
    state.cart = normalize_lines(order.get("order_details") or [])
    return state


def mutate_cart(
    state: TableState,
    op: str,
    item_id: int,
    delta: int = 0,
    menu_item: Optional[Mapping[str, Any]] = None,
) -> List[CartEntry]:
    state.cart = apply_cart_operation(state.cart, op, item_id, delta=delta, menu_item=menu_item)
    return state.cart


def choose_payment_method(state: TableState, method: str) -> None:
    if method not in PAYMENT_METHODS:
        raise ValueError(f"unknown payment method: {method}")
    state.payment_method = method


def build_snapshot(order: Mapping[str, Any], table: Optional[Mapping[str, Any]] = None, updated: bool = False) -> OrderSnapshot:
    """Display-ready view of a fetched order: duplicate item rows merged."""
    items = normalize_lines(order.get("order_details") or [])
    total = _money_or_none(order.get("total_amount"))
    if total is None:
        total = cart_total(items)
    return OrderSnapshot(
        order_id=order["id"],
        table_id=order["table_id"],
        table_number=(table or {}).get("table_number"),
        status=order.get("status") or "pending",
        payment_method=order.get("payment_method"),
        total=total,
        items=items,
        created_at=order.get("created_at"),
        updated=updated,
    )


def persisted_total(lines: List[Mapping[str, Any]]) -> Decimal:
    total = Decimal("0")
    for ln in lines:
        sub = _money_or_none(ln.get("subtotal"))
        if sub is None:
            sub = to_decimal(ln.get("price")) * int(ln.get("quantity") or 0)
        total += sub
    return total


def deduct_stock(store: Store, entries: List[CartEntry], order_id: Optional[int] = None) -> None:
    """
    Take recipe quantities out of ingredient stock. An ingredient that would
    go negative is skipped, and so is one whose update fails: stock levels
    are informational and never block an order.
    """
    for entry in entries:
        try:
            recipe = store.fetch_recipe(entry.menu_item_id)
        except StoreError as e:
            _log.warning("recipe lookup failed for item %s: %s", entry.menu_item_id, e, extra={"order_id": order_id})
            continue
        for rl in recipe:
            ing = rl.get("ingredient")
            if ing is None:
                continue
            new_stock = (ing.get("stock_quantity") or 0) - (rl.get("quantity_needed") or 0) * entry.quantity
            if new_stock < 0:
                _log.warning("insufficient stock for ingredient %s", ing.get("name"), extra={"order_id": order_id})
                continue
            try:
                store.update_ingredient_stock(rl["ingredient_id"], new_stock)
            except StoreError as e:
                _log.warning("stock update failed for ingredient %s: %s", ing.get("name"), e, extra={"order_id": order_id})


def _attach_line_id(state: TableState, menu_item_id: int, detail_id: int) -> None:
    # Recorded per insert so a failure later in the sequence cannot cause a re-insert on retry.
    state.cart = [
        replace(e, order_detail_id=detail_id) if e.menu_item_id == menu_item_id and e.order_detail_id is None else e
        for e in state.cart
    ]


def _sync(store: Store, state: TableState, keep_cart: bool) -> OrderSnapshot:
    now = _now()
    table_id = state.table_id
    was_pending = state.active_order is not None

    if state.active_order is None:
        order = store.create_order(
            table_id=table_id,
            total_amount=state.total,  # write hint only, replaced below
            status="pending",
            payment_status="pending",
            payment_method=state.payment_method,
            created_at=now,
        )
        state.active_order = order
        store.update_table_status(table_id, "occupied")
    else:
        store.update_order(state.active_order["id"], payment_method=state.payment_method, updated_at=now)
    order_id = state.active_order["id"]

    for entry in list(state.cart):
        if entry.order_detail_id is not None:
            store.update_line_item(entry.order_detail_id, entry.quantity, entry.subtotal, updated_at=now)
        else:
            row = store.insert_line_item(
                order_id=order_id,
                menu_item_id=entry.menu_item_id,
                quantity=entry.quantity,
                price=entry.price,
                subtotal=entry.subtotal,
                created_at=now,
            )
            _attach_line_id(state, entry.menu_item_id, row["id"])

    if not state.stock_deducted:
        deduct_stock(store, state.cart, order_id=order_id)
        state.stock_deducted = True

    lines = store.fetch_line_items(order_id)
    store.update_order(
        order_id,
        total_amount=persisted_total(lines),
        payment_method=state.payment_method,
        updated_at=_now(),
    )

    order = store.fetch_order(order_id)
    state.active_order = order

    if not keep_cart:
        state.cart = []
    state.payment_method = None
    return build_snapshot(order, state.table, updated=was_pending)


def submit_order(
    store: Store,
    state: TableState,
    *,
    keep_cart: bool = False,
    locks: SubmissionLocks = submission_locks,
) -> SubmitOutcome:
    """
    Write the cart back as the table's pending order.

    Rejections (empty cart, no payment method, a submission already running
    for this table) touch nothing. A store failure stops the sequence where
    it happened; rows already written stay and a retry picks them up through
    their order_detail_id.
    """
    if not state.cart:
        return SubmitOutcome(rejection=MSG_EMPTY_CART)
    if not state.payment_method:
        return SubmitOutcome(rejection=MSG_NO_PAYMENT_METHOD)

    with locks.hold(state.table_id) as acquired:
        if not acquired:
            return SubmitOutcome(rejection=MSG_ALREADY_PROCESSING)
        try:
            snapshot = _sync(store, state, keep_cart)
        except StoreError as e:
            order_id = state.active_order["id"] if state.active_order else None
            _log.error("placing order failed: %s", e, extra={"table_id": state.table_id, "order_id": order_id})
            return SubmitOutcome(error=str(e))

    _log.info(
        "order %s with %d item(s), total %s",
        "updated" if snapshot.updated else "placed",
        len(snapshot.items),
        snapshot.total,
        extra={"table_id": snapshot.table_id, "order_id": snapshot.order_id},
    )
    return SubmitOutcome(snapshot=snapshot)
