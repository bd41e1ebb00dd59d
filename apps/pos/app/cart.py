"""
In-memory cart for one table.

A cart is a plain list of `CartEntry`, one per distinct menu item id. All
functions here are pure: they never touch the store and always return a new
list, so callers can swap the whole cart atomically.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping, Optional

PLACEHOLDER_NAME = "Item"


@dataclass(frozen=True)
class CartEntry:
    menu_item_id: int
    name: str
    price: Decimal
    quantity: int
    # Set when a persisted order_details row backs this entry.
    order_detail_id: Optional[int] = None

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


def to_decimal(value: Any) -> Decimal:
    """Money coercion that tolerates None / junk by falling back to zero."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, Decimal):
        return value if value.is_finite() else Decimal("0")
    try:
        out = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return out if out.is_finite() else Decimal("0")


def _record_name(rec: Mapping[str, Any]) -> str:
    name = rec.get("name")
    if not name:
        nested = rec.get("menu_item") or {}
        name = nested.get("name") if isinstance(nested, Mapping) else None
    return str(name) if name else PLACEHOLDER_NAME


def normalize_lines(records: Iterable[Any]) -> List[CartEntry]:
    """
    Collapse raw line records into one entry per menu item id.

    Records are read in order; the first record for an id fixes price, name
    and order_detail_id, later records only add their quantity. Records
    without a menu item id are dropped, and so is any entry whose merged
    quantity is not positive.
    """
    merged: dict[int, CartEntry] = {}
    for rec in records:
        if isinstance(rec, CartEntry):
            rec = asdict(rec)
        item_id = rec.get("menu_item_id")
        if item_id is None:
            continue
        qty = int(rec.get("quantity") or 0)
        seen = merged.get(item_id)
        if seen is not None:
            merged[item_id] = replace(seen, quantity=seen.quantity + qty)
            continue
        merged[item_id] = CartEntry(
            menu_item_id=item_id,
            name=_record_name(rec),
            price=to_decimal(rec.get("price")),
            quantity=qty,
            order_detail_id=rec.get("order_detail_id", rec.get("id")),
        )
    return [e for e in merged.values() if e.quantity > 0]


def add_item(entries: List[CartEntry], item: Mapping[str, Any]) -> List[CartEntry]:
    """Add one unit of a menu item (a menu_items record)."""
    item_id = item["id"]
    if any(e.menu_item_id == item_id for e in entries):
        return [replace(e, quantity=e.quantity + 1) if e.menu_item_id == item_id else e for e in entries]
    entry = CartEntry(
        menu_item_id=item_id,
        name=str(item.get("name") or PLACEHOLDER_NAME),
        price=to_decimal(item.get("price")),
        quantity=1,
    )
    return [*entries, entry]


def adjust_quantity(entries: List[CartEntry], item_id: int, delta: int) -> List[CartEntry]:
    out: List[CartEntry] = []
    for e in entries:
        if e.menu_item_id != item_id:
            out.append(e)
            continue
        qty = e.quantity + delta
        if qty > 0:
            out.append(replace(e, quantity=qty))
    return out


def remove_item(entries: List[CartEntry], item_id: int) -> List[CartEntry]:
    return [e for e in entries if e.menu_item_id != item_id]


def cart_total(entries: Iterable[CartEntry]) -> Decimal:
    return sum((e.subtotal for e in entries), Decimal("0"))


CART_OPERATIONS = ("add", "adjust", "remove")


def apply_cart_operation(
    entries: List[CartEntry],
    op: str,
    item_id: int,
    *,
    delta: int = 0,
    menu_item: Optional[Mapping[str, Any]] = None,
) -> List[CartEntry]:
    """Dispatch a named cart operation; `add` needs the menu item record."""
    if op == "add":
        if menu_item is None:
            raise ValueError("add requires the menu item record")
        return add_item(entries, menu_item)
    if op == "adjust":
        return adjust_quantity(entries, item_id, delta)
    if op == "remove":
        return remove_item(entries, item_id)
    raise ValueError(f"unknown cart operation: {op}")
