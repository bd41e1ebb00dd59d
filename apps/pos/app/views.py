"""
Which screen a terminal is on.

Each view is its own frozen dataclass so an OrderConfirmed view cannot exist
without the order it confirms. Transitions are plain functions that return
the next view or raise InvalidTransition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .engine import OrderSnapshot, TableState


class InvalidTransition(Exception):
    pass


@dataclass(frozen=True)
class TableSelection:
    name = "table_selection"


@dataclass(frozen=True)
class Menu:
    table_state: TableState
    name = "menu"


@dataclass(frozen=True)
class OrderConfirmed:
    table_state: TableState
    snapshot: OrderSnapshot
    name = "order_confirmed"


View = Union[TableSelection, Menu, OrderConfirmed]


def _reject(view: View, action: str) -> InvalidTransition:
    return InvalidTransition(f"cannot {action} from {view.name}")


def open_table(view: View, table_state: TableState) -> Menu:
    return Menu(table_state=table_state)


def confirm(view: View, snapshot: OrderSnapshot) -> OrderConfirmed:
    if not isinstance(view, Menu):
        raise _reject(view, "confirm an order")
    return OrderConfirmed(table_state=view.table_state, snapshot=snapshot)


def edit_more(view: View) -> Menu:
    if not isinstance(view, OrderConfirmed):
        raise _reject(view, "edit more")
    return Menu(table_state=view.table_state)


def new_order(view: View) -> TableSelection:
    return TableSelection()


def change_table(view: View) -> TableSelection:
    if not isinstance(view, Menu):
        raise _reject(view, "change table")
    return TableSelection()
