"""
Store: the query/command surface the POS engine and admin panel talk to.

Every operation runs against one SQLAlchemy session, commits on its own and
hands back plain dict records. Database failures are rolled back, logged and
re-raised as `StoreError` so callers never see driver exceptions.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .db import Ingredient, ItemIngredient, MenuItem, Order, OrderDetail, Table

_log = logging.getLogger("cafepos.store")

ORDER_FIELDS = {"status", "payment_status", "payment_method", "total_amount", "updated_at"}
MENU_FIELDS = {"name", "description", "price", "category", "available"}


class StoreError(Exception):
    pass


class NotFound(StoreError):
    pass


def table_to_dict(t: Table) -> Dict[str, Any]:
    return {"id": t.id, "table_number": t.table_number, "capacity": t.capacity, "status": t.status}


def menu_item_to_dict(mi: MenuItem) -> Dict[str, Any]:
    return {
        "id": mi.id,
        "name": mi.name,
        "description": mi.description,
        "price": mi.price,
        "category": mi.category,
        "available": bool(mi.available),
    }


def detail_to_dict(d: OrderDetail) -> Dict[str, Any]:
    return {
        "id": d.id,
        "order_id": d.order_id,
        "menu_item_id": d.menu_item_id,
        "quantity": d.quantity,
        "price": d.price,
        "subtotal": d.subtotal,
        "created_at": d.created_at,
        "menu_item": menu_item_to_dict(d.menu_item) if d.menu_item is not None else None,
    }


def order_to_dict(od: Order, with_details: bool = True) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": od.id,
        "table_id": od.table_id,
        "status": od.status,
        "payment_status": od.payment_status,
        "payment_method": od.payment_method,
        "total_amount": od.total_amount,
        "created_at": od.created_at,
        "updated_at": od.updated_at,
    }
    if with_details:
        out["order_details"] = [detail_to_dict(d) for d in od.order_details]
    return out


def ingredient_to_dict(ing: Ingredient) -> Dict[str, Any]:
    return {
        "id": ing.id,
        "name": ing.name,
        "unit": ing.unit,
        "stock_quantity": ing.stock_quantity,
        "minimum_stock": ing.minimum_stock,
    }


def _with_details():
    return selectinload(Order.order_details).selectinload(OrderDetail.menu_item)


class Store:
    def __init__(self, session: Session):
        self.s = session

    @contextmanager
    def _op(self, name: str) -> Iterator[None]:
        try:
            yield
        except StoreError:
            self.s.rollback()
            raise
        except SQLAlchemyError as e:
            self.s.rollback()
            _log.error("store operation failed: %s", e, extra={"op": name})
            raise StoreError(f"{name} failed: {e}") from e

    # --- tables ---

    def list_tables(self) -> List[Dict[str, Any]]:
        with self._op("list_tables"):
            rows = self.s.execute(select(Table).order_by(Table.table_number.asc())).scalars().all()
            return [table_to_dict(t) for t in rows]

    def get_table(self, table_id: int) -> Dict[str, Any]:
        with self._op("get_table"):
            t = self.s.get(Table, table_id)
            if t is None:
                raise NotFound(f"table {table_id} not found")
            return table_to_dict(t)

    def update_table_status(self, table_id: int, status: str) -> None:
        with self._op("update_table_status"):
            t = self.s.get(Table, table_id)
            if t is None:
                raise NotFound(f"table {table_id} not found")
            t.status = status
            self.s.commit()

    # --- menu ---

    def list_menu_items(self, available_only: bool = True) -> List[Dict[str, Any]]:
        with self._op("list_menu_items"):
            stmt = select(MenuItem)
            if available_only:
                stmt = stmt.where(MenuItem.available.is_(True))
            rows = self.s.execute(stmt.order_by(MenuItem.name.asc())).scalars().all()
            return [menu_item_to_dict(mi) for mi in rows]

    def get_menu_item(self, item_id: int) -> Dict[str, Any]:
        with self._op("get_menu_item"):
            mi = self.s.get(MenuItem, item_id)
            if mi is None:
                raise NotFound(f"menu item {item_id} not found")
            return menu_item_to_dict(mi)

    def create_menu_item(
        self,
        name: str,
        price: Decimal,
        description: Optional[str] = None,
        category: Optional[str] = None,
        available: bool = True,
    ) -> Dict[str, Any]:
        with self._op("create_menu_item"):
            mi = MenuItem(name=name, price=price, description=description, category=category, available=available)
            self.s.add(mi)
            self.s.commit()
            self.s.refresh(mi)
            return menu_item_to_dict(mi)

    def update_menu_item(self, item_id: int, **fields: Any) -> Dict[str, Any]:
        unknown = set(fields) - MENU_FIELDS
        if unknown:
            raise ValueError(f"unknown menu item fields: {sorted(unknown)}")
        with self._op("update_menu_item"):
            mi = self.s.get(MenuItem, item_id)
            if mi is None:
                raise NotFound(f"menu item {item_id} not found")
            for k, v in fields.items():
                setattr(mi, k, v)
            self.s.commit()
            self.s.refresh(mi)
            return menu_item_to_dict(mi)

    def delete_menu_item(self, item_id: int) -> None:
        with self._op("delete_menu_item"):
            mi = self.s.get(MenuItem, item_id)
            if mi is None:
                raise NotFound(f"menu item {item_id} not found")
            self.s.delete(mi)
            self.s.commit()

    # --- orders ---

    def fetch_pending_orders(self, table_id: int) -> List[Dict[str, Any]]:
        with self._op("fetch_pending_orders"):
            stmt = (
                select(Order)
                .where(Order.table_id == table_id, Order.status == "pending")
                .options(_with_details())
                .order_by(Order.id.asc())
            )
            return [order_to_dict(od) for od in self.s.execute(stmt).scalars().all()]

    def create_order(
        self,
        table_id: int,
        total_amount: Decimal,
        status: str,
        payment_status: str,
        payment_method: Optional[str],
        created_at: datetime,
    ) -> Dict[str, Any]:
        with self._op("create_order"):
            od = Order(
                table_id=table_id,
                total_amount=total_amount,
                status=status,
                payment_status=payment_status,
                payment_method=payment_method,
                created_at=created_at,
            )
            self.s.add(od)
            self.s.commit()
            self.s.refresh(od)
            return order_to_dict(od, with_details=False)

    def update_order(self, order_id: int, **fields: Any) -> None:
        unknown = set(fields) - ORDER_FIELDS
        if unknown:
            raise ValueError(f"unknown order fields: {sorted(unknown)}")
        with self._op("update_order"):
            od = self.s.get(Order, order_id)
            if od is None:
                raise NotFound(f"order {order_id} not found")
            for k, v in fields.items():
                setattr(od, k, v)
            self.s.commit()

    def fetch_order(self, order_id: int) -> Dict[str, Any]:
        with self._op("fetch_order"):
            # populate_existing: another session may have written lines since
            # this one last loaded the order.
            stmt = (
                select(Order)
                .where(Order.id == order_id)
                .options(_with_details())
                .execution_options(populate_existing=True)
            )
            od = self.s.execute(stmt).scalars().first()
            if od is None:
                raise NotFound(f"order {order_id} not found")
            return order_to_dict(od)

    def list_orders(self, since: Optional[datetime] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._op("list_orders"):
            stmt = select(Order).options(_with_details())
            if since is not None:
                stmt = stmt.where(Order.created_at >= since)
            if status:
                stmt = stmt.where(Order.status == status)
            stmt = stmt.order_by(Order.created_at.desc())
            return [order_to_dict(od) for od in self.s.execute(stmt).scalars().all()]

    # --- order lines ---

    def insert_line_item(
        self,
        order_id: int,
        menu_item_id: int,
        quantity: int,
        price: Decimal,
        subtotal: Decimal,
        created_at: datetime,
    ) -> Dict[str, Any]:
        with self._op("insert_line_item"):
            d = OrderDetail(
                order_id=order_id,
                menu_item_id=menu_item_id,
                quantity=quantity,
                price=price,
                subtotal=subtotal,
                created_at=created_at,
            )
            self.s.add(d)
            self.s.commit()
            self.s.refresh(d)
            return detail_to_dict(d)

    def update_line_item(self, detail_id: int, quantity: int, subtotal: Decimal, updated_at: Optional[datetime] = None) -> None:
        with self._op("update_line_item"):
            d = self.s.get(OrderDetail, detail_id)
            if d is None:
                raise NotFound(f"order line {detail_id} not found")
            d.quantity = quantity
            d.subtotal = subtotal
            d.updated_at = updated_at
            self.s.commit()

    def fetch_line_items(self, order_id: int) -> List[Dict[str, Any]]:
        with self._op("fetch_line_items"):
            stmt = (
                select(OrderDetail)
                .where(OrderDetail.order_id == order_id)
                .options(selectinload(OrderDetail.menu_item))
                .order_by(OrderDetail.id.asc())
                .execution_options(populate_existing=True)
            )
            return [detail_to_dict(d) for d in self.s.execute(stmt).scalars().all()]

    # --- inventory ---

    def fetch_recipe(self, menu_item_id: int) -> List[Dict[str, Any]]:
        with self._op("fetch_recipe"):
            stmt = (
                select(ItemIngredient)
                .where(ItemIngredient.menu_item_id == menu_item_id)
                .options(selectinload(ItemIngredient.ingredient))
                .execution_options(populate_existing=True)
            )
            out = []
            for rl in self.s.execute(stmt).scalars().all():
                ing = rl.ingredient
                out.append(
                    {
                        "ingredient_id": rl.ingredient_id,
                        "quantity_needed": rl.quantity_needed,
                        "ingredient": ingredient_to_dict(ing) if ing is not None else None,
                    }
                )
            return out

    def list_ingredients(self) -> List[Dict[str, Any]]:
        with self._op("list_ingredients"):
            rows = self.s.execute(select(Ingredient).order_by(Ingredient.name.asc())).scalars().all()
            return [ingredient_to_dict(i) for i in rows]

    def get_ingredient(self, ingredient_id: int) -> Dict[str, Any]:
        with self._op("get_ingredient"):
            ing = self.s.get(Ingredient, ingredient_id)
            if ing is None:
                raise NotFound(f"ingredient {ingredient_id} not found")
            return ingredient_to_dict(ing)

    def update_ingredient_stock(self, ingredient_id: int, new_stock: float) -> None:
        with self._op("update_ingredient_stock"):
            ing = self.s.get(Ingredient, ingredient_id)
            if ing is None:
                raise NotFound(f"ingredient {ingredient_id} not found")
            ing.stock_quantity = new_stock
            self.s.commit()

    def set_minimum_stock(self, ingredient_id: int, minimum: float) -> None:
        with self._op("set_minimum_stock"):
            ing = self.s.get(Ingredient, ingredient_id)
            if ing is None:
                raise NotFound(f"ingredient {ingredient_id} not found")
            ing.minimum_stock = minimum
            self.s.commit()
