"""
Back-office endpoints: menu management, pantry stock and the sales dashboard.

Login checks one configured email/password pair and hands out an opaque
token kept in process memory; every other /admin route wants it in
X-Admin-Token. This is a convenience gate for a single shop device, not
real authentication.
"""

import hmac
import logging
import secrets
from decimal import Decimal
from typing import List, Optional, Set

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from .config import ADMIN_EMAIL, ADMIN_PASSWORD
from .deps import get_store, store_http_error
from .reports import TIME_RANGES, dashboard_stats, revenue_series, top_items
from .store import Store, StoreError

_log = logging.getLogger("cafepos.admin")

_tokens: Set[str] = set()


class LoginReq(BaseModel):
    email: str
    password: str


class LoginOut(BaseModel):
    token: str


class MenuItemIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(ge=0)
    category: Optional[str] = None
    available: bool = True


class MenuItemPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = None
    available: Optional[bool] = None


class PriceReq(BaseModel):
    price: Decimal = Field(ge=0)


class RestockReq(BaseModel):
    quantity: float = Field(gt=0)


class MinimumReq(BaseModel):
    minimum: float = Field(ge=0)


def _require_admin(request: Request):
    tok = request.headers.get("X-Admin-Token") or ""
    if not tok or tok not in _tokens:
        raise HTTPException(status_code=401, detail="admin login required")


def _stock_flags(ing: dict) -> dict:
    stock = ing.get("stock_quantity") or 0
    return {
        **ing,
        "low_stock": stock <= (ing.get("minimum_stock") or 0),
        "out_of_stock": stock <= 0,
    }


router = APIRouter(prefix="/admin")
guarded = APIRouter(dependencies=[Depends(_require_admin)])


@router.post("/login", response_model=LoginOut)
def login(req: LoginReq):
    email_ok = hmac.compare_digest(req.email.strip().encode(), ADMIN_EMAIL.encode())
    password_ok = hmac.compare_digest(req.password.encode(), ADMIN_PASSWORD.encode())
    if not (email_ok and password_ok):
        _log.warning("admin login rejected")
        raise HTTPException(status_code=401, detail="Invalid email or password")
    tok = secrets.token_urlsafe(24)
    _tokens.add(tok)
    _log.info("admin login")
    return LoginOut(token=tok)


@guarded.post("/logout")
def logout(request: Request):
    _tokens.discard(request.headers.get("X-Admin-Token") or "")
    return {"ok": True}


# --- menu ---


@guarded.get("/menu")
def list_menu(store: Store = Depends(get_store)):
    try:
        return store.list_menu_items(available_only=False)
    except StoreError as e:
        raise store_http_error(e)


@guarded.post("/menu")
def create_menu_item(req: MenuItemIn, store: Store = Depends(get_store)):
    try:
        item = store.create_menu_item(
            name=req.name.strip(),
            price=req.price,
            description=req.description,
            category=req.category,
            available=req.available,
        )
    except StoreError as e:
        raise store_http_error(e)
    _log.info("menu item %s created", item["id"])
    return item


@guarded.patch("/menu/{item_id}")
def update_menu_item(item_id: int, req: MenuItemPatch, store: Store = Depends(get_store)):
    fields = req.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="nothing to update")
    try:
        return store.update_menu_item(item_id, **fields)
    except StoreError as e:
        raise store_http_error(e)


@guarded.post("/menu/{item_id}/price")
def change_price(item_id: int, req: PriceReq, store: Store = Depends(get_store)):
    try:
        return store.update_menu_item(item_id, price=req.price)
    except StoreError as e:
        raise store_http_error(e)


@guarded.post("/menu/{item_id}/toggle")
def toggle_availability(item_id: int, store: Store = Depends(get_store)):
    try:
        item = store.get_menu_item(item_id)
        return store.update_menu_item(item_id, available=not item["available"])
    except StoreError as e:
        raise store_http_error(e)


@guarded.delete("/menu/{item_id}")
def delete_menu_item(item_id: int, store: Store = Depends(get_store)):
    try:
        store.delete_menu_item(item_id)
    except StoreError as e:
        raise store_http_error(e)
    _log.info("menu item %s deleted", item_id)
    return {"ok": True}


# --- inventory ---


@guarded.get("/inventory")
def list_inventory(q: Optional[str] = None, store: Store = Depends(get_store)):
    try:
        rows = store.list_ingredients()
    except StoreError as e:
        raise store_http_error(e)
    if q:
        needle = q.lower()
        rows = [r for r in rows if needle in (r["name"] or "").lower() or needle in (r["unit"] or "").lower()]
    return [_stock_flags(r) for r in rows]


@guarded.post("/inventory/{ingredient_id}/restock")
def restock(ingredient_id: int, req: RestockReq, store: Store = Depends(get_store)):
    try:
        ing = store.get_ingredient(ingredient_id)
        store.update_ingredient_stock(ingredient_id, (ing["stock_quantity"] or 0) + req.quantity)
        ing = store.get_ingredient(ingredient_id)
    except StoreError as e:
        raise store_http_error(e)
    _log.info("restocked %s by %s %s", ing["name"], req.quantity, ing["unit"])
    return _stock_flags(ing)


@guarded.post("/inventory/{ingredient_id}/minimum")
def set_minimum(ingredient_id: int, req: MinimumReq, store: Store = Depends(get_store)):
    try:
        store.set_minimum_stock(ingredient_id, req.minimum)
        return _stock_flags(store.get_ingredient(ingredient_id))
    except StoreError as e:
        raise store_http_error(e)


@guarded.post("/inventory/restock-low")
def bulk_restock(req: RestockReq, store: Store = Depends(get_store)):
    restocked: List[int] = []
    try:
        for ing in store.list_ingredients():
            if (ing["stock_quantity"] or 0) <= (ing["minimum_stock"] or 0):
                store.update_ingredient_stock(ing["id"], (ing["stock_quantity"] or 0) + req.quantity)
                restocked.append(ing["id"])
    except StoreError as e:
        raise store_http_error(e)
    _log.info("bulk restock of %d ingredient(s)", len(restocked))
    return {"restocked": restocked}


# --- dashboard ---


@guarded.get("/dashboard")
def dashboard(time_range: str = Query("today", alias="range"), store: Store = Depends(get_store)):
    if time_range not in TIME_RANGES:
        raise HTTPException(status_code=400, detail=f"range must be one of {', '.join(TIME_RANGES)}")
    try:
        orders = store.list_orders()
    except StoreError as e:
        raise store_http_error(e)
    return {
        "stats": dashboard_stats(orders, time_range),
        "top_items": top_items(orders),
        "revenue": revenue_series(orders),
        "recent_orders": [{k: v for k, v in o.items() if k != "order_details"} for o in orders[:10]],
    }


router.include_router(guarded)
