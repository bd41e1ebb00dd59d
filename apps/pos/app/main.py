import logging
import threading
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException
from fastapi.responses import PlainTextResponse, Response
from pydantic import BaseModel, ConfigDict

from cafepos_shared import RequestIDMiddleware, add_standard_health, configure_cors, setup_json_logging

from . import views
from .admin import router as admin_router
from .cart import CART_OPERATIONS
from .config import ALLOWED_ORIGINS
from .db import on_startup, ping
from .deps import get_store, store_http_error
from .engine import (
    MSG_ALREADY_PROCESSING,
    OrderSnapshot,
    build_snapshot,
    choose_payment_method,
    mutate_cart,
    select_table,
    submit_order,
)
from .receipts import build_receipt, receipt_filename, render_pdf, render_text
from .reports import popular_items
from .store import NotFound, Store, StoreError

_log = logging.getLogger("cafepos.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    on_startup()
    yield


app = FastAPI(title="Cafe POS API", version="0.1.0", lifespan=lifespan)
setup_json_logging()
app.add_middleware(RequestIDMiddleware)
configure_cors(app, ALLOWED_ORIGINS)
add_standard_health(app, check=ping)
router = APIRouter()


class LineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    menu_item_id: int
    name: str
    price: Decimal
    quantity: int
    subtotal: Decimal
    order_detail_id: Optional[int] = None


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    order_id: int
    table_id: int
    table_number: Optional[int] = None
    status: str
    payment_method: Optional[str] = None
    total: Decimal
    items: List[LineOut]
    created_at: Optional[datetime] = None
    updated: bool = False


class TerminalOut(BaseModel):
    view: str
    table: Optional[dict] = None
    cart: List[LineOut] = []
    total: Decimal = Decimal("0")
    active_order_id: Optional[int] = None
    payment_method: Optional[str] = None
    order: Optional[OrderOut] = None


class SelectTableReq(BaseModel):
    table_id: int


class CartOpReq(BaseModel):
    op: str
    menu_item_id: int
    delta: int = 0


class PaymentMethodReq(BaseModel):
    method: str


class SubmitReq(BaseModel):
    keep_cart: bool = False


# Terminal id -> current view. One entry per device/tab talking to this process.
_terminals: Dict[str, views.View] = {}
_terminals_lock = threading.Lock()


def _terminal_id(x_terminal_id: Optional[str] = Header(default=None, alias="X-Terminal-ID")) -> str:
    return (x_terminal_id or "default").strip()[:64] or "default"


def _get_view(tid: str) -> views.View:
    with _terminals_lock:
        return _terminals.setdefault(tid, views.TableSelection())


def _set_view(tid: str, view: views.View) -> views.View:
    with _terminals_lock:
        _terminals[tid] = view
    return view


def _menu_view(tid: str) -> views.Menu:
    view = _get_view(tid)
    if not isinstance(view, views.Menu):
        raise HTTPException(status_code=409, detail=f"no table open (current view: {view.name})")
    return view


def _snapshot_out(snap: OrderSnapshot) -> OrderOut:
    return OrderOut.model_validate(snap)


def _terminal_out(view: views.View) -> TerminalOut:
    out = TerminalOut(view=view.name)
    state = getattr(view, "table_state", None)
    if state is not None:
        out.table = state.table
        out.cart = [LineOut.model_validate(e) for e in state.cart]
        out.total = state.total
        out.active_order_id = state.active_order["id"] if state.active_order else None
        out.payment_method = state.payment_method
    if isinstance(view, views.OrderConfirmed):
        out.order = _snapshot_out(view.snapshot)
    return out


@router.get("/tables")
def list_tables(store: Store = Depends(get_store)):
    try:
        return store.list_tables()
    except StoreError as e:
        raise store_http_error(e)


@router.get("/menu")
def list_menu(store: Store = Depends(get_store)):
    try:
        return store.list_menu_items(available_only=True)
    except StoreError as e:
        raise store_http_error(e)


@router.get("/menu/popular")
def popular(store: Store = Depends(get_store)):
    try:
        orders = store.list_orders(status="completed")
    except StoreError as e:
        raise store_http_error(e)
    return popular_items(orders)


@router.get("/terminal", response_model=TerminalOut)
def terminal(tid: str = Depends(_terminal_id)):
    return _terminal_out(_get_view(tid))


@router.post("/terminal/table", response_model=TerminalOut)
def terminal_select_table(req: SelectTableReq, tid: str = Depends(_terminal_id), store: Store = Depends(get_store)):
    try:
        table = store.get_table(req.table_id)
    except StoreError as e:
        raise store_http_error(e)
    state = select_table(store, table)
    view = _set_view(tid, views.open_table(_get_view(tid), state))
    _log.info("table opened", extra={"terminal_id": tid, "table_id": state.table_id})
    return _terminal_out(view)


@router.post("/terminal/cart", response_model=TerminalOut)
def terminal_cart(req: CartOpReq, tid: str = Depends(_terminal_id), store: Store = Depends(get_store)):
    if req.op not in CART_OPERATIONS:
        raise HTTPException(status_code=400, detail=f"op must be one of {', '.join(CART_OPERATIONS)}")
    view = _menu_view(tid)
    menu_item = None
    if req.op == "add":
        try:
            menu_item = store.get_menu_item(req.menu_item_id)
        except StoreError as e:
            raise store_http_error(e)
        if not menu_item["available"]:
            raise HTTPException(status_code=400, detail="menu item is not available")
    try:
        mutate_cart(view.table_state, req.op, req.menu_item_id, delta=req.delta, menu_item=menu_item)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _terminal_out(view)


@router.post("/terminal/payment-method", response_model=TerminalOut)
def terminal_payment_method(req: PaymentMethodReq, tid: str = Depends(_terminal_id)):
    view = _menu_view(tid)
    try:
        choose_payment_method(view.table_state, req.method)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _terminal_out(view)


@router.post("/terminal/submit", response_model=OrderOut)
def terminal_submit(req: SubmitReq = SubmitReq(), tid: str = Depends(_terminal_id), store: Store = Depends(get_store)):
    view = _menu_view(tid)
    outcome = submit_order(store, view.table_state, keep_cart=req.keep_cart)
    if outcome.rejection:
        code = 409 if outcome.rejection == MSG_ALREADY_PROCESSING else 400
        raise HTTPException(status_code=code, detail=outcome.rejection)
    if outcome.error:
        raise HTTPException(status_code=502, detail=outcome.error)
    _set_view(tid, views.confirm(view, outcome.snapshot))
    return _snapshot_out(outcome.snapshot)


def _transition(tid: str, step) -> TerminalOut:
    try:
        view = step(_get_view(tid))
    except views.InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _terminal_out(_set_view(tid, view))


@router.post("/terminal/edit-more", response_model=TerminalOut)
def terminal_edit_more(tid: str = Depends(_terminal_id)):
    return _transition(tid, views.edit_more)


@router.post("/terminal/new-order", response_model=TerminalOut)
def terminal_new_order(tid: str = Depends(_terminal_id)):
    return _transition(tid, views.new_order)


@router.post("/terminal/change-table", response_model=TerminalOut)
def terminal_change_table(tid: str = Depends(_terminal_id)):
    return _transition(tid, views.change_table)


def _order_snapshot(store: Store, order_id: int) -> OrderSnapshot:
    try:
        order = store.fetch_order(order_id)
        try:
            table = store.get_table(order["table_id"])
        except NotFound:
            table = None
    except StoreError as e:
        raise store_http_error(e)
    return build_snapshot(order, table)


@router.get("/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: int, store: Store = Depends(get_store)):
    return _snapshot_out(_order_snapshot(store, order_id))


@router.get("/orders/{order_id}/receipt.txt")
def receipt_txt(order_id: int, store: Store = Depends(get_store)):
    receipt = build_receipt(_order_snapshot(store, order_id))
    headers = {"Content-Disposition": f'attachment; filename="{receipt_filename(order_id)}"'}
    return PlainTextResponse(render_text(receipt), headers=headers)


@router.get("/orders/{order_id}/receipt.pdf")
def receipt_pdf(order_id: int, store: Store = Depends(get_store)):
    receipt = build_receipt(_order_snapshot(store, order_id))
    headers = {"Content-Disposition": f'attachment; filename="{receipt_filename(order_id, "pdf")}"'}
    return Response(render_pdf(receipt), media_type="application/pdf", headers=headers)


app.include_router(router)
app.include_router(admin_router)
