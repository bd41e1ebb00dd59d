import logging
from datetime import datetime
from decimal import Decimal
from io import BytesIO
from typing import Any, Dict, List, Optional

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas as pdfcanvas

from .cart import PLACEHOLDER_NAME, to_decimal
from .config import CURRENCY, SHOP_NAME
from .engine import OrderSnapshot

_log = logging.getLogger("cafepos.receipts")

WIDTH = 40
RULE = "=" * WIDTH
THIN_RULE = "-" * WIDTH
NAME_MAX = 22


def build_receipt(snapshot: OrderSnapshot) -> Dict[str, Any]:
    created = snapshot.created_at
    return {
        "order_id": snapshot.order_id,
        "table_number": snapshot.table_number,
        "date": created.strftime("%Y-%m-%d %H:%M") if isinstance(created, datetime) else None,
        "payment_method": snapshot.payment_method,
        "items": [
            {"name": e.name, "quantity": e.quantity, "price": e.price, "subtotal": e.subtotal}
            for e in snapshot.items
        ],
        "total": snapshot.total,
    }


def receipt_filename(order_id: Any, ext: str = "txt") -> str:
    return f"receipt-order-{order_id}.{ext}"


def _item_line(item: Dict[str, Any]) -> str:
    name = str(item.get("name") or PLACEHOLDER_NAME)
    qty = int(item.get("quantity") or 1)
    price = to_decimal(item.get("price"))
    if len(name) > NAME_MAX:
        name = name[:NAME_MAX] + "..."
    return f"{name:<25}{qty:>3}  {price:>6.2f}  {price * qty:>7.2f}"


def _lines(receipt: Dict[str, Any]) -> List[str]:
    items = receipt.get("items")
    if not isinstance(items, list):
        raise ValueError("invalid order data")
    out = [
        RULE,
        SHOP_NAME.center(WIDTH).rstrip(),
        "RECEIPT".center(WIDTH).rstrip(),
        RULE,
        f"Order #: {receipt.get('order_id') or 'N/A'}",
        f"Table: {receipt.get('table_number') or 'N/A'}",
        f"Date: {receipt.get('date') or datetime.now().strftime('%Y-%m-%d %H:%M')}",
    ]
    method: Optional[str] = receipt.get("payment_method")
    if method:
        out.append(f"Payment: {method.replace('_', ' ').upper()}")
    out += [RULE, "Item                       Qty  Price   Total", THIN_RULE]
    out += [_item_line(it) for it in items]
    total: Decimal = to_decimal(receipt.get("total"))
    out += [
        RULE,
        f"TOTAL: {' ' * 25}{CURRENCY} {total:.2f}",
        RULE,
        "Thank you for your visit!".center(WIDTH).rstrip(),
        "Please come again!".center(WIDTH).rstrip(),
        RULE,
    ]
    return out


def render_text(receipt: Dict[str, Any]) -> str:
    return "\n".join(_lines(receipt)) + "\n"


def render_pdf(receipt: Dict[str, Any]) -> bytes:
    """The text receipt laid out in Courier on A4 pages."""
    lines = _lines(receipt)
    buf = BytesIO()
    c = pdfcanvas.Canvas(buf, pagesize=A4)
    width, height = A4
    x_margin = 56
    y_margin = 56
    line_h = 14
    y = height - y_margin
    c.setFont("Courier", 10)
    for ln in lines:
        if y < y_margin:
            c.showPage()
            c.setFont("Courier", 10)
            y = height - y_margin
        c.drawString(x_margin, y, ln)
        y -= line_h
    c.showPage()
    c.save()
    _log.info("receipt pdf rendered", extra={"order_id": receipt.get("order_id")})
    return buf.getvalue()
