import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    create_engine,
    func,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship

from .config import DB_SCHEMA, DB_URL, ENV

_log = logging.getLogger("cafepos.db")


def _fk(target: str) -> str:
    return f"{DB_SCHEMA}.{target}" if DB_SCHEMA else target


class Base(DeclarativeBase):
    pass


class Table(Base):
    __tablename__ = "tables"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_number: Mapped[int] = mapped_column(Integer)
    capacity: Mapped[int] = mapped_column(Integer, default=2)
    status: Mapped[str] = mapped_column(String(16), default="free")  # free/occupied


class MenuItem(Base):
    __tablename__ = "menu_items"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(String(400), default=None)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    category: Mapped[Optional[str]] = mapped_column(String(80), default=None)
    available: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_id: Mapped[int] = mapped_column(Integer, ForeignKey(_fk("tables.id")))
    status: Mapped[str] = mapped_column(String(16), default="pending")  # pending/completed/cancelled
    payment_status: Mapped[str] = mapped_column(String(16), default="pending")  # pending/paid
    payment_method: Mapped[Optional[str]] = mapped_column(String(32), default=None)  # cash/card/mobile_banking
    total_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)
    order_details: Mapped[List["OrderDetail"]] = relationship(
        back_populates="order", order_by="OrderDetail.id"
    )


class OrderDetail(Base):
    __tablename__ = "order_details"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey(_fk("orders.id")))
    menu_item_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey(_fk("menu_items.id"), ondelete="SET NULL"), nullable=True
    )
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    # Unit price captured when the line was written; never re-read from menu_items.
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), default=None)
    subtotal: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), default=None)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)
    order: Mapped[Order] = relationship(back_populates="order_details")
    menu_item: Mapped[Optional[MenuItem]] = relationship()


class Ingredient(Base):
    __tablename__ = "ingredients"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200))
    unit: Mapped[str] = mapped_column(String(32), default="unit")
    stock_quantity: Mapped[float] = mapped_column(Float, default=0.0)
    minimum_stock: Mapped[float] = mapped_column(Float, default=0.0)


class ItemIngredient(Base):
    __tablename__ = "item_ingredients"
    __table_args__ = ({"schema": DB_SCHEMA} if DB_SCHEMA else {})
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    menu_item_id: Mapped[int] = mapped_column(Integer, ForeignKey(_fk("menu_items.id"), ondelete="CASCADE"))
    ingredient_id: Mapped[int] = mapped_column(Integer, ForeignKey(_fk("ingredients.id")))
    quantity_needed: Mapped[float] = mapped_column(Float, default=0.0)  # per unit of the menu item
    ingredient: Mapped[Ingredient] = relationship()


engine = create_engine(DB_URL, future=True)


def get_session():
    with Session(engine) as s:
        yield s


def ping():
    with engine.connect() as conn:
        conn.exec_driver_sql("SELECT 1")


def _ensure_demo_data():
    """
    Best-effort seeding of a small coffee-shop floor, menu and pantry in
    local dev. Only runs on SQLite in ENV=dev/test and only while the tables
    table is still empty, so it won't interfere with manual data.
    """
    if ENV not in ("dev", "test"):
        return
    if not DB_URL.startswith("sqlite"):
        return
    try:
        with Session(engine) as s:
            existing = s.scalar(select(func.count(Table.id)))
            if existing and int(existing) > 0:
                return

            for n, seats in enumerate([2, 2, 4, 4, 6, 8], start=1):
                s.add(Table(table_number=n, capacity=seats, status="free"))

            def add_item(name: str, price: str, category: str, description: str) -> MenuItem:
                mi = MenuItem(name=name, price=Decimal(price), category=category, description=description, available=True)
                s.add(mi)
                return mi

            espresso = add_item("Espresso", "120", "coffee", "Double shot, house blend")
            latte = add_item("Cafe Latte", "180", "coffee", "Espresso with steamed milk")
            cappuccino = add_item("Cappuccino", "170", "coffee", "Espresso, milk and foam")
            add_item("Masala Tea", "80", "tea", "Spiced milk tea")
            croissant = add_item("Butter Croissant", "150", "bakery", "Baked every morning")
            add_item("Chocolate Brownie", "140", "bakery", "Dark chocolate, walnuts")

            beans = Ingredient(name="Coffee beans", unit="g", stock_quantity=5000.0, minimum_stock=1000.0)
            milk = Ingredient(name="Milk", unit="ml", stock_quantity=10000.0, minimum_stock=2000.0)
            dough = Ingredient(name="Croissant dough", unit="pcs", stock_quantity=40.0, minimum_stock=10.0)
            s.add_all([beans, milk, dough])
            s.flush()

            s.add_all(
                [
                    ItemIngredient(menu_item_id=espresso.id, ingredient_id=beans.id, quantity_needed=18.0),
                    ItemIngredient(menu_item_id=latte.id, ingredient_id=beans.id, quantity_needed=18.0),
                    ItemIngredient(menu_item_id=latte.id, ingredient_id=milk.id, quantity_needed=200.0),
                    ItemIngredient(menu_item_id=cappuccino.id, ingredient_id=beans.id, quantity_needed=18.0),
                    ItemIngredient(menu_item_id=cappuccino.id, ingredient_id=milk.id, quantity_needed=120.0),
                    ItemIngredient(menu_item_id=croissant.id, ingredient_id=dough.id, quantity_needed=1.0),
                ]
            )
            s.commit()
    except Exception:
        # Seeding must never break startup.
        _log.exception("demo seeding failed")


def on_startup():
    Base.metadata.create_all(engine)
    _ensure_demo_data()
