import os
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

os.environ.setdefault("ENV", "test")
os.environ.setdefault("POS_DB_URL", "sqlite+pysqlite:///:memory:")

import apps.pos.app.db as pos_db  # noqa: E402
from apps.pos.app.store import Store  # noqa: E402

# Ids are deterministic on a fresh in-memory database.
ESPRESSO, LATTE, CROISSANT, RETIRED = 1, 2, 3, 4
BEANS, MILK, DOUGH = 1, 2, 3


def _seed(s: Session):
    s.add_all(
        [
            pos_db.Table(table_number=1, capacity=2, status="free"),
            pos_db.Table(table_number=2, capacity=4, status="free"),
            pos_db.Table(table_number=3, capacity=6, status="free"),
        ]
    )
    s.add_all(
        [
            pos_db.MenuItem(name="Espresso", price=Decimal("120"), category="coffee", available=True),
            pos_db.MenuItem(name="Cafe Latte", price=Decimal("180"), category="coffee", available=True),
            pos_db.MenuItem(name="Butter Croissant", price=Decimal("150"), category="bakery", available=True),
            pos_db.MenuItem(name="Seasonal Special", price=Decimal("200"), category="coffee", available=False),
        ]
    )
    s.add_all(
        [
            pos_db.Ingredient(name="Coffee beans", unit="g", stock_quantity=100.0, minimum_stock=20.0),
            pos_db.Ingredient(name="Milk", unit="ml", stock_quantity=1000.0, minimum_stock=200.0),
            pos_db.Ingredient(name="Croissant dough", unit="pcs", stock_quantity=1.0, minimum_stock=5.0),
        ]
    )
    s.flush()
    s.add_all(
        [
            pos_db.ItemIngredient(menu_item_id=ESPRESSO, ingredient_id=BEANS, quantity_needed=18.0),
            pos_db.ItemIngredient(menu_item_id=LATTE, ingredient_id=BEANS, quantity_needed=18.0),
            pos_db.ItemIngredient(menu_item_id=LATTE, ingredient_id=MILK, quantity_needed=200.0),
            pos_db.ItemIngredient(menu_item_id=CROISSANT, ingredient_id=DOUGH, quantity_needed=1.0),
        ]
    )
    s.commit()


@pytest.fixture()
def pos_engine():
    """
    Isolated in-memory SQLite engine with the POS models and a small menu.
    StaticPool keeps one connection so every session sees the same data.
    """

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    pos_db.Base.metadata.create_all(engine)
    with Session(engine) as s:
        _seed(s)
    return engine


@pytest.fixture()
def session(pos_engine):
    with Session(pos_engine) as s:
        yield s


@pytest.fixture()
def store(session) -> Store:
    return Store(session)


@pytest.fixture()
def client(pos_engine):
    """
    TestClient with get_session pointed at the isolated engine. Terminal
    views and admin tokens are process state, so they are reset per test.
    """
    from apps.pos.app import admin
    from apps.pos.app import main

    def _session():
        with Session(pos_engine) as s:
            yield s

    main.app.dependency_overrides[pos_db.get_session] = _session
    main._terminals.clear()
    admin._tokens.clear()
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.clear()


@pytest.fixture()
def admin_headers(client):
    r = client.post("/admin/login", json={"email": "admin@coffeeshop.com", "password": "admin123"})
    assert r.status_code == 200
    return {"X-Admin-Token": r.json()["token"]}
