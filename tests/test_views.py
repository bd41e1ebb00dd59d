from datetime import datetime, timezone
from decimal import Decimal

import pytest

from apps.pos.app import views
from apps.pos.app.engine import OrderSnapshot, TableState


def _state():
    return TableState(table={"id": 1, "table_number": 1, "capacity": 2, "status": "free"})


def _snapshot():
    return OrderSnapshot(
        order_id=9,
        table_id=1,
        table_number=1,
        status="pending",
        payment_method="cash",
        total=Decimal("120"),
        items=[],
        created_at=datetime.now(timezone.utc),
    )


def test_happy_path_round_trip():
    view = views.TableSelection()
    view = views.open_table(view, _state())
    assert isinstance(view, views.Menu)
    view = views.confirm(view, _snapshot())
    assert isinstance(view, views.OrderConfirmed)
    assert view.snapshot.order_id == 9
    view = views.edit_more(view)
    assert isinstance(view, views.Menu)
    assert view.table_state.table["id"] == 1
    assert isinstance(views.change_table(view), views.TableSelection)


def test_new_order_is_allowed_from_anywhere():
    confirmed = views.OrderConfirmed(table_state=_state(), snapshot=_snapshot())
    for view in (views.TableSelection(), views.Menu(table_state=_state()), confirmed):
        assert isinstance(views.new_order(view), views.TableSelection)


def test_selecting_another_table_from_confirmation_opens_its_menu():
    confirmed = views.OrderConfirmed(table_state=_state(), snapshot=_snapshot())
    other = TableState(table={"id": 2, "table_number": 2})
    view = views.open_table(confirmed, other)
    assert view.table_state.table["id"] == 2


@pytest.mark.parametrize(
    "step, view",
    [
        (lambda v: views.confirm(v, _snapshot()), views.TableSelection()),
        (views.edit_more, views.TableSelection()),
        (views.edit_more, views.Menu(table_state=_state())),
        (views.change_table, views.TableSelection()),
        (views.change_table, views.OrderConfirmed(table_state=_state(), snapshot=_snapshot())),
    ],
)
def test_undefined_transitions_raise(step, view):
    with pytest.raises(views.InvalidTransition):
        step(view)
