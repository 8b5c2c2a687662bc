from decimal import Decimal

import pytest

from app.db.session import SessionLocal
from app.models.domain import StoreRef, build_ready_order
from app.models.order import OrderStatus
from app.services.errors import ConflictError, NotFoundError
from app.services.order_store import SqlOrderStore
from app.services.state_machine import transition


@pytest.fixture
def sql_store():
    return SqlOrderStore(SessionLocal)


def _add(sql_store, order_id: str):
    return sql_store.add(
        build_ready_order(
            order_id=order_id,
            total_amount="19.999",
            store=StoreRef(id="store-1", name="Corner Bakery"),
        )
    )


def test_add_and_read_round_trip_keeps_store_join(sql_store):
    _add(sql_store, "ord-1")

    order = sql_store.read("ord-1")

    assert order.status == OrderStatus.READY
    assert order.version == 1
    assert order.total_amount == Decimal("20.00")
    assert order.store is not None
    assert order.store.name == "Corner Bakery"


def test_duplicate_add_is_conflict(sql_store):
    _add(sql_store, "ord-1")

    with pytest.raises(ConflictError):
        _add(sql_store, "ord-1")


def test_read_missing_order_is_not_found(sql_store):
    with pytest.raises(NotFoundError):
        sql_store.read("ord-missing")


def test_conditional_write_checks_expected_version(sql_store):
    order = _add(sql_store, "ord-1")
    claimed = transition(order, OrderStatus.ASSIGNED, "driver-a")

    assert sql_store.conditional_write(claimed, expected_version=2) is False
    assert sql_store.conditional_write(claimed, expected_version=1) is True
    assert sql_store.conditional_write(claimed, expected_version=1) is False
    assert sql_store.read("ord-1").driver_id == "driver-a"


def test_database_rejects_second_active_order_for_driver(sql_store):
    first = _add(sql_store, "ord-1")
    second = _add(sql_store, "ord-2")
    assert sql_store.conditional_write(
        transition(first, OrderStatus.ASSIGNED, "driver-a"), expected_version=1
    )

    accepted = sql_store.conditional_write(
        transition(second, OrderStatus.ASSIGNED, "driver-a"), expected_version=1
    )

    assert accepted is False
    assert sql_store.read("ord-2").status == OrderStatus.READY


def test_events_record_each_committed_version(sql_store):
    order = _add(sql_store, "ord-1")
    claimed = transition(order, OrderStatus.ASSIGNED, "driver-a")
    sql_store.conditional_write(claimed, expected_version=1)

    events = sql_store.list_events("ord-1")

    assert [(event.version, event.status) for event in events] == [
        (1, OrderStatus.READY),
        (2, OrderStatus.ASSIGNED),
    ]


def test_find_active_and_list_by_status(sql_store):
    first = _add(sql_store, "ord-1")
    _add(sql_store, "ord-2")
    sql_store.conditional_write(
        transition(first, OrderStatus.ASSIGNED, "driver-a"), expected_version=1
    )

    assert sql_store.find_active("driver-a").id == "ord-1"
    assert sql_store.find_active("driver-b") is None
    assert [o.id for o in sql_store.list_by_status(OrderStatus.READY)] == ["ord-2"]


def test_reads_return_utc_aware_timestamps(sql_store):
    added = _add(sql_store, "ord-1")

    order = sql_store.read("ord-1")
    events = sql_store.list_events("ord-1")

    assert order.created_at == added.created_at
    assert order.created_at.tzinfo is not None
    assert order.updated_at.utcoffset().total_seconds() == 0
    assert events[0].created_at.tzinfo is not None
