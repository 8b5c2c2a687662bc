from typing import Callable, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.domain import OrderEventRecord, OrderSnapshot, StoreRef
from app.models.order import ACTIVE_ORDER_STATUSES, Order, OrderStatus
from app.models.order_event import OrderEvent
from app.models.store import Store
from app.services.errors import ConflictError, NotFoundError, StoreUnavailableError


class OrderStore(Protocol):
    """Durable keyed order records with a compare-and-swap write."""

    def read(self, order_id: str) -> OrderSnapshot: ...

    def conditional_write(self, order: OrderSnapshot, expected_version: int) -> bool: ...

    def list_by_status(self, status: OrderStatus) -> list[OrderSnapshot]: ...

    def find_active(self, driver_id: str) -> OrderSnapshot | None: ...

    def add(self, order: OrderSnapshot) -> OrderSnapshot: ...

    def list_events(self, order_id: str) -> list[OrderEventRecord]: ...


def _to_snapshot(row: Order) -> OrderSnapshot:
    store = None
    if row.store is not None:
        store = StoreRef(id=row.store.id, name=row.store.name, address=row.store.address)
    return OrderSnapshot(
        id=row.id,
        status=row.status,
        driver_id=row.driver_id,
        payment_status=row.payment_status,
        order_type=row.order_type,
        version=row.version,
        total_amount=row.total_amount,
        delivery_fee=row.delivery_fee,
        delivery_address=row.delivery_address,
        customer_name=row.customer_name,
        customer_phone=row.customer_phone,
        store=store,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _event_row(order: OrderSnapshot) -> OrderEvent:
    return OrderEvent(
        order_id=order.id,
        status=order.status,
        payment_status=order.payment_status,
        driver_id=order.driver_id,
        version=order.version,
        created_at=order.updated_at,
    )


class SqlOrderStore:
    """Order store backed by SQLAlchemy.

    Every call runs in its own short session. ``conditional_write`` issues
    ``UPDATE ... WHERE id = :id AND version = :expected`` and treats a row
    count other than one as a lost race; the partial unique index on active
    driver orders turns a concurrent second claim by the same driver into a
    lost race as well.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def read(self, order_id: str) -> OrderSnapshot:
        try:
            with self._session_factory() as db:
                row = db.get(Order, order_id)
                if row is None:
                    raise NotFoundError(order_id=order_id)
                return _to_snapshot(row)
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(order_id=order_id) from exc

    def conditional_write(self, order: OrderSnapshot, expected_version: int) -> bool:
        try:
            with self._session_factory() as db:
                result = db.execute(
                    update(Order)
                    .where(Order.id == order.id, Order.version == expected_version)
                    .values(
                        status=order.status,
                        driver_id=order.driver_id,
                        payment_status=order.payment_status,
                        version=order.version,
                        updated_at=order.updated_at,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    db.rollback()
                    return False
                db.add(_event_row(order))
                db.commit()
                return True
        except IntegrityError:
            return False
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(order_id=order.id, outcome_unknown=True) from exc

    def list_by_status(self, status: OrderStatus) -> list[OrderSnapshot]:
        try:
            with self._session_factory() as db:
                rows = db.scalars(
                    select(Order)
                    .where(Order.status == status)
                    .order_by(Order.created_at.asc(), Order.id.asc())
                )
                return [_to_snapshot(row) for row in rows]
        except SQLAlchemyError as exc:
            raise StoreUnavailableError() from exc

    def find_active(self, driver_id: str) -> OrderSnapshot | None:
        try:
            with self._session_factory() as db:
                row = db.scalar(
                    select(Order).where(
                        Order.driver_id == driver_id,
                        Order.status.in_(ACTIVE_ORDER_STATUSES),
                    )
                )
                return _to_snapshot(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StoreUnavailableError() from exc

    def add(self, order: OrderSnapshot) -> OrderSnapshot:
        try:
            with self._session_factory() as db:
                if order.store is not None:
                    db.merge(
                        Store(
                            id=order.store.id,
                            name=order.store.name,
                            address=order.store.address,
                        )
                    )
                db.add(
                    Order(
                        id=order.id,
                        store_id=order.store.id if order.store else None,
                        status=order.status,
                        driver_id=order.driver_id,
                        payment_status=order.payment_status,
                        order_type=order.order_type,
                        version=order.version,
                        total_amount=order.total_amount,
                        delivery_fee=order.delivery_fee,
                        delivery_address=order.delivery_address,
                        customer_name=order.customer_name,
                        customer_phone=order.customer_phone,
                        created_at=order.created_at,
                        updated_at=order.updated_at,
                    )
                )
                db.flush()
                db.add(_event_row(order))
                db.commit()
        except IntegrityError as exc:
            raise ConflictError("Order already exists", order_id=order.id) from exc
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(order_id=order.id, outcome_unknown=True) from exc
        return order

    def list_events(self, order_id: str) -> list[OrderEventRecord]:
        try:
            with self._session_factory() as db:
                if db.get(Order, order_id) is None:
                    raise NotFoundError(order_id=order_id)
                rows = db.scalars(
                    select(OrderEvent)
                    .where(OrderEvent.order_id == order_id)
                    .order_by(OrderEvent.version.asc())
                )
                return [
                    OrderEventRecord(
                        order_id=row.order_id,
                        status=row.status,
                        payment_status=row.payment_status,
                        driver_id=row.driver_id,
                        version=row.version,
                        created_at=row.created_at,
                    )
                    for row in rows
                ]
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(order_id=order_id) from exc
