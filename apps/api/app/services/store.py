import threading
from collections import defaultdict
from decimal import Decimal

from app.models.domain import OrderEventRecord, OrderSnapshot, StoreRef, build_ready_order
from app.models.order import OrderStatus
from app.services.errors import ConflictError, NotFoundError
from app.services.order_store import OrderStore


class InMemoryOrderStore:
    """Process-local order store used for demos and tests.

    One lock serializes every access, which makes ``conditional_write`` an
    atomic compare-and-swap on the stored version.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.orders: dict[str, OrderSnapshot] = {}
        self.events: dict[str, list[OrderEventRecord]] = defaultdict(list)

    def read(self, order_id: str) -> OrderSnapshot:
        with self._lock:
            order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError(order_id=order_id)
        return order

    def conditional_write(self, order: OrderSnapshot, expected_version: int) -> bool:
        with self._lock:
            current = self.orders.get(order.id)
            if current is None:
                raise NotFoundError(order_id=order.id)
            if current.version != expected_version:
                return False
            if order.is_active and self._active_for(order.driver_id, exclude=order.id):
                return False
            self.orders[order.id] = order
            self.events[order.id].append(OrderEventRecord.for_snapshot(order))
            return True

    def list_by_status(self, status: OrderStatus) -> list[OrderSnapshot]:
        with self._lock:
            matching = [order for order in self.orders.values() if order.status == status]
        return sorted(matching, key=lambda order: (order.created_at, order.id))

    def find_active(self, driver_id: str) -> OrderSnapshot | None:
        with self._lock:
            active = self._active_for(driver_id)
        return active[0] if active else None

    def add(self, order: OrderSnapshot) -> OrderSnapshot:
        with self._lock:
            if order.id in self.orders:
                raise ConflictError("Order already exists", order_id=order.id)
            self.orders[order.id] = order
            self.events[order.id].append(OrderEventRecord.for_snapshot(order))
        return order

    def list_events(self, order_id: str) -> list[OrderEventRecord]:
        with self._lock:
            if order_id not in self.orders:
                raise NotFoundError(order_id=order_id)
            return list(self.events[order_id])

    def clear(self) -> None:
        with self._lock:
            self.orders.clear()
            self.events.clear()

    def _active_for(self, driver_id: str | None, exclude: str | None = None) -> list[OrderSnapshot]:
        return [
            order
            for order in self.orders.values()
            if order.driver_id == driver_id and order.is_active and order.id != exclude
        ]


store = InMemoryOrderStore()

_DEMO_STORE = StoreRef(id="store-1", name="Dar Tajine", address="12 Rue de Fes, Casablanca")

_DEMO_ORDERS: list[dict] = [
    {
        "order_id": "ord-demo-1",
        "total_amount": Decimal("120.00"),
        "delivery_fee": Decimal("15.00"),
        "delivery_address": "45 Boulevard Anfa, Casablanca",
        "customer_name": "Demo Customer",
        "customer_phone": "+212600000001",
    },
    {
        "order_id": "ord-demo-2",
        "total_amount": Decimal("68.50"),
        "delivery_address": "8 Rue Ibn Batouta, Casablanca",
        "customer_name": "Second Customer",
        "customer_phone": "+212600000002",
    },
]


def reset_store() -> None:
    store.clear()


def seed_data(order_store: OrderStore) -> None:
    if order_store.list_by_status(OrderStatus.READY):
        return

    for payload in _DEMO_ORDERS:
        try:
            order_store.add(build_ready_order(store=_DEMO_STORE, **payload))
        except ConflictError:
            # Already seeded and since claimed.
            continue

