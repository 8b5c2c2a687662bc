from dataclasses import dataclass, field

from app.models.domain import OrderSnapshot
from app.models.order import OrderStatus
from app.services.order_store import OrderStore


@dataclass(frozen=True)
class DriverSnapshot:
    active_order: OrderSnapshot | None
    available_pool: list[OrderSnapshot] = field(default_factory=list)


def snapshot(store: OrderStore, driver_id: str) -> DriverSnapshot:
    return DriverSnapshot(
        active_order=store.find_active(driver_id),
        available_pool=[
            order
            for order in store.list_by_status(OrderStatus.READY)
            if order.is_offered_to_drivers
        ],
    )


def _pool_key(order: OrderSnapshot) -> tuple:
    return (order.created_at, order.id)


class DriverSessionView:
    """One driver's partition of the order universe, kept current from change events.

    ``refresh`` re-reads everything from the store; ``apply`` folds in a
    single committed snapshot without touching the store. Snapshots older
    than what the view already holds for that order are ignored.
    """

    def __init__(self, store: OrderStore, driver_id: str) -> None:
        self.driver_id = driver_id
        self._store = store
        self._active: OrderSnapshot | None = None
        self._pool: dict[str, OrderSnapshot] = {}
        self._versions: dict[str, int] = {}
        self.refresh()

    @property
    def current(self) -> DriverSnapshot:
        return DriverSnapshot(
            active_order=self._active,
            available_pool=sorted(self._pool.values(), key=_pool_key),
        )

    def refresh(self) -> DriverSnapshot:
        fresh = snapshot(self._store, self.driver_id)
        self._active = fresh.active_order
        self._pool = {order.id: order for order in fresh.available_pool}
        self._versions = {order.id: order.version for order in fresh.available_pool}
        if fresh.active_order is not None:
            self._versions[fresh.active_order.id] = fresh.active_order.version
        return fresh

    @property
    def tracked_order_count(self) -> int:
        return len(self._versions)

    def apply(self, order: OrderSnapshot) -> bool:
        """Fold one change event into the view. Returns True when the partition changed."""
        known = self._versions.get(order.id)
        if known is not None and order.version <= known:
            return False

        changed = False
        if order.is_offered_to_drivers:
            self._pool[order.id] = order
            changed = True
        elif self._pool.pop(order.id, None) is not None:
            changed = True

        if order.driver_id == self.driver_id and order.is_active:
            self._active = order
            changed = True
        elif self._active is not None and self._active.id == order.id:
            self._active = None
            changed = True

        if order.id in self._pool or (self._active is not None and self._active.id == order.id):
            self._versions[order.id] = order.version
        else:
            # Left this driver's partition; the subscription keeps per-order ordering from here.
            self._versions.pop(order.id, None)
        return changed
