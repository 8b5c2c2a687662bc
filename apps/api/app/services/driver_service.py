"""Operations a driver client performs against the lifecycle engine.

Every function takes the acting ``driver_id`` explicitly; identity comes
from the verified token at the HTTP edge, never from module state.
"""

from app.models.domain import OrderEventRecord, OrderSnapshot
from app.models.order import OrderStatus
from app.services.change_notifier import ChangeNotifier, Subscription
from app.services.claim_coordinator import ClaimCoordinator
from app.services.errors import UnauthorizedError
from app.services.order_store import OrderStore
from app.services.session_view import DriverSnapshot, snapshot


def list_available(store: OrderStore) -> list[OrderSnapshot]:
    return [
        order for order in store.list_by_status(OrderStatus.READY) if order.is_offered_to_drivers
    ]


def get_active(store: OrderStore, driver_id: str) -> OrderSnapshot | None:
    return store.find_active(driver_id)


def session_snapshot(store: OrderStore, driver_id: str) -> DriverSnapshot:
    return snapshot(store, driver_id)


def claim(coordinator: ClaimCoordinator, order_id: str, driver_id: str) -> OrderSnapshot:
    return coordinator.attempt_claim(order_id, driver_id)


def advance(
    coordinator: ClaimCoordinator,
    order_id: str,
    driver_id: str,
    target_status: OrderStatus,
) -> OrderSnapshot:
    return coordinator.attempt_transition(order_id, target_status, driver_id)


def subscribe_changes(notifier: ChangeNotifier, driver_id: str) -> Subscription:
    # Drivers watch every order: a claim by someone else must drop out of their pool.
    return notifier.subscribe()


def list_order_events(store: OrderStore, order_id: str, driver_id: str) -> list[OrderEventRecord]:
    order = store.read(order_id)
    if order.driver_id != driver_id:
        raise UnauthorizedError("Order timeline is only visible to its driver", order_id)
    return store.list_events(order_id)
