from typing import Any

from app.models.domain import OrderSnapshot
from app.models.order import OrderStatus, OrderType, PaymentStatus
from app.services.errors import InvalidTransitionError, UnauthorizedError

# Each target status has exactly one legal source; nothing skips ahead or goes back.
ORDER_STATE_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.READY: {OrderStatus.ASSIGNED},
    OrderStatus.ASSIGNED: {OrderStatus.PICKED_UP},
    OrderStatus.PICKED_UP: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
}

_SOURCE_STATUS: dict[OrderStatus, OrderStatus] = {
    target: source
    for source, targets in ORDER_STATE_TRANSITIONS.items()
    for target in targets
}


def is_terminal(status: OrderStatus) -> bool:
    return not ORDER_STATE_TRANSITIONS[status]


def transition(
    order: OrderSnapshot,
    requested_status: OrderStatus,
    acting_driver_id: str,
) -> OrderSnapshot:
    """Return the snapshot that results from applying ``requested_status``.

    Pure: the input snapshot is never modified and nothing is read or
    written. Raises ``UnauthorizedError`` when a driver acts on an order
    owned by someone else and ``InvalidTransitionError`` for every other
    illegal request.
    """
    if not acting_driver_id:
        raise InvalidTransitionError("A driver is required to change an order", order.id)

    if requested_status == OrderStatus.ASSIGNED:
        return _claim(order, acting_driver_id)

    source = _SOURCE_STATUS.get(requested_status)
    if source is None:
        raise InvalidTransitionError(
            f"Invalid state transition: {order.status.value} -> {requested_status.value}",
            order.id,
        )
    if order.status == OrderStatus.READY:
        raise InvalidTransitionError("Order must be claimed first", order.id)
    if order.driver_id != acting_driver_id:
        raise UnauthorizedError(order_id=order.id)
    if order.status != source:
        raise InvalidTransitionError(
            f"Invalid state transition: {order.status.value} -> {requested_status.value}",
            order.id,
        )

    changes: dict[str, Any] = {"status": requested_status}
    if requested_status == OrderStatus.DELIVERED:
        changes["payment_status"] = PaymentStatus.COLLECTED
    return _next_version(order, changes)


def _claim(order: OrderSnapshot, driver_id: str) -> OrderSnapshot:
    if order.order_type != OrderType.DELIVERY:
        raise InvalidTransitionError("Only delivery orders are dispatched to drivers", order.id)
    if order.status != OrderStatus.READY or order.driver_id is not None:
        raise InvalidTransitionError(
            f"Order cannot be claimed from status {order.status.value}", order.id
        )
    return _next_version(order, {"status": OrderStatus.ASSIGNED, "driver_id": driver_id})


def _next_version(order: OrderSnapshot, changes: dict[str, Any]) -> OrderSnapshot:
    # model_copy skips validation; rebuilding re-checks the snapshot invariants.
    return OrderSnapshot.model_validate(
        {**order.model_dump(), **changes, "version": order.version + 1}
    )
