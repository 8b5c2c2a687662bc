import logging

from app.models.domain import OrderSnapshot, now_utc
from app.models.order import OrderStatus
from app.observability import log_event, metrics_store, observe_timing
from app.services.change_notifier import ChangeNotifier
from app.services.errors import ConflictError, InvalidTransitionError, TransitionError
from app.services.order_store import OrderStore
from app.services.state_machine import transition


class ClaimCoordinator:
    """Read, validate and conditionally write a single order transition.

    The store's conditional write is the only serialization point: two
    drivers may both pass validation against the same version, but only
    one write can match it. The loser gets ``ConflictError`` and nothing is
    retried here; re-fetching and retrying is the caller's decision.
    """

    def __init__(self, store: OrderStore, notifier: ChangeNotifier) -> None:
        self._store = store
        self._notifier = notifier

    def attempt_claim(self, order_id: str, driver_id: str) -> OrderSnapshot:
        return self.attempt_transition(order_id, OrderStatus.ASSIGNED, driver_id)

    def attempt_transition(
        self,
        order_id: str,
        requested_status: OrderStatus,
        driver_id: str,
    ) -> OrderSnapshot:
        with observe_timing("order_transition_duration_seconds"):
            current = self._store.read(order_id)

            try:
                if requested_status == OrderStatus.ASSIGNED:
                    self._ensure_driver_is_free(order_id, driver_id)
                updated = transition(current, requested_status, driver_id)
            except TransitionError as err:
                metrics_store.increment("order_transitions_rejected_total")
                log_event(
                    f"order_transition_rejected:{err.code}",
                    order_id=order_id,
                    driver_id=driver_id,
                    version=current.version,
                )
                raise

            updated = updated.model_copy(update={"updated_at": now_utc()})
            if not self._store.conditional_write(updated, expected_version=current.version):
                metrics_store.increment("order_claim_conflicts_total")
                log_event(
                    "order_transition_conflict",
                    order_id=order_id,
                    driver_id=driver_id,
                    version=current.version,
                    level=logging.WARNING,
                )
                message = (
                    "Order already taken"
                    if requested_status == OrderStatus.ASSIGNED
                    else "Order was modified concurrently"
                )
                raise ConflictError(message, order_id=order_id)

        metrics_store.increment("order_transitions_committed_total")
        log_event(
            f"order_transition_committed:{updated.status.value}",
            order_id=order_id,
            driver_id=driver_id,
            version=updated.version,
        )
        self._notifier.publish(updated)
        return updated

    def _ensure_driver_is_free(self, order_id: str, driver_id: str) -> None:
        active = self._store.find_active(driver_id)
        if active is not None and active.id != order_id:
            raise InvalidTransitionError("Driver already has an active order", order_id)
