from dataclasses import dataclass


@dataclass(eq=False)
class LifecycleError(Exception):
    code: str
    message: str
    order_id: str | None = None
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.code}:{self.message}"


class TransitionError(LifecycleError):
    """Rejected by the lifecycle state machine; the order is left untouched."""


class InvalidTransitionError(TransitionError):
    def __init__(self, message: str, order_id: str | None = None) -> None:
        super().__init__(code="INVALID_TRANSITION", message=message, order_id=order_id)


class UnauthorizedError(TransitionError):
    def __init__(
        self, message: str = "Order is owned by another driver", order_id: str | None = None
    ) -> None:
        super().__init__(code="UNAUTHORIZED", message=message, order_id=order_id)


class ConflictError(LifecycleError):
    def __init__(
        self, message: str = "Order was modified concurrently", order_id: str | None = None
    ) -> None:
        super().__init__(code="CONFLICT", message=message, order_id=order_id, retryable=True)


class NotFoundError(LifecycleError):
    def __init__(self, message: str = "Order not found", order_id: str | None = None) -> None:
        super().__init__(code="NOT_FOUND", message=message, order_id=order_id)


class StoreUnavailableError(LifecycleError):
    """The order store could not be reached.

    A failed read is safe to retry. When ``outcome_unknown`` is set the
    failure hit a write that may or may not have committed; the caller must
    re-read the order before deciding anything, so the error is not
    retryable as-is.
    """

    def __init__(
        self,
        message: str | None = None,
        order_id: str | None = None,
        outcome_unknown: bool = False,
    ) -> None:
        if message is None:
            message = (
                "Order store unavailable; re-read the order before retrying"
                if outcome_unknown
                else "Order store unavailable"
            )
        super().__init__(
            code="STORE_UNAVAILABLE",
            message=message,
            order_id=order_id,
            retryable=not outcome_unknown,
        )
        self.outcome_unknown = outcome_unknown
