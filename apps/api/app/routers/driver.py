from fastapi import APIRouter, Depends, HTTPException, status

from app.auth.dependencies import AuthContext, require_driver
from app.dependencies import get_claim_coordinator, get_order_store
from app.schemas.events import OrderEventListResponse, OrderEventResponse
from app.schemas.order import (
    AdvanceRequest,
    DriverSessionResponse,
    OrderListResponse,
    OrderResponse,
)
from app.services import driver_service
from app.services.claim_coordinator import ClaimCoordinator
from app.services.errors import (
    ConflictError,
    InvalidTransitionError,
    LifecycleError,
    NotFoundError,
    StoreUnavailableError,
    UnauthorizedError,
)
from app.services.order_store import OrderStore
from app.services.session_view import DriverSnapshot

router = APIRouter(prefix="/api/v1/driver", tags=["driver"])

_ERROR_STATUS: dict[type[LifecycleError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    UnauthorizedError: status.HTTP_403_FORBIDDEN,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    ConflictError: status.HTTP_409_CONFLICT,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def translate_lifecycle_error(err: LifecycleError) -> HTTPException:
    status_code = _ERROR_STATUS.get(type(err), status.HTTP_409_CONFLICT)
    detail = {"code": err.code, "message": err.message, "retryable": err.retryable}
    if isinstance(err, StoreUnavailableError):
        detail["outcome_unknown"] = err.outcome_unknown
    return HTTPException(status_code=status_code, detail=detail)


@router.get("/orders/available", response_model=OrderListResponse, summary="Ready orders")
def list_available_endpoint(
    store: OrderStore = Depends(get_order_store),
    _auth: AuthContext = Depends(require_driver),
) -> OrderListResponse:
    try:
        orders = driver_service.list_available(store)
    except LifecycleError as err:
        raise translate_lifecycle_error(err) from err
    return OrderListResponse(items=[OrderResponse.model_validate(order) for order in orders])


@router.get(
    "/orders/active",
    response_model=OrderResponse | None,
    summary="The calling driver's active order",
)
def get_active_endpoint(
    store: OrderStore = Depends(get_order_store),
    auth: AuthContext = Depends(require_driver),
) -> OrderResponse | None:
    try:
        order = driver_service.get_active(store, auth.user_id)
    except LifecycleError as err:
        raise translate_lifecycle_error(err) from err
    return OrderResponse.model_validate(order) if order is not None else None


@router.get("/session", response_model=DriverSessionResponse, summary="Active order and pool")
def session_endpoint(
    store: OrderStore = Depends(get_order_store),
    auth: AuthContext = Depends(require_driver),
) -> DriverSessionResponse:
    try:
        snapshot = driver_service.session_snapshot(store, auth.user_id)
    except LifecycleError as err:
        raise translate_lifecycle_error(err) from err
    return session_response(auth.user_id, snapshot)


@router.post("/orders/{order_id}/claim", response_model=OrderResponse, summary="Claim an order")
def claim_endpoint(
    order_id: str,
    coordinator: ClaimCoordinator = Depends(get_claim_coordinator),
    auth: AuthContext = Depends(require_driver),
) -> OrderResponse:
    try:
        order = driver_service.claim(coordinator, order_id, auth.user_id)
    except LifecycleError as err:
        raise translate_lifecycle_error(err) from err
    return OrderResponse.model_validate(order)


@router.post(
    "/orders/{order_id}/advance",
    response_model=OrderResponse,
    summary="Move an order to its next status",
)
def advance_endpoint(
    order_id: str,
    payload: AdvanceRequest,
    coordinator: ClaimCoordinator = Depends(get_claim_coordinator),
    auth: AuthContext = Depends(require_driver),
) -> OrderResponse:
    try:
        order = driver_service.advance(coordinator, order_id, auth.user_id, payload.target_status)
    except LifecycleError as err:
        raise translate_lifecycle_error(err) from err
    return OrderResponse.model_validate(order)


@router.get(
    "/orders/{order_id}/events",
    response_model=OrderEventListResponse,
    summary="Order timeline",
)
def order_events_endpoint(
    order_id: str,
    store: OrderStore = Depends(get_order_store),
    auth: AuthContext = Depends(require_driver),
) -> OrderEventListResponse:
    try:
        events = driver_service.list_order_events(store, order_id, auth.user_id)
    except LifecycleError as err:
        raise translate_lifecycle_error(err) from err
    return OrderEventListResponse(items=[OrderEventResponse.model_validate(e) for e in events])


def session_response(driver_id: str, snapshot: DriverSnapshot) -> DriverSessionResponse:
    return DriverSessionResponse(
        driver_id=driver_id,
        active_order=(
            OrderResponse.model_validate(snapshot.active_order)
            if snapshot.active_order is not None
            else None
        ),
        available_pool=[OrderResponse.model_validate(order) for order in snapshot.available_pool],
    )
