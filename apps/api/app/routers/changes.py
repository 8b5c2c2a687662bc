import asyncio
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Depends, WebSocket, status
from starlette.concurrency import run_in_threadpool

from app.auth.dependencies import websocket_driver_context
from app.dependencies import get_change_notifier, get_order_store
from app.models.domain import OrderSnapshot
from app.observability import log_event, metrics_store
from app.routers.driver import session_response
from app.schemas.events import OrderChangeEvent
from app.services import driver_service
from app.services.change_notifier import ChangeNotifier, Subscription, SubscriptionClosed
from app.services.errors import LifecycleError
from app.services.order_store import OrderStore
from app.services.session_view import DriverSessionView

router = APIRouter(prefix="/api/v1/driver", tags=["driver"])


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def _stream(
    websocket: WebSocket,
    subscription: Subscription,
    on_event: Callable[[OrderSnapshot], Awaitable[None]],
) -> None:
    disconnect = asyncio.ensure_future(_wait_for_disconnect(websocket))
    next_event: asyncio.Future | None = None
    try:
        while True:
            next_event = asyncio.ensure_future(subscription.next_event())
            done, _ = await asyncio.wait(
                {next_event, disconnect}, return_when=asyncio.FIRST_COMPLETED
            )
            if disconnect in done:
                return
            try:
                order = next_event.result()
            except SubscriptionClosed:
                # 1013: consumer fell behind and must resubscribe; 1001: feed shut down.
                await websocket.close(
                    code=(
                        status.WS_1013_TRY_AGAIN_LATER
                        if subscription.overflowed
                        else status.WS_1001_GOING_AWAY
                    )
                )
                return
            await on_event(order)
    finally:
        disconnect.cancel()
        if next_event is not None:
            next_event.cancel()


@router.websocket("/changes")
async def changes_feed(
    websocket: WebSocket,
    notifier: ChangeNotifier = Depends(get_change_notifier),
) -> None:
    auth = websocket_driver_context(websocket)
    if auth is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    # Subscribe before accepting so no commit between handshake and first read is missed.
    subscription = driver_service.subscribe_changes(notifier, auth.user_id)
    metrics_store.increment("change_feed_connections_total")
    log_event("change_feed_connected", driver_id=auth.user_id)
    try:
        await websocket.accept()

        async def send_change(order: OrderSnapshot) -> None:
            event = OrderChangeEvent.from_snapshot(order)
            await websocket.send_json(event.model_dump(mode="json"))

        await _stream(websocket, subscription, send_change)
    finally:
        notifier.unsubscribe(subscription)
        log_event("change_feed_disconnected", driver_id=auth.user_id)


@router.websocket("/session/stream")
async def session_stream(
    websocket: WebSocket,
    notifier: ChangeNotifier = Depends(get_change_notifier),
    store: OrderStore = Depends(get_order_store),
) -> None:
    auth = websocket_driver_context(websocket)
    if auth is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    subscription = driver_service.subscribe_changes(notifier, auth.user_id)
    try:
        try:
            view = await run_in_threadpool(DriverSessionView, store, auth.user_id)
        except LifecycleError as err:
            log_event(f"session_stream_refused:{err.code}", driver_id=auth.user_id)
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
            return

        await websocket.accept()

        async def send_session() -> None:
            payload = session_response(auth.user_id, view.current)
            await websocket.send_json(payload.model_dump(mode="json"))

        async def on_change(order: OrderSnapshot) -> None:
            if view.apply(order):
                await send_session()

        await send_session()
        await _stream(websocket, subscription, on_change)
    finally:
        notifier.unsubscribe(subscription)
