import asyncio
import queue
import threading
from collections import OrderedDict
from collections.abc import Iterable

from app.config import settings
from app.models.domain import OrderSnapshot
from app.models.order import OrderStatus
from app.observability import log_event, metrics_store

# Delivered orders are dropped from the version map; this many stay as
# tombstones so a late, older snapshot of them is still recognised as stale.
_DELIVERED_TOMBSTONES = 1024


class SubscriptionClosed(Exception):
    pass


class Subscription:
    """Buffered stream of committed order snapshots for one subscriber.

    Per order, a snapshot is only accepted when its version is newer than
    the last one accepted, so a consumer never sees an order go backwards.
    Publishers may call ``offer`` from any thread; consumers read with the
    blocking ``get``, the non-blocking ``drain`` or, inside an event loop,
    ``await next_event()``.

    At most ``max_pending`` snapshots are buffered. A consumer that falls
    further behind is cut off (``overflowed``) rather than silently missing
    events, and has to resubscribe and re-read.
    """

    def __init__(
        self,
        order_ids: Iterable[str] | None = None,
        max_pending: int = 1000,
    ) -> None:
        self.order_ids = frozenset(order_ids) if order_ids is not None else None
        self.closed = False
        self.overflowed = False
        self._events: queue.Queue[OrderSnapshot] = queue.Queue(maxsize=max_pending)
        self._last_versions: dict[str, int] = {}
        self._delivered: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeup: asyncio.Event | None = None

    def matches(self, order: OrderSnapshot) -> bool:
        return self.order_ids is None or order.id in self.order_ids

    @property
    def tracked_order_count(self) -> int:
        with self._lock:
            return len(self._last_versions)

    def offer(self, order: OrderSnapshot) -> bool:
        with self._lock:
            if self.closed or not self.matches(order) or order.id in self._delivered:
                return False
            last_version = self._last_versions.get(order.id)
            if last_version is not None and order.version <= last_version:
                return False
            try:
                self._events.put_nowait(order)
                accepted = True
            except queue.Full:
                accepted = False
                self.overflowed = True
                self._shutdown_locked()
            if accepted:
                self._remember_locked(order)
            loop, wakeup = self._loop, self._wakeup

        if not accepted:
            metrics_store.increment("change_feed_overflow_total")
            log_event("change_feed_overflow", order_id=order.id, version=order.version)
        self._wake(loop, wakeup)
        return accepted

    def get(self, timeout: float | None = None) -> OrderSnapshot | None:
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[OrderSnapshot]:
        drained: list[OrderSnapshot] = []
        while True:
            try:
                drained.append(self._events.get_nowait())
            except queue.Empty:
                return drained

    async def next_event(self) -> OrderSnapshot:
        """Wait for the next snapshot; raises ``SubscriptionClosed`` once closed and drained."""
        with self._lock:
            if self._loop is None:
                self._loop = asyncio.get_running_loop()
                self._wakeup = asyncio.Event()
            wakeup = self._wakeup

        while True:
            # Clear before checking so a wakeup scheduled after the check is not lost.
            wakeup.clear()
            try:
                return self._events.get_nowait()
            except queue.Empty:
                pass
            if self.closed:
                raise SubscriptionClosed("overflowed" if self.overflowed else "closed")
            await wakeup.wait()

    def close(self) -> None:
        with self._lock:
            self._shutdown_locked()
            loop, wakeup = self._loop, self._wakeup
        self._wake(loop, wakeup)

    def _remember_locked(self, order: OrderSnapshot) -> None:
        if order.status != OrderStatus.DELIVERED:
            self._last_versions[order.id] = order.version
            return
        # Nothing follows DELIVERED, so the order only needs a tombstone.
        self._last_versions.pop(order.id, None)
        self._delivered[order.id] = None
        if len(self._delivered) > _DELIVERED_TOMBSTONES:
            self._delivered.popitem(last=False)

    def _shutdown_locked(self) -> None:
        self.closed = True
        self._last_versions.clear()
        self._delivered.clear()

    @staticmethod
    def _wake(
        loop: asyncio.AbstractEventLoop | None,
        wakeup: asyncio.Event | None,
    ) -> None:
        if loop is None or wakeup is None:
            return
        try:
            loop.call_soon_threadsafe(wakeup.set)
        except RuntimeError:
            # Consumer loop already closed.
            pass


class ChangeNotifier:
    def __init__(self, max_pending: int = 1000) -> None:
        self.max_pending = max_pending
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []

    def subscribe(self, order_ids: Iterable[str] | None = None) -> Subscription:
        subscription = Subscription(order_ids, max_pending=self.max_pending)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, order: OrderSnapshot) -> int:
        with self._lock:
            subscriptions = list(self._subscriptions)

        delivered = sum(1 for subscription in subscriptions if subscription.offer(order))
        metrics_store.increment("order_change_events_published_total")
        return delivered

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def reset(self) -> None:
        with self._lock:
            subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.close()


change_notifier = ChangeNotifier(max_pending=settings.change_feed_max_pending)
