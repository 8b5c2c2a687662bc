from fastapi import Depends

from app.config import settings
from app.db.session import SessionLocal
from app.services.change_notifier import ChangeNotifier, change_notifier
from app.services.claim_coordinator import ClaimCoordinator
from app.services.order_store import OrderStore, SqlOrderStore
from app.services.store import store


def get_order_store() -> OrderStore:
    if settings.order_store_backend == "memory":
        return store
    return SqlOrderStore(SessionLocal)


def get_change_notifier() -> ChangeNotifier:
    return change_notifier


def get_claim_coordinator(
    order_store: OrderStore = Depends(get_order_store),
    notifier: ChangeNotifier = Depends(get_change_notifier),
) -> ClaimCoordinator:
    return ClaimCoordinator(order_store, notifier)
