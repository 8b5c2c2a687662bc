import pytest
from fastapi.testclient import TestClient

import app.models  # noqa: F401
from app.auth.jwt import issue_driver_token, issue_jwt
from app.config import settings
from app.db.base import Base
from app.db.session import SessionLocal
from app.db.session import engine as app_engine
from app.dependencies import get_order_store
from app.main import app
from app.models.domain import StoreRef, build_ready_order
from app.models.order import OrderType
from app.observability import metrics_store
from app.services.change_notifier import change_notifier
from app.services.claim_coordinator import ClaimCoordinator
from app.services.order_store import SqlOrderStore
from app.services.store import reset_store, store


@pytest.fixture(scope="session", autouse=True)
def setup_test_schema():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield
    Base.metadata.drop_all(bind=app_engine)


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield


@pytest.fixture(autouse=True)
def reset_in_memory_store():
    reset_store()
    yield


@pytest.fixture(autouse=True)
def reset_metrics_store():
    metrics_store.reset()
    yield


@pytest.fixture(autouse=True)
def reset_change_notifier():
    change_notifier.reset()
    yield
    change_notifier.reset()


@pytest.fixture(scope="session", autouse=True)
def enable_testing_mode():
    original = settings.testing
    settings.testing = True
    yield
    settings.testing = original


@pytest.fixture(params=["memory", "sql"])
def order_store(request):
    if request.param == "memory":
        return store
    return SqlOrderStore(SessionLocal)


@pytest.fixture
def coordinator(order_store):
    return ClaimCoordinator(order_store, change_notifier)


@pytest.fixture
def make_order(order_store):
    counter = {"n": 0}

    def _make(
        order_id: str | None = None,
        total_amount: str = "42.50",
        order_type: OrderType = OrderType.DELIVERY,
    ):
        counter["n"] += 1
        order = build_ready_order(
            order_id=order_id or f"ord-{counter['n']}",
            total_amount=total_amount,
            delivery_fee="5.00",
            delivery_address=f"{counter['n']} Harbour Street",
            customer_name="Test Customer",
            customer_phone="+10000000000",
            store=StoreRef(id="store-t", name="Test Kitchen", address="1 Market Square"),
            order_type=order_type,
        )
        return order_store.add(order)

    return _make


@pytest.fixture
def client(order_store):
    app.dependency_overrides[get_order_store] = lambda: order_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def driver_headers():
    def _headers(driver_id: str) -> dict[str, str]:
        token = issue_driver_token(driver_id, settings.jwt_secret)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def ops_headers():
    token = issue_jwt({"sub": "ops-1", "role": "OPS"}, settings.jwt_secret)
    return {"Authorization": f"Bearer {token}"}
