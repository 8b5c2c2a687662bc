from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from app.config import settings
from app.db.session import SessionLocal
from app.dependencies import get_order_store
from app.main import app
from app.models.domain import build_ready_order
from app.models.order import OrderStatus, OrderType
from app.services.order_store import SqlOrderStore

BASE = "/api/v1/driver"


def _claim(client, order_id, headers):
    return client.post(f"{BASE}/orders/{order_id}/claim", headers=headers)


def _advance(client, order_id, target, headers):
    return client.post(
        f"{BASE}/orders/{order_id}/advance", json={"target_status": target}, headers=headers
    )


def test_full_delivery_lifecycle(client, make_order, driver_headers):
    order = make_order()
    driver = driver_headers("driver-a")

    claimed = _claim(client, order.id, driver)
    assert claimed.status_code == 200
    assert claimed.json()["status"] == "ASSIGNED"
    assert claimed.json()["driver_id"] == "driver-a"
    assert claimed.json()["version"] == 2

    picked_up = _advance(client, order.id, "picked_up", driver)
    assert picked_up.status_code == 200
    assert picked_up.json()["status"] == "PICKED_UP"

    delivered = _advance(client, order.id, "DELIVERED", driver)
    assert delivered.status_code == 200
    body = delivered.json()
    assert body["status"] == "DELIVERED"
    assert body["payment_status"] == "COLLECTED"
    assert body["version"] == 4

    active = client.get(f"{BASE}/orders/active", headers=driver)
    assert active.status_code == 200
    assert active.json() is None

    reclaim = _claim(client, order.id, driver_headers("driver-b"))
    assert reclaim.status_code == 409
    assert reclaim.json()["detail"]["code"] == "INVALID_TRANSITION"


def test_available_orders_lists_only_ready_orders(client, make_order, driver_headers):
    first = make_order()
    second = make_order()
    _claim(client, first.id, driver_headers("driver-b"))

    response = client.get(f"{BASE}/orders/available", headers=driver_headers("driver-a"))

    assert response.status_code == 200
    items = response.json()["items"]
    assert [item["id"] for item in items] == [second.id]
    assert items[0]["total_amount"] == "42.50"
    assert items[0]["store"]["name"] == "Test Kitchen"


def test_reads_are_idempotent(client, make_order, driver_headers):
    make_order()
    make_order()
    driver = driver_headers("driver-a")

    first = client.get(f"{BASE}/session", headers=driver)
    second = client.get(f"{BASE}/session", headers=driver)

    assert first.status_code == 200
    assert first.json() == second.json()


def test_session_partitions_orders_for_the_driver(client, make_order, driver_headers):
    mine = make_order()
    open_order = make_order()
    driver = driver_headers("driver-a")
    _claim(client, mine.id, driver)

    response = client.get(f"{BASE}/session", headers=driver)

    assert response.status_code == 200
    body = response.json()
    assert body["driver_id"] == "driver-a"
    assert body["active_order"]["id"] == mine.id
    assert [item["id"] for item in body["available_pool"]] == [open_order.id]


def test_claiming_a_taken_order_is_rejected(client, make_order, driver_headers):
    order = make_order()
    _claim(client, order.id, driver_headers("driver-a"))

    response = _claim(client, order.id, driver_headers("driver-b"))

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "INVALID_TRANSITION"


def test_second_active_order_is_rejected(client, make_order, driver_headers):
    first = make_order()
    second = make_order()
    driver = driver_headers("driver-a")
    _claim(client, first.id, driver)

    response = _claim(client, second.id, driver)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "INVALID_TRANSITION"


def test_non_owner_cannot_advance(client, make_order, driver_headers):
    order = make_order()
    _claim(client, order.id, driver_headers("driver-a"))

    response = _advance(client, order.id, "PICKED_UP", driver_headers("driver-b"))

    assert response.status_code == 403
    assert response.json()["detail"] == {
        "code": "UNAUTHORIZED",
        "message": "Order is owned by another driver",
        "retryable": False,
    }


def test_skipping_pickup_is_invalid(client, make_order, driver_headers):
    order = make_order()
    driver = driver_headers("driver-a")
    _claim(client, order.id, driver)

    response = _advance(client, order.id, "DELIVERED", driver)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "INVALID_TRANSITION"


def test_unknown_target_status_is_unprocessable(client, make_order, driver_headers):
    order = make_order()

    response = _advance(client, order.id, "CANCELLED", driver_headers("driver-a"))

    assert response.status_code == 422


def test_unknown_order_is_not_found(client, driver_headers):
    response = _claim(client, "ord-missing", driver_headers("driver-a"))

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "NOT_FOUND"


def test_driver_endpoints_require_a_driver_token(client, ops_headers):
    assert client.get(f"{BASE}/orders/available").status_code == 401
    assert client.get(f"{BASE}/orders/available", headers=ops_headers).status_code == 403


def test_order_timeline_is_visible_to_its_driver_only(client, make_order, driver_headers):
    order = make_order()
    driver = driver_headers("driver-a")
    _claim(client, order.id, driver)
    _advance(client, order.id, "PICKED_UP", driver)

    timeline = client.get(f"{BASE}/orders/{order.id}/events", headers=driver)
    foreign = client.get(f"{BASE}/orders/{order.id}/events", headers=driver_headers("driver-b"))

    assert timeline.status_code == 200
    assert [(e["version"], e["status"]) for e in timeline.json()["items"]] == [
        (1, "READY"),
        (2, "ASSIGNED"),
        (3, "PICKED_UP"),
    ]
    assert foreign.status_code == 403


def test_store_outage_maps_to_service_unavailable(client, driver_headers, tmp_path):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'missing' / 'orders.db'}")
    app.dependency_overrides[get_order_store] = lambda: SqlOrderStore(sessionmaker(bind=engine))
    try:
        response = _claim(client, "ord-1", driver_headers("driver-a"))
    finally:
        engine.dispose()

    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "STORE_UNAVAILABLE"
    assert response.json()["detail"]["retryable"] is True
    assert response.json()["detail"]["outcome_unknown"] is False


def test_responses_carry_request_id(client, driver_headers):
    response = client.get(
        f"{BASE}/orders/available",
        headers={**driver_headers("driver-a"), "X-Request-ID": "req-42"},
    )

    assert response.headers["X-Request-ID"] == "req-42"


class _BrokenWriteSession:
    def __enter__(self):
        return self

    def __exit__(self, *_exc):
        return False

    def execute(self, *_args, **_kwargs):
        raise OperationalError("UPDATE orders", {}, Exception("disk I/O error"))


class _WriteFailingStore(SqlOrderStore):
    """Reads work; the conditional write dies mid-statement."""

    def conditional_write(self, order, expected_version):
        healthy = self._session_factory
        self._session_factory = _BrokenWriteSession
        try:
            return super().conditional_write(order, expected_version)
        finally:
            self._session_factory = healthy


def test_write_outage_reports_unknown_outcome(client, driver_headers):
    SqlOrderStore(SessionLocal).add(build_ready_order(order_id="ord-w", total_amount="9.00"))
    app.dependency_overrides[get_order_store] = lambda: _WriteFailingStore(SessionLocal)

    response = _claim(client, "ord-w", driver_headers("driver-a"))

    assert response.status_code == 503
    assert response.json()["detail"] == {
        "code": "STORE_UNAVAILABLE",
        "message": "Order store unavailable; re-read the order before retrying",
        "retryable": False,
        "outcome_unknown": True,
    }
    assert SqlOrderStore(SessionLocal).read("ord-w").status == OrderStatus.READY


def test_claim_response_timestamps_match_a_reread(client, make_order, driver_headers):
    order = make_order()
    driver = driver_headers("driver-a")

    claimed = _claim(client, order.id, driver).json()
    active = client.get(f"{BASE}/orders/active", headers=driver).json()
    session = client.get(f"{BASE}/session", headers=driver).json()

    assert active["updated_at"] == claimed["updated_at"]
    assert active["created_at"] == claimed["created_at"]
    assert session["active_order"]["updated_at"] == claimed["updated_at"]
    assert claimed["updated_at"].endswith("Z") or claimed["updated_at"].endswith("+00:00")


def test_timeline_timestamps_are_utc(client, make_order, driver_headers):
    order = make_order()
    driver = driver_headers("driver-a")
    claimed = _claim(client, order.id, driver).json()

    items = client.get(f"{BASE}/orders/{order.id}/events", headers=driver).json()["items"]

    assert items[-1]["created_at"] == claimed["updated_at"]


def test_pickup_orders_are_not_offered_to_drivers(client, make_order, driver_headers):
    delivery = make_order()
    pickup = make_order(order_type=OrderType.PICKUP)
    driver = driver_headers("driver-a")

    available = client.get(f"{BASE}/orders/available", headers=driver).json()["items"]
    session = client.get(f"{BASE}/session", headers=driver).json()
    claim = _claim(client, pickup.id, driver)

    assert [item["id"] for item in available] == [delivery.id]
    assert available[0]["order_type"] == "DELIVERY"
    assert [item["id"] for item in session["available_pool"]] == [delivery.id]
    assert claim.status_code == 409
    assert claim.json()["detail"]["code"] == "INVALID_TRANSITION"


def test_auth_bypass_acts_as_a_driver_only(client, make_order):
    order = make_order()
    original = settings.enable_test_auth_bypass
    settings.enable_test_auth_bypass = True
    try:
        claim = _claim(client, order.id, {})
        metrics = client.get("/metrics")
    finally:
        settings.enable_test_auth_bypass = original

    assert claim.status_code == 200
    assert claim.json()["driver_id"] == "test-driver"
    assert metrics.status_code == 403
