from app.schemas.events import OrderChangeEvent, OrderEventListResponse, OrderEventResponse
from app.schemas.health import HealthResponse, ReadinessDependency, ReadinessResponse
from app.schemas.metrics import MetricsResponse, TimingMetricStats
from app.schemas.order import (
    AdvanceRequest,
    DriverSessionResponse,
    OrderListResponse,
    OrderResponse,
    StoreResponse,
)

__all__ = [
    "AdvanceRequest",
    "DriverSessionResponse",
    "OrderListResponse",
    "OrderResponse",
    "StoreResponse",
    "OrderChangeEvent",
    "OrderEventResponse",
    "OrderEventListResponse",
    "HealthResponse",
    "ReadinessDependency",
    "ReadinessResponse",
    "MetricsResponse",
    "TimingMetricStats",
]
