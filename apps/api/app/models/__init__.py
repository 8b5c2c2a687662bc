# Import SQLAlchemy models so they register on Base.metadata
from app.models.order import (  # noqa: F401
    ACTIVE_ORDER_STATUSES,
    Order,
    OrderStatus,
    OrderType,
    PaymentStatus,
)
from app.models.order_event import OrderEvent  # noqa: F401
from app.models.store import Store  # noqa: F401
