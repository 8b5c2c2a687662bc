import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class OrderStatus(str, enum.Enum):
    READY = "READY"
    ASSIGNED = "ASSIGNED"
    PICKED_UP = "PICKED_UP"
    DELIVERED = "DELIVERED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COLLECTED = "COLLECTED"


class OrderType(str, enum.Enum):
    DELIVERY = "DELIVERY"
    PICKUP = "PICKUP"


ACTIVE_ORDER_STATUSES = frozenset({OrderStatus.ASSIGNED, OrderStatus.PICKED_UP})

_ACTIVE_DRIVER_PREDICATE = text("status IN ('ASSIGNED', 'PICKED_UP')")


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        # One active order per driver, enforced by the database as a second guard.
        Index(
            "uq_orders_active_driver",
            "driver_id",
            unique=True,
            sqlite_where=_ACTIVE_DRIVER_PREDICATE,
            postgresql_where=_ACTIVE_DRIVER_PREDICATE,
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    store_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("stores.id", ondelete="SET NULL"), nullable=True, index=True
    )

    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status"),
        nullable=False,
        default=OrderStatus.READY,
        index=True,
    )
    driver_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status"), nullable=False, default=PaymentStatus.PENDING
    )
    order_type: Mapped[OrderType] = mapped_column(
        Enum(OrderType, name="order_type"), nullable=False, default=OrderType.DELIVERY
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    delivery_fee: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    delivery_address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    store = relationship("Store", lazy="joined")
