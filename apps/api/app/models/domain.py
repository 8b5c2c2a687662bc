from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.order import ACTIVE_ORDER_STATUSES, OrderStatus, OrderType, PaymentStatus

_CENTS = Decimal("0.01")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str = "") -> str:
    return f"{prefix}{uuid4()}"


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored timestamp is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class StoreRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    address: str | None = None


class OrderSnapshot(BaseModel):
    """Immutable view of one order at one version.

    Snapshots are what the state machine consumes and produces, what the
    stores hand out and what the change feed carries. Construction fails
    when the driver/status or payment/status invariants do not hold, so an
    inconsistent order can never travel through the engine.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    status: OrderStatus = OrderStatus.READY
    driver_id: str | None = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    version: int = Field(default=1, ge=1)
    order_type: OrderType = OrderType.DELIVERY

    total_amount: Decimal
    delivery_fee: Decimal | None = None
    delivery_address: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    store: StoreRef | None = None

    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("total_amount", "delivery_fee")
    @classmethod
    def quantize_money(cls, value: Decimal | None) -> Decimal | None:
        if value is None:
            return value
        return Decimal(value).quantize(_CENTS)

    @model_validator(mode="after")
    def check_invariants(self) -> "OrderSnapshot":
        if (self.driver_id is None) != (self.status == OrderStatus.READY):
            raise ValueError("driver_id must be set exactly when the order has left READY")
        if (self.payment_status == PaymentStatus.COLLECTED) != (
            self.status == OrderStatus.DELIVERED
        ):
            raise ValueError("payment_status must be COLLECTED exactly when DELIVERED")
        return self

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_ORDER_STATUSES

    @property
    def is_offered_to_drivers(self) -> bool:
        return self.status == OrderStatus.READY and self.order_type == OrderType.DELIVERY


class OrderEventRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str
    status: OrderStatus
    payment_status: PaymentStatus
    driver_id: str | None
    version: int
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, value: datetime) -> datetime:
        return as_utc(value)

    @classmethod
    def for_snapshot(cls, order: OrderSnapshot) -> "OrderEventRecord":
        return cls(
            order_id=order.id,
            status=order.status,
            payment_status=order.payment_status,
            driver_id=order.driver_id,
            version=order.version,
            created_at=order.updated_at,
        )


def build_ready_order(
    *,
    total_amount: Decimal | str | float,
    order_id: str | None = None,
    delivery_address: str | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    delivery_fee: Decimal | str | float | None = None,
    store: StoreRef | None = None,
    order_type: OrderType = OrderType.DELIVERY,
) -> OrderSnapshot:
    created = now_utc()
    return OrderSnapshot(
        id=order_id or new_id("ord-"),
        order_type=order_type,
        total_amount=Decimal(str(total_amount)),
        delivery_fee=None if delivery_fee is None else Decimal(str(delivery_fee)),
        delivery_address=delivery_address,
        customer_name=customer_name,
        customer_phone=customer_phone,
        store=store,
        created_at=created,
        updated_at=created,
    )
