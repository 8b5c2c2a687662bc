from datetime import datetime

from pydantic import BaseModel, ConfigDict

from app.models.domain import OrderSnapshot
from app.models.order import OrderStatus, PaymentStatus


class OrderChangeEvent(BaseModel):
    order_id: str
    new_status: OrderStatus
    new_payment_status: PaymentStatus
    version: int

    @classmethod
    def from_snapshot(cls, order: OrderSnapshot) -> "OrderChangeEvent":
        return cls(
            order_id=order.id,
            new_status=order.status,
            new_payment_status=order.payment_status,
            version=order.version,
        )


class OrderEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: str
    status: OrderStatus
    payment_status: PaymentStatus
    driver_id: str | None
    version: int
    created_at: datetime


class OrderEventListResponse(BaseModel):
    items: list[OrderEventResponse]
