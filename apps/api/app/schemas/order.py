from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, field_validator

from app.models.order import OrderStatus, OrderType, PaymentStatus


class StoreResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    address: str | None


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: OrderStatus
    driver_id: str | None
    payment_status: PaymentStatus
    order_type: OrderType
    version: int
    total_amount: Decimal
    delivery_fee: Decimal | None
    delivery_address: str | None
    customer_name: str | None
    customer_phone: str | None
    store: StoreResponse | None
    created_at: datetime
    updated_at: datetime


class OrderListResponse(BaseModel):
    items: list[OrderResponse]


class DriverSessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    driver_id: str
    active_order: OrderResponse | None
    available_pool: list[OrderResponse]


class AdvanceRequest(BaseModel):
    target_status: OrderStatus

    @field_validator("target_status", mode="before")
    @classmethod
    def normalize_status(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value
