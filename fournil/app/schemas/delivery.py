from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from fournil.app.db.models.core_types import DeliveryStatus
from fournil.app.schemas.reservation import ReservationRead


class DeliveryLineRead(BaseModel):
    id: int
    order_line_id: int
    article_id: int
    requested_quantity: Decimal
    # splits résolus (lot, zone, quantité)
    reservations: list[ReservationRead]

    class Config:
        from_attributes = True


class DeliveryRead(BaseModel):
    id: int
    code: str | None
    order_id: int
    status: DeliveryStatus
    is_validated: bool
    validated_at: datetime | None
    cancellation_reason: str | None
    cancelled_at: datetime | None
    operation_id: int | None
    created_at: datetime
    lines: list[DeliveryLineRead]

    class Config:
        from_attributes = True
