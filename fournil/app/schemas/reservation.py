from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from fournil.app.db.models.core_types import ReservationStatus


class ReservationRead(BaseModel):
    id: int
    delivery_id: int
    delivery_line_id: int | None
    order_line_id: int
    article_id: int
    lot_id: int | None
    zone_id: int | None

    reserved_quantity: Decimal
    delivered_quantity: Decimal
    status: ReservationStatus
    operation_id: int | None

    created_at: datetime
    state_changed_at: datetime | None
    expires_at: datetime | None

    class Config:
        from_attributes = True
