from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from fournil.app.db.models.core_types import OperationType


class OperationLineRead(BaseModel):
    id: int
    article_id: int
    lot_id: int | None
    zone_id: int
    quantity: Decimal
    quantity_before: Decimal
    quantity_after: Decimal
    unit_cost: Decimal | None
    reservation_id: int | None

    class Config:
        from_attributes = True


class OperationRead(BaseModel):
    id: int
    code: str | None
    type: OperationType
    parent_operation_id: int | None
    delivery_id: int | None
    reason: str | None
    created_at: datetime
    lines: list[OperationLineRead]

    class Config:
        from_attributes = True
