from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class StockLineRead(BaseModel):
    id: int
    article_id: int
    lot_id: int | None
    zone_id: int

    quantity: Decimal  # READ ONLY : écrit uniquement via les opérations d'inventaire
    version: int
    updated_at: datetime

    class Config:
        from_attributes = True
