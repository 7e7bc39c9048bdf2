from decimal import Decimal

from pydantic import BaseModel


class ProductionLineStatusRead(BaseModel):
    order_line_id: int
    article_id: int
    ordered: Decimal
    delivered: Decimal
    reserved: Decimal
    to_pick: Decimal
    to_produce: Decimal
    status: str

    class Config:
        from_attributes = True


class OrderProductionStatusRead(BaseModel):
    order_id: int
    order_code: str
    status: str
    lines: list[ProductionLineStatusRead]

    class Config:
        from_attributes = True
