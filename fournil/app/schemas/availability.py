from datetime import date
from decimal import Decimal

from pydantic import BaseModel


class AvailabilityBucketRead(BaseModel):
    lot_id: int | None
    lot_code: str | None
    expiration_date: date | None
    zone_id: int
    on_hand: Decimal
    reserved: Decimal
    available: Decimal

    class Config:
        from_attributes = True


class AvailabilitySummaryRead(BaseModel):
    total_stock: Decimal
    total_reserved: Decimal
    total_available: Decimal
    requires_lot_selection: bool
    requires_zone_selection: bool
    can_direct_delivery: bool

    class Config:
        from_attributes = True


class ArticleAvailabilityRead(BaseModel):
    article_id: int
    unit: str
    is_perishable: bool
    buckets: list[AvailabilityBucketRead]
    summary: AvailabilitySummaryRead

    class Config:
        from_attributes = True


class StockCheckRead(BaseModel):
    has_enough: bool
    available_stock: Decimal
    shortfall: Decimal

    class Config:
        from_attributes = True


class MissingIngredientRead(BaseModel):
    article_id: int
    article_name: str
    required_quantity: Decimal
    available_stock: Decimal
    shortfall: Decimal

    class Config:
        from_attributes = True


class RecipeAvailabilityRead(BaseModel):
    available: bool
    missing_ingredients: list[MissingIngredientRead]
    total_reserved: Decimal

    class Config:
        from_attributes = True
