from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from fournil.app.api.deps import get_db
from fournil.app.db.models.core_types import DeliveryStatus
from fournil.app.schemas.delivery import DeliveryRead
from fournil.services.allocation import AllocationSplit
from fournil.services.deliveries import (
    DeliveryLineRequest,
    cancel_after_validation,
    cancel_before_validation,
    create_delivery,
    get_delivery,
    list_deliveries,
    validate_delivery,
)

router = APIRouter(prefix="/deliveries")


class SplitCreate(BaseModel):
    zone_id: int
    lot_id: int | None = None
    quantity: Decimal = Field(gt=0)


class DeliveryLineCreate(BaseModel):
    order_line_id: int
    quantity: Decimal = Field(gt=0)
    # absent = allocation automatique (FEFO pour les périssables)
    splits: list[SplitCreate] | None = None


class DeliveryCreate(BaseModel):
    order_id: int
    lines: list[DeliveryLineCreate] = Field(min_length=1)


class CancelBeforeValidation(BaseModel):
    reason: str = Field(min_length=1, max_length=255)


class CancelAfterValidation(BaseModel):
    reason: str = Field(min_length=1, max_length=255)
    is_return_to_stock: bool


@router.get("", response_model=list[DeliveryRead])
def get_deliveries(
    order_id: int | None = None,
    status: DeliveryStatus | None = None,
    db: Session = Depends(get_db),
):
    return list_deliveries(db, order_id=order_id, status=status)


@router.get("/{delivery_id}", response_model=DeliveryRead)
def get_one_delivery(delivery_id: int, db: Session = Depends(get_db)):
    return get_delivery(db, delivery_id)


@router.post("", response_model=DeliveryRead, status_code=201)
def post_delivery(payload: DeliveryCreate, db: Session = Depends(get_db)):
    """
    Crée un BL et réserve le stock de toutes ses lignes (tout ou rien).
    """
    lines = [
        DeliveryLineRequest(
            order_line_id=line.order_line_id,
            quantity=line.quantity,
            splits=(
                [AllocationSplit(zone_id=s.zone_id, lot_id=s.lot_id, quantity=s.quantity) for s in line.splits]
                if line.splits is not None
                else None
            ),
        )
        for line in payload.lines
    ]
    delivery = create_delivery(db, payload.order_id, lines)
    return get_delivery(db, delivery.id)


@router.post("/{delivery_id}/validate", response_model=DeliveryRead)
def post_validate(delivery_id: int, db: Session = Depends(get_db)):
    validate_delivery(db, delivery_id)
    return get_delivery(db, delivery_id)


@router.post("/{delivery_id}/cancel-before-validation", response_model=DeliveryRead)
def post_cancel_before(delivery_id: int, payload: CancelBeforeValidation, db: Session = Depends(get_db)):
    cancel_before_validation(db, delivery_id, payload.reason)
    return get_delivery(db, delivery_id)


@router.post("/{delivery_id}/cancel-after-validation", response_model=DeliveryRead)
def post_cancel_after(delivery_id: int, payload: CancelAfterValidation, db: Session = Depends(get_db)):
    cancel_after_validation(db, delivery_id, payload.reason, payload.is_return_to_stock)
    return get_delivery(db, delivery_id)
