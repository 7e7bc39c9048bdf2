from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from fournil.app.api.deps import get_db
from fournil.app.db.models.core_types import OperationType
from fournil.app.db.session import unit_of_work
from fournil.app.schemas.inventory_operation import OperationRead
from fournil.services.inventory_operations import (
    OperationLineRequest,
    get_operation,
    list_operations,
    post_operation,
)

router = APIRouter(prefix="/inventory-operations")

# les opérations de livraison / retour / rebut passent uniquement par le cycle du BL
MANUAL_OPERATION_TYPES = frozenset({OperationType.reception, OperationType.adjustment, OperationType.production})


class OperationLineCreate(BaseModel):
    article_id: int
    zone_id: int
    lot_id: int | None = None
    quantity: Decimal  # signée
    unit_cost: Decimal | None = Field(default=None, ge=0)


class OperationCreate(BaseModel):
    type: OperationType
    lines: list[OperationLineCreate] = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=255)
    parent_operation_id: int | None = None


@router.get("", response_model=list[OperationRead])
def get_operations(
    type: OperationType | None = None,
    delivery_id: int | None = None,
    db: Session = Depends(get_db),
):
    return list_operations(db, op_type=type, delivery_id=delivery_id)


@router.get("/{operation_id}", response_model=OperationRead)
def get_one_operation(operation_id: int, db: Session = Depends(get_db)):
    return get_operation(db, operation_id)


@router.post("", response_model=OperationRead, status_code=201)
def create_operation(payload: OperationCreate, db: Session = Depends(get_db)):
    """
    Mouvement manuel : réception, ajustement d'inventaire, production.
    Atomique : une ligne en échec = aucune ligne appliquée.
    """
    if payload.type not in MANUAL_OPERATION_TYPES:
        raise HTTPException(
            status_code=422,
            detail=f"{payload.type.value} operations are posted by the delivery lifecycle only",
        )

    with unit_of_work(db):
        op = post_operation(
            db,
            payload.type,
            [OperationLineRequest(**line.model_dump()) for line in payload.lines],
            parent_operation_id=payload.parent_operation_id,
            reason=payload.reason,
        )
        op_id = op.id
    return get_operation(db, op_id)
