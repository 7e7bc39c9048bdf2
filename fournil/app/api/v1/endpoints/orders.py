from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fournil.app.api.deps import get_db
from fournil.app.schemas.production_status import OrderProductionStatusRead
from fournil.services.production_status import production_status_batch

router = APIRouter(prefix="/orders")


@router.get("/production-status-batch", response_model=list[OrderProductionStatusRead])
def get_production_status_batch(
    order_ids: list[int] = Query(),
    db: Session = Depends(get_db),
):
    """
    Ce qui est prêt / à préparer / à produire pour un lot de commandes.
    L'ordre des ids fait foi (priorité d'attribution du stock).
    """
    return production_status_batch(db, order_ids)
