from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fournil.app.api.deps import get_db
from fournil.app.schemas.stock_level import StockLineRead
from fournil.services.inventory import list_stock_lines

router = APIRouter(prefix="/stock")


@router.get(
    "",
    response_model=list[StockLineRead],
)
def get_stock(
    article_id: int | None = None,
    zone_id: int | None = None,
    lot_id: int | None = None,
    db: Session = Depends(get_db),
):
    """
    Stock physique (READ ONLY)
    - une ligne par (article, lot, zone)
    - modifiable uniquement via /inventory-operations ou le cycle de livraison
    """
    return list_stock_lines(db, article_id=article_id, zone_id=zone_id, lot_id=lot_id)
