"""
Stock ledger : quantité physique par (article, lot, zone).

Source de vérité unique du stock. Le total d'un article n'est JAMAIS stocké
ailleurs : il se recalcule depuis stock_lines.

Propriétés :
- quantité >= 0 à tout instant (échec AVANT écriture sinon)
- lot NULL = clé distincte de n'importe quel lot
- verrouillage SQL (FOR UPDATE) sur les lignes touchées
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from fournil.app.core.errors import InsufficientStockError
from fournil.app.db.models.models_v1 import StockLine
from fournil.services.quantities import ZERO, to_quantity

logger = logging.getLogger(__name__)


def _stock_line_stmt(article_id: int, lot_id: int | None, zone_id: int):
    stmt = (
        select(StockLine)
        .where(StockLine.article_id == article_id)
        .where(StockLine.zone_id == zone_id)
    )
    if lot_id is None:
        return stmt.where(StockLine.lot_id.is_(None))
    return stmt.where(StockLine.lot_id == lot_id)


def get_stock_line(
    db: Session,
    article_id: int,
    lot_id: int | None,
    zone_id: int,
    *,
    for_update: bool = False,
) -> StockLine | None:
    stmt = _stock_line_stmt(article_id, lot_id, zone_id).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def get_quantity(db: Session, article_id: int, lot_id: int | None, zone_id: int) -> Decimal:
    sl = get_stock_line(db, article_id, lot_id, zone_id)
    return to_quantity(sl.quantity) if sl else ZERO


def get_total_stock(db: Session, article_id: int) -> Decimal:
    rows = db.execute(select(StockLine.quantity).where(StockLine.article_id == article_id)).scalars().all()
    return to_quantity(sum((to_quantity(q) for q in rows), ZERO))


def list_stock_lines(
    db: Session,
    *,
    article_id: int | None = None,
    zone_id: int | None = None,
    lot_id: int | None = None,
) -> list[StockLine]:
    stmt = select(StockLine).order_by(StockLine.article_id, StockLine.zone_id, StockLine.id)
    if article_id is not None:
        stmt = stmt.where(StockLine.article_id == article_id)
    if zone_id is not None:
        stmt = stmt.where(StockLine.zone_id == zone_id)
    if lot_id is not None:
        stmt = stmt.where(StockLine.lot_id == lot_id)
    return list(db.execute(stmt).scalars().all())


def lock_article_stock(db: Session, article_id: int) -> list[StockLine]:
    """
    Sérialise les écrivains concurrents sur un article.

    1. FOR UPDATE par id croissant (Postgres : ordre de verrouillage stable)
    2. bump de version (SQLite : l'UPDATE prend le verrou d'écriture)
    3. relecture fraîche (la disponibilité doit être recalculée APRÈS le verrou)
    """
    base = select(StockLine).where(StockLine.article_id == article_id).order_by(StockLine.id)
    db.execute(base.with_for_update()).scalars().all()
    db.execute(
        update(StockLine)
        .where(StockLine.article_id == article_id)
        .values(version=StockLine.version + 1)
    )
    return list(db.execute(base.execution_options(populate_existing=True)).scalars().all())


def apply_delta(
    db: Session,
    article_id: int,
    lot_id: int | None,
    zone_id: int,
    delta,
) -> Decimal:
    """
    Applique un delta signé et retourne la nouvelle quantité.
    Lève InsufficientStockError si le résultat serait négatif (ligne inchangée).
    """
    delta = to_quantity(delta)
    sl = get_stock_line(db, article_id, lot_id, zone_id, for_update=True)
    current = to_quantity(sl.quantity) if sl else ZERO
    new_quantity = current + delta

    if new_quantity < 0:
        raise InsufficientStockError(article_id, -delta, current, lot_id=lot_id, zone_id=zone_id)

    if sl is None:
        sl = StockLine(
            article_id=article_id,
            lot_id=lot_id,
            zone_id=zone_id,
            quantity=new_quantity,
            version=1,
        )
        db.add(sl)
    else:
        sl.quantity = new_quantity
        sl.version = sl.version + 1

    db.flush()
    logger.debug(
        "stock delta applied article=%s lot=%s zone=%s delta=%s -> %s",
        article_id, lot_id, zone_id, delta, new_quantity,
    )
    return new_quantity
