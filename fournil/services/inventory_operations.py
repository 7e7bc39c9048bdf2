"""
Journal des opérations d'inventaire (append-only).

Chaque mouvement de stock est une opération codée (LIV-000001, RETL-...)
avec ses lignes signées et les quantités avant / après. Une correction est
une NOUVELLE opération liée par parent_operation_id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from fournil.app.core.errors import InsufficientStockError, InvalidOperationError, NotFoundError
from fournil.app.db.models.core_types import (
    OPERATION_CODE_PREFIXES,
    OPERATION_TYPES_WITHOUT_STOCK_EFFECT,
    OperationType,
)
from fournil.app.db.models.models_v1 import InventoryOperation, InventoryOperationLine
from fournil.services import catalog
from fournil.services.availability import bucket_sort_key
from fournil.services.inventory import apply_delta, get_quantity, get_stock_line
from fournil.services.quantities import ZERO, to_quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationLineRequest:
    article_id: int
    zone_id: int
    quantity: Decimal  # signé : < 0 sortie, > 0 entrée
    lot_id: int | None = None
    unit_cost: Decimal | None = None
    reservation_id: int | None = None


def operation_code(op_type: OperationType, operation_id: int) -> str:
    return f"{OPERATION_CODE_PREFIXES[op_type]}-{operation_id:06d}"


def _check_references(db: Session, lines: list[OperationLineRequest]) -> None:
    for article_id in sorted({line.article_id for line in lines}):
        catalog.get_article(db, article_id)
    for zone_id in sorted({line.zone_id for line in lines}):
        catalog.get_zone(db, zone_id)
    for line in lines:
        if line.lot_id is not None and catalog.get_lot(db, line.lot_id).article_id != line.article_id:
            raise InvalidOperationError(f"Lot {line.lot_id} does not belong to article {line.article_id}")


def _prevalidate(db: Session, lines: list[OperationLineRequest]) -> None:
    # delta agrégé par (article, lot, zone) : aucune écriture si une ligne échoue
    deltas: dict[tuple, Decimal] = {}
    for line in lines:
        key = (line.article_id, line.lot_id, line.zone_id)
        deltas[key] = deltas.get(key, ZERO) + to_quantity(line.quantity)

    for article_id, lot_id, zone_id in sorted(deltas, key=lambda k: (k[0], bucket_sort_key(k[1], k[2]))):
        delta = deltas[(article_id, lot_id, zone_id)]
        sl = get_stock_line(db, article_id, lot_id, zone_id, for_update=True)
        current = to_quantity(sl.quantity) if sl else ZERO
        if current + delta < 0:
            raise InsufficientStockError(article_id, -delta, current, lot_id=lot_id, zone_id=zone_id)


def post_operation(
    db: Session,
    op_type: OperationType,
    lines: list[OperationLineRequest],
    *,
    parent_operation_id: int | None = None,
    delivery_id: int | None = None,
    reason: str | None = None,
) -> InventoryOperation:
    if not lines:
        raise InvalidOperationError(f"{op_type.value} operation needs at least one line")
    for line in lines:
        if to_quantity(line.quantity) == 0:
            raise InvalidOperationError(f"{op_type.value} operation line quantity cannot be zero")

    if parent_operation_id is not None and db.get(InventoryOperation, parent_operation_id) is None:
        raise NotFoundError("InventoryOperation", parent_operation_id)

    _check_references(db, lines)

    affects_stock = op_type not in OPERATION_TYPES_WITHOUT_STOCK_EFFECT
    if affects_stock:
        _prevalidate(db, lines)

    op = InventoryOperation(
        code=None,
        type=op_type,
        parent_operation_id=parent_operation_id,
        delivery_id=delivery_id,
        reason=reason,
    )
    db.add(op)
    db.flush()

    for line in lines:
        qty = to_quantity(line.quantity)
        before = get_quantity(db, line.article_id, line.lot_id, line.zone_id)
        if affects_stock:
            after = apply_delta(db, line.article_id, line.lot_id, line.zone_id, qty)
        else:
            after = before
        op.lines.append(
            InventoryOperationLine(
                article_id=line.article_id,
                lot_id=line.lot_id,
                zone_id=line.zone_id,
                quantity=qty,
                quantity_before=before,
                quantity_after=after,
                unit_cost=line.unit_cost,
                reservation_id=line.reservation_id,
            )
        )

    op.code = operation_code(op_type, op.id)
    db.flush()
    logger.info(
        "posted operation %s type=%s lines=%d delivery=%s parent=%s",
        op.code, op_type.value, len(lines), delivery_id, parent_operation_id,
    )
    return op


def get_operation(db: Session, operation_id: int) -> InventoryOperation:
    op = db.execute(
        select(InventoryOperation)
        .options(selectinload(InventoryOperation.lines))
        .where(InventoryOperation.id == operation_id)
    ).scalar_one_or_none()
    if op is None:
        raise NotFoundError("InventoryOperation", operation_id)
    return op


def list_operations(
    db: Session,
    *,
    op_type: OperationType | None = None,
    delivery_id: int | None = None,
) -> list[InventoryOperation]:
    stmt = (
        select(InventoryOperation)
        .options(selectinload(InventoryOperation.lines))
        .order_by(InventoryOperation.id)
    )
    if op_type is not None:
        stmt = stmt.where(InventoryOperation.type == op_type)
    if delivery_id is not None:
        stmt = stmt.where(InventoryOperation.delivery_id == delivery_id)
    return list(db.execute(stmt).scalars().all())
