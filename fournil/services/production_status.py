"""
État de production d'un lot de commandes (vue "fournil" du matin).

Les commandes sont traitées dans l'ordre donné : le stock disponible d'un
article est attribué séquentiellement, ce qui manque est à produire.
Lecture seule.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from fournil.app.db.models.core_types import (
    ACTIVE_RESERVATION_STATUSES,
    RELEASED_DELIVERY_STATUSES,
    ReservationStatus,
)
from fournil.app.db.models.models_v1 import Delivery, StockReservation
from fournil.services import catalog
from fournil.services.availability import get_availability
from fournil.services.quantities import ZERO, to_quantity


@dataclass(frozen=True)
class ProductionLineStatus:
    order_line_id: int
    article_id: int
    ordered: Decimal
    delivered: Decimal
    reserved: Decimal
    to_pick: Decimal
    to_produce: Decimal
    status: str  # delivered | available | partial | missing


@dataclass(frozen=True)
class OrderProductionStatus:
    order_id: int
    order_code: str
    status: str  # ready | partially_ready | not_ready
    lines: list[ProductionLineStatus] = field(default_factory=list)


def _fulfilled_by_line(db: Session, order_line_ids: list[int]) -> dict[int, tuple[Decimal, Decimal]]:
    """(livré, réservé non livré) par ligne de commande."""
    result: dict[int, tuple[Decimal, Decimal]] = {}
    if not order_line_ids:
        return result
    rows = db.execute(
        select(StockReservation)
        .join(Delivery, Delivery.id == StockReservation.delivery_id)
        .where(StockReservation.order_line_id.in_(order_line_ids))
        .where(StockReservation.status != ReservationStatus.cancelled)
        .where(Delivery.status.not_in(RELEASED_DELIVERY_STATUSES))
    ).scalars().all()
    for r in rows:
        delivered, reserved = result.get(r.order_line_id, (ZERO, ZERO))
        delivered += to_quantity(r.delivered_quantity)
        if r.status in ACTIVE_RESERVATION_STATUSES:
            reserved += to_quantity(r.reserved_quantity) - to_quantity(r.delivered_quantity)
        result[r.order_line_id] = (delivered, reserved)
    return result


def _order_status(lines: list[ProductionLineStatus]) -> str:
    if all(l.status in ("delivered", "available") for l in lines):
        return "ready"
    if any(l.to_pick > 0 or l.delivered > 0 or l.reserved > 0 for l in lines):
        return "partially_ready"
    return "not_ready"


def production_status_batch(db: Session, order_ids: list[int]) -> list[OrderProductionStatus]:
    # doublons ignorés, ordre d'arrivée conservé
    orders = [catalog.get_order(db, oid) for oid in dict.fromkeys(order_ids)]

    all_lines = [line for order in orders for line in order.lines]
    fulfilled = _fulfilled_by_line(db, [line.id for line in all_lines])

    stock_left: dict[int, Decimal] = {}
    results: list[OrderProductionStatus] = []
    for order in orders:
        statuses: list[ProductionLineStatus] = []
        for line in sorted(order.lines, key=lambda l: l.id):
            ordered = to_quantity(line.quantity_ordered)
            delivered, reserved = fulfilled.get(line.id, (ZERO, ZERO))
            remaining = max(ordered - delivered - reserved, ZERO)

            if line.article.is_stock_managed:
                if line.article_id not in stock_left:
                    stock_left[line.article_id] = get_availability(db, line.article_id).summary.total_available
                to_pick = min(remaining, stock_left[line.article_id])
                stock_left[line.article_id] -= to_pick
            else:
                to_pick = remaining
            to_produce = remaining - to_pick

            if delivered >= ordered:
                status = "delivered"
            elif to_produce == 0:
                status = "available"
            elif to_pick > 0 or reserved > 0:
                status = "partial"
            else:
                status = "missing"

            statuses.append(
                ProductionLineStatus(
                    order_line_id=line.id,
                    article_id=line.article_id,
                    ordered=ordered,
                    delivered=delivered,
                    reserved=reserved,
                    to_pick=to_pick,
                    to_produce=to_produce,
                    status=status,
                )
            )

        results.append(
            OrderProductionStatus(
                order_id=order.id,
                order_code=order.code,
                status=_order_status(statuses),
                lines=statuses,
            )
        )
    return results
