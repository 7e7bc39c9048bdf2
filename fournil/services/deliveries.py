"""
Cycle de vie d'une livraison (BL).

    draft -> reserved -> validated -> cancelled_after_returned
                      |            -> cancelled_after_wasted
                      -> cancelled_before

Chaque opération publique est UNE unité de travail : commit si tout passe,
rollback sinon (la livraison garde son état précédent).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from fournil.app.core.errors import (
    InvalidOperationError,
    InvalidStateTransitionError,
    NotFoundError,
)
from fournil.app.db.models.core_types import (
    ACTIVE_RESERVATION_STATUSES,
    DELIVERY_TRANSITIONS,
    DeliveryStatus,
    OperationType,
    ReservationStatus,
)
from fournil.app.db.models.models_v1 import (
    Delivery,
    DeliveryLine,
    StockReservation,
    utcnow,
)
from fournil.app.db.session import unit_of_work
from fournil.services import catalog
from fournil.services.allocation import AllocationSplit, plan
from fournil.services.inventory import lock_article_stock
from fournil.services.inventory_operations import OperationLineRequest, get_operation, post_operation
from fournil.services.quantities import ZERO, to_quantity
from fournil.services.reservations import (
    ReservationRequest,
    cancel_reservations,
    create_reservations,
    ensure_within_ordered,
    lock_delivery,
    mark_delivered,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryLineRequest:
    order_line_id: int
    quantity: Decimal
    splits: list[AllocationSplit] | None = None


def ensure_transition(delivery: Delivery, target: DeliveryStatus) -> None:
    if target not in DELIVERY_TRANSITIONS[delivery.status]:
        raise InvalidStateTransitionError("Delivery", delivery.id, delivery.status.value, target.value)


def create_delivery(db: Session, order_id: int, lines: list[DeliveryLineRequest]) -> Delivery:
    with unit_of_work(db):
        catalog.get_order(db, order_id)
        if not lines:
            raise InvalidOperationError(f"Delivery for order {order_id} needs at least one line")

        order_lines = {}
        requested: dict[int, Decimal] = defaultdict(lambda: ZERO)
        for line in lines:
            ol = catalog.get_order_line(db, line.order_line_id)
            if ol.order_id != order_id:
                raise InvalidOperationError(f"Order line {ol.id} does not belong to order {order_id}")
            qty = to_quantity(line.quantity)
            if qty <= 0:
                raise InvalidOperationError(f"Order line {ol.id}: requested quantity must be positive")
            order_lines[ol.id] = ol
            requested[ol.id] += qty

        ensure_within_ordered(db, order_lines, requested)

        delivery = Delivery(order_id=order_id, status=DeliveryStatus.draft)
        db.add(delivery)
        db.flush()
        delivery.code = f"BL-{delivery.id:06d}"

        for article_id in sorted({ol.article_id for ol in order_lines.values()}):
            lock_article_stock(db, article_id)

        for line in lines:
            ol = order_lines[line.order_line_id]
            qty = to_quantity(line.quantity)
            dl = DeliveryLine(order_line_id=ol.id, article_id=ol.article_id, requested_quantity=qty)
            delivery.lines.append(dl)
            db.flush()

            splits = plan(db, ol.article_id, qty, line.splits)
            create_reservations(
                db,
                delivery.id,
                [
                    ReservationRequest(
                        order_line_id=ol.id,
                        article_id=ol.article_id,
                        quantity=s.quantity,
                        lot_id=s.lot_id,
                        zone_id=s.zone_id,
                        delivery_line_id=dl.id,
                    )
                    for s in splits
                ],
            )

        ensure_transition(delivery, DeliveryStatus.reserved)
        delivery.status = DeliveryStatus.reserved
        db.flush()

    logger.info("delivery %s created for order=%s lines=%d", delivery.code, order_id, len(lines))
    return delivery


def validate_delivery(db: Session, delivery_id: int) -> Delivery:
    with unit_of_work(db):
        delivery = lock_delivery(db, delivery_id)
        ensure_transition(delivery, DeliveryStatus.validated)

        reservations = db.execute(
            select(StockReservation)
            .where(StockReservation.delivery_id == delivery.id)
            .where(StockReservation.status.in_(ACTIVE_RESERVATION_STATUSES))
            .order_by(StockReservation.id)
            .with_for_update()
        ).scalars().all()
        if not reservations:
            raise InvalidOperationError(f"Delivery {delivery.id} has no active reservation to validate")
        for r in reservations:
            if r.zone_id is None:
                raise InvalidOperationError(f"Reservation {r.id} has no storage zone, cannot be shipped")

        for article_id in sorted({r.article_id for r in reservations}):
            lock_article_stock(db, article_id)

        remaining = {
            r.id: to_quantity(r.reserved_quantity) - to_quantity(r.delivered_quantity) for r in reservations
        }
        op = post_operation(
            db,
            OperationType.delivery,
            [
                OperationLineRequest(
                    article_id=r.article_id,
                    zone_id=r.zone_id,
                    lot_id=r.lot_id,
                    quantity=-remaining[r.id],
                    reservation_id=r.id,
                )
                for r in reservations
            ],
            delivery_id=delivery.id,
            reason=f"Delivery {delivery.code}",
        )
        for r in reservations:
            mark_delivered(db, r.id, remaining[r.id], operation_id=op.id)

        delivery.status = DeliveryStatus.validated
        delivery.is_validated = True
        delivery.validated_at = utcnow()
        delivery.operation_id = op.id
        db.flush()

    logger.info("delivery %s validated operation=%s", delivery.code, op.code)
    return delivery


def _cancel_reserved(db: Session, delivery: Delivery, reason: str) -> None:
    ensure_transition(delivery, DeliveryStatus.cancelled_before)
    cancel_reservations(db, delivery.id)
    delivery.status = DeliveryStatus.cancelled_before
    delivery.cancellation_reason = reason
    delivery.cancelled_at = utcnow()
    db.flush()


def cancel_before_validation(db: Session, delivery_id: int, reason: str) -> Delivery:
    with unit_of_work(db):
        delivery = lock_delivery(db, delivery_id)
        _cancel_reserved(db, delivery, reason)

    logger.info("delivery %s cancelled before validation: %s", delivery.code, reason)
    return delivery


def cancel_after_validation(db: Session, delivery_id: int, reason: str, is_return_to_stock: bool) -> Delivery:
    """
    Annulation d'une livraison validée.
    - retour : les quantités débitées sont recréditées (RETL)
    - rebut  : tracé (REBL) sans effet stock, la marchandise est perdue
    Les réservations restent `delivered`.
    """
    target = DeliveryStatus.cancelled_after_returned if is_return_to_stock else DeliveryStatus.cancelled_after_wasted
    op_type = OperationType.return_delivery if is_return_to_stock else OperationType.waste_delivery

    with unit_of_work(db):
        delivery = lock_delivery(db, delivery_id)
        ensure_transition(delivery, target)
        if delivery.operation_id is None:
            raise InvalidOperationError(f"Delivery {delivery.id} has no delivery operation to reverse")

        original = get_operation(db, delivery.operation_id)
        if is_return_to_stock:
            for article_id in sorted({line.article_id for line in original.lines}):
                lock_article_stock(db, article_id)

        op = post_operation(
            db,
            op_type,
            [
                OperationLineRequest(
                    article_id=line.article_id,
                    zone_id=line.zone_id,
                    lot_id=line.lot_id,
                    # retour : +quantité débitée ; rebut : sortie définitive (négatif)
                    quantity=-line.quantity if is_return_to_stock else line.quantity,
                    unit_cost=line.unit_cost,
                    reservation_id=line.reservation_id,
                )
                for line in original.lines
            ],
            parent_operation_id=original.id,
            delivery_id=delivery.id,
            reason=reason,
        )

        delivery.status = target
        delivery.cancellation_reason = reason
        delivery.cancelled_at = utcnow()
        db.flush()

    logger.info("delivery %s cancelled after validation (%s) operation=%s", delivery.code, target.value, op.code)
    return delivery


def release_expired_reservations(db: Session, now: datetime | None = None) -> list[int]:
    """
    Balayage d'expiration (appelé par un ordonnanceur externe).
    Toute livraison `reserved` ayant une réservation expirée est annulée
    avant validation ; retourne les ids des livraisons annulées.
    """
    now = now or utcnow()
    with unit_of_work(db):
        delivery_ids = db.execute(
            select(StockReservation.delivery_id)
            .join(Delivery, Delivery.id == StockReservation.delivery_id)
            .where(StockReservation.status == ReservationStatus.reserved)
            .where(StockReservation.expires_at.is_not(None))
            .where(StockReservation.expires_at <= now)
            .where(Delivery.status == DeliveryStatus.reserved)
            .distinct()
            .order_by(StockReservation.delivery_id)
        ).scalars().all()

        for delivery_id in delivery_ids:
            _cancel_reserved(db, lock_delivery(db, delivery_id), "reservation expired")

    if delivery_ids:
        logger.info("released expired reservations for %d deliveries: %s", len(delivery_ids), delivery_ids)
    return list(delivery_ids)


def get_delivery(db: Session, delivery_id: int) -> Delivery:
    delivery = db.execute(
        select(Delivery)
        .options(selectinload(Delivery.lines).selectinload(DeliveryLine.reservations))
        .where(Delivery.id == delivery_id)
    ).scalar_one_or_none()
    if delivery is None:
        raise NotFoundError("Delivery", delivery_id)
    return delivery


def list_deliveries(
    db: Session,
    *,
    order_id: int | None = None,
    status: DeliveryStatus | None = None,
) -> list[Delivery]:
    stmt = (
        select(Delivery)
        .options(selectinload(Delivery.lines).selectinload(DeliveryLine.reservations))
        .order_by(Delivery.id)
    )
    if order_id is not None:
        stmt = stmt.where(Delivery.order_id == order_id)
    if status is not None:
        stmt = stmt.where(Delivery.status == status)
    return list(db.execute(stmt).scalars().all())
