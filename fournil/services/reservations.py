"""
Réservations de stock (stock mis de côté pour une livraison).

Flush uniquement : le commit appartient à l'unité de travail de l'appelant.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from fournil.app.core.config import settings
from fournil.app.core.errors import (
    InsufficientStockError,
    InvalidOperationError,
    InvalidStateTransitionError,
    NotFoundError,
    OverDeliveryError,
)
from fournil.app.db.models.core_types import (
    ACTIVE_RESERVATION_STATUSES,
    RELEASED_DELIVERY_STATUSES,
    RESERVABLE_DELIVERY_STATUSES,
    TERMINAL_RESERVATION_STATUSES,
    DeliveryStatus,
    ReservationStatus,
)
from fournil.app.db.models.models_v1 import Delivery, DeliveryLine, OrderLine, StockReservation, utcnow
from fournil.services import catalog
from fournil.services.availability import bucket_sort_key, get_availability
from fournil.services.inventory import lock_article_stock
from fournil.services.quantities import ZERO, quantities_equal, to_quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationRequest:
    order_line_id: int
    article_id: int
    quantity: Decimal
    lot_id: int | None = None
    zone_id: int | None = None
    delivery_line_id: int | None = None


def default_expiry(now: datetime | None = None) -> datetime | None:
    if settings.reservation_ttl_minutes is None:
        return None
    return (now or utcnow()) + timedelta(minutes=settings.reservation_ttl_minutes)


def lock_delivery(db: Session, delivery_id: int) -> Delivery:
    delivery = db.execute(
        select(Delivery)
        .where(Delivery.id == delivery_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if delivery is None:
        raise NotFoundError("Delivery", delivery_id)
    return delivery


def committed_quantities(db: Session, order_line_ids: list[int]) -> dict[int, Decimal]:
    """Quantité déjà engagée par ligne de commande (réservée active + livrée)."""
    if not order_line_ids:
        return {}
    rows = db.execute(
        select(StockReservation.order_line_id, StockReservation.reserved_quantity)
        .join(Delivery, Delivery.id == StockReservation.delivery_id)
        .where(StockReservation.order_line_id.in_(order_line_ids))
        .where(StockReservation.status != ReservationStatus.cancelled)
        .where(Delivery.status.not_in(RELEASED_DELIVERY_STATUSES))
    ).all()
    committed: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for order_line_id, qty in rows:
        committed[order_line_id] += to_quantity(qty)
    return dict(committed)


def ensure_within_ordered(db: Session, order_lines: dict[int, OrderLine], requested: dict[int, Decimal]) -> None:
    committed = committed_quantities(db, sorted(order_lines))
    for ol_id, qty in requested.items():
        remaining = to_quantity(order_lines[ol_id].quantity_ordered) - committed.get(ol_id, ZERO)
        if qty > remaining:
            raise OverDeliveryError(
                f"Order line {ol_id}: requested {qty} exceeds remaining ordered quantity {remaining}"
            )


def create_reservations(
    db: Session,
    delivery_id: int,
    lines: list[ReservationRequest],
    *,
    expires_at: datetime | None = None,
) -> list[StockReservation]:
    """
    Réserve un lot de lignes, tout ou rien.

    Chaque article est verrouillé (ids croissants) puis sa disponibilité est
    recalculée sous verrou ; le contrôle est cumulatif par article et par
    bucket (lot, zone) quand il est précisé.

    La livraison est verrouillée et doit encore accepter des réservations
    (draft, ou reserved avec une zone par ligne pour rester validable).
    Chaque ligne de commande doit appartenir à la commande de la livraison,
    porter le même article, et rester dans la quantité commandée restante.
    """
    if not lines:
        return []
    delivery = lock_delivery(db, delivery_id)
    if delivery.status not in RESERVABLE_DELIVERY_STATUSES:
        raise InvalidStateTransitionError(
            "Delivery", delivery.id, delivery.status.value, DeliveryStatus.reserved.value
        )

    order_lines: dict[int, OrderLine] = {}
    per_order_line: dict[int, Decimal] = defaultdict(lambda: ZERO)
    per_article: dict[int, Decimal] = {}
    per_bucket: dict[tuple, Decimal] = {}
    for line in lines:
        qty = to_quantity(line.quantity)
        if qty <= 0:
            raise InvalidOperationError(f"Reservation quantity must be positive (article {line.article_id})")
        ol = catalog.get_order_line(db, line.order_line_id)
        if ol.order_id != delivery.order_id:
            raise InvalidOperationError(f"Order line {ol.id} does not belong to order {delivery.order_id}")
        if ol.article_id != line.article_id:
            raise InvalidOperationError(f"Order line {ol.id} is for article {ol.article_id}, not {line.article_id}")
        if line.zone_id is None and delivery.status == DeliveryStatus.reserved:
            raise InvalidOperationError(f"Delivery {delivery.id} is reserved: every reservation needs a storage zone")
        if line.delivery_line_id is not None:
            dl = db.get(DeliveryLine, line.delivery_line_id)
            if dl is None or dl.delivery_id != delivery.id:
                raise InvalidOperationError(
                    f"Delivery line {line.delivery_line_id} does not belong to delivery {delivery.id}"
                )
        order_lines[ol.id] = ol
        per_order_line[ol.id] += qty
        per_article[line.article_id] = per_article.get(line.article_id, ZERO) + qty
        if line.zone_id is not None:
            key = (line.article_id, line.lot_id, line.zone_id)
            per_bucket[key] = per_bucket.get(key, ZERO) + qty
    ensure_within_ordered(db, order_lines, per_order_line)

    for article_id in sorted(per_article):
        lock_article_stock(db, article_id)
        availability = get_availability(db, article_id)

        requested = per_article[article_id]
        if requested > availability.summary.total_available:
            logger.warning(
                "reservation refused delivery=%s article=%s requested=%s available=%s",
                delivery_id, article_id, requested, availability.summary.total_available,
            )
            raise InsufficientStockError(article_id, requested, availability.summary.total_available)

        article_buckets = sorted(
            ((k[1], k[2]) for k in per_bucket if k[0] == article_id),
            key=lambda k: bucket_sort_key(*k),
        )
        for lot_id, zone_id in article_buckets:
            qty = per_bucket[(article_id, lot_id, zone_id)]
            bucket = availability.bucket(lot_id, zone_id)
            available = bucket.available if bucket else ZERO
            if qty > available:
                logger.warning(
                    "reservation refused delivery=%s article=%s lot=%s zone=%s requested=%s available=%s",
                    delivery_id, article_id, lot_id, zone_id, qty, available,
                )
                raise InsufficientStockError(article_id, qty, available, lot_id=lot_id, zone_id=zone_id)

    if expires_at is None:
        expires_at = default_expiry()

    created: list[StockReservation] = []
    for line in lines:
        r = StockReservation(
            delivery_id=delivery_id,
            delivery_line_id=line.delivery_line_id,
            order_line_id=line.order_line_id,
            article_id=line.article_id,
            lot_id=line.lot_id,
            zone_id=line.zone_id,
            reserved_quantity=to_quantity(line.quantity),
            delivered_quantity=ZERO,
            status=ReservationStatus.reserved,
            expires_at=expires_at,
        )
        db.add(r)
        created.append(r)

    # visibles des lectures suivantes de la même transaction (autoflush=False)
    db.flush()
    logger.info("reserved %d line(s) for delivery=%s", len(created), delivery_id)
    return created


def cancel_reservations(db: Session, delivery_id: int) -> list[StockReservation]:
    """Passe les réservations non terminales en `cancelled`. Idempotent."""
    rows = db.execute(
        select(StockReservation)
        .where(StockReservation.delivery_id == delivery_id)
        .where(StockReservation.status.in_(ACTIVE_RESERVATION_STATUSES))
        .order_by(StockReservation.id)
        .with_for_update()
    ).scalars().all()

    now = utcnow()
    for r in rows:
        r.status = ReservationStatus.cancelled
        r.state_changed_at = now

    db.flush()
    if rows:
        logger.info("cancelled %d reservation(s) for delivery=%s", len(rows), delivery_id)
    return list(rows)


def mark_delivered(
    db: Session,
    reservation_id: int,
    delivered_quantity,
    operation_id: int | None = None,
) -> StockReservation:
    r = db.get(StockReservation, reservation_id)
    if r is None:
        raise NotFoundError("StockReservation", reservation_id)
    if r.status in TERMINAL_RESERVATION_STATUSES:
        raise InvalidStateTransitionError(
            "StockReservation", r.id, r.status.value, ReservationStatus.delivered.value
        )

    qty = to_quantity(delivered_quantity)
    if qty <= 0:
        raise InvalidOperationError(f"Delivered quantity must be positive (reservation {r.id})")

    reserved = to_quantity(r.reserved_quantity)
    new_delivered = to_quantity(r.delivered_quantity) + qty
    if new_delivered > reserved:
        if not quantities_equal(new_delivered, reserved):
            raise OverDeliveryError(
                f"Reservation {r.id}: delivering {new_delivered} exceeds reserved {reserved}"
            )
        new_delivered = reserved

    r.delivered_quantity = new_delivered
    r.status = (
        ReservationStatus.delivered
        if quantities_equal(new_delivered, reserved)
        else ReservationStatus.partially_delivered
    )
    r.state_changed_at = utcnow()
    if operation_id is not None:
        r.operation_id = operation_id

    db.flush()
    return r


def list_reservations(
    db: Session,
    *,
    delivery_id: int | None = None,
    article_id: int | None = None,
    active_only: bool = False,
) -> list[StockReservation]:
    stmt = select(StockReservation).order_by(StockReservation.id)
    if delivery_id is not None:
        stmt = stmt.where(StockReservation.delivery_id == delivery_id)
    if article_id is not None:
        stmt = stmt.where(StockReservation.article_id == article_id)
    if active_only:
        stmt = stmt.where(StockReservation.status.in_(ACTIVE_RESERVATION_STATUSES))
    return list(db.execute(stmt).scalars().all())
