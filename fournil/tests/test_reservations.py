from datetime import timedelta
from decimal import Decimal

import pytest

from fournil.app.core.config import settings
from fournil.app.core.errors import (
    InsufficientStockError,
    InvalidOperationError,
    InvalidStateTransitionError,
    NotFoundError,
    OverDeliveryError,
)
from fournil.app.db.models.core_types import DeliveryStatus, ReservationStatus
from fournil.app.db.models.models_v1 import Delivery, StockReservation, utcnow
from fournil.app.db.session import unit_of_work
from fournil.services.availability import get_availability
from fournil.services.deliveries import (
    DeliveryLineRequest,
    create_delivery,
    get_delivery,
    release_expired_reservations,
    validate_delivery,
)
from fournil.services.reservations import (
    ReservationRequest,
    cancel_reservations,
    create_reservations,
    list_reservations,
    mark_delivered,
)


@pytest.fixture
def draft_delivery(db_session, bakery):
    zone = bakery.zone()
    article = bakery.article("Baguette")
    bakery.receive(article, zone, "8")
    order = bakery.order((article, "20"))
    delivery = Delivery(order_id=order.id, status=DeliveryStatus.draft)
    db_session.add(delivery)
    db_session.commit()
    return delivery, order.lines[0], article, zone


def test_insufficient_stock_creates_nothing(db_session, draft_delivery):
    delivery, line, article, zone = draft_delivery
    before = get_availability(db_session, article.id).summary

    with pytest.raises(InsufficientStockError):
        with unit_of_work(db_session):
            create_reservations(
                db_session,
                delivery.id,
                [ReservationRequest(order_line_id=line.id, article_id=article.id, quantity=Decimal("10"), zone_id=zone.id)],
            )

    assert db_session.query(StockReservation).count() == 0
    assert get_availability(db_session, article.id).summary == before


def test_batch_is_checked_cumulatively(db_session, draft_delivery):
    delivery, line, article, zone = draft_delivery
    lines = [
        ReservationRequest(order_line_id=line.id, article_id=article.id, quantity=Decimal("5"), zone_id=zone.id),
        ReservationRequest(order_line_id=line.id, article_id=article.id, quantity=Decimal("5"), zone_id=zone.id),
    ]

    with pytest.raises(InsufficientStockError):
        with unit_of_work(db_session):
            create_reservations(db_session, delivery.id, lines)

    assert list_reservations(db_session, delivery_id=delivery.id) == []


def test_reservation_without_zone_blocks_article_total(db_session, draft_delivery):
    delivery, line, article, _ = draft_delivery

    with unit_of_work(db_session):
        create_reservations(
            db_session,
            delivery.id,
            [ReservationRequest(order_line_id=line.id, article_id=article.id, quantity=Decimal("6"))],
        )

    summary = get_availability(db_session, article.id).summary
    assert summary.total_reserved == Decimal("6.000")
    assert summary.total_available == Decimal("2.000")


def test_cancel_reservations_is_idempotent(db_session, draft_delivery):
    delivery, line, article, zone = draft_delivery
    with unit_of_work(db_session):
        create_reservations(
            db_session,
            delivery.id,
            [ReservationRequest(order_line_id=line.id, article_id=article.id, quantity=Decimal("8"), zone_id=zone.id)],
        )

    with unit_of_work(db_session):
        first = cancel_reservations(db_session, delivery.id)
    with unit_of_work(db_session):
        second = cancel_reservations(db_session, delivery.id)

    assert len(first) == 1 and second == []
    assert get_availability(db_session, article.id).summary.total_available == Decimal("8.000")


def test_mark_delivered_partial_then_full(db_session, draft_delivery):
    delivery, line, article, zone = draft_delivery
    with unit_of_work(db_session):
        (r,) = create_reservations(
            db_session,
            delivery.id,
            [ReservationRequest(order_line_id=line.id, article_id=article.id, quantity=Decimal("5"), zone_id=zone.id)],
        )

    with unit_of_work(db_session):
        mark_delivered(db_session, r.id, Decimal("2"))
    assert r.status == ReservationStatus.partially_delivered

    with pytest.raises(OverDeliveryError):
        with unit_of_work(db_session):
            mark_delivered(db_session, r.id, Decimal("4"))

    with unit_of_work(db_session):
        mark_delivered(db_session, r.id, Decimal("3"))
    assert r.status == ReservationStatus.delivered
    assert r.delivered_quantity == r.reserved_quantity

    with pytest.raises(InvalidStateTransitionError):
        mark_delivered(db_session, r.id, Decimal("1"))


def test_default_expiry_comes_from_settings(db_session, draft_delivery, monkeypatch):
    delivery, line, article, zone = draft_delivery
    monkeypatch.setattr(settings, "reservation_ttl_minutes", 30)

    with unit_of_work(db_session):
        (r,) = create_reservations(
            db_session,
            delivery.id,
            [ReservationRequest(order_line_id=line.id, article_id=article.id, quantity=Decimal("1"), zone_id=zone.id)],
        )

    assert r.expires_at is not None


def test_release_expired_cancels_whole_delivery(db_session, bakery, monkeypatch):
    zone = bakery.zone()
    article = bakery.article("Baguette")
    bakery.receive(article, zone, "10")
    order = bakery.order((article, "10"))
    monkeypatch.setattr(settings, "reservation_ttl_minutes", 15)

    delivery = create_delivery(
        db_session, order.id, [DeliveryLineRequest(order_line_id=order.lines[0].id, quantity=Decimal("10"))]
    )
    assert get_availability(db_session, article.id).summary.total_available == Decimal("0.000")

    assert release_expired_reservations(db_session, now=utcnow()) == []

    released = release_expired_reservations(db_session, now=utcnow() + timedelta(hours=1))

    assert released == [delivery.id]
    reloaded = get_delivery(db_session, delivery.id)
    assert reloaded.status == DeliveryStatus.cancelled_before
    assert reloaded.cancellation_reason == "reservation expired"
    assert get_availability(db_session, article.id).summary.total_available == Decimal("10.000")


def test_closed_delivery_accepts_no_reservation(db_session, bakery):
    zone = bakery.zone()
    article = bakery.article("Baguette")
    bakery.receive(article, zone, "10")
    order = bakery.order((article, "20"))
    line = order.lines[0]
    delivery = create_delivery(db_session, order.id, [DeliveryLineRequest(order_line_id=line.id, quantity=Decimal("4"))])
    validate_delivery(db_session, delivery.id)

    with pytest.raises(InvalidStateTransitionError):
        with unit_of_work(db_session):
            create_reservations(
                db_session,
                delivery.id,
                [ReservationRequest(order_line_id=line.id, article_id=article.id, quantity=Decimal("6"), zone_id=zone.id)],
            )

    assert get_availability(db_session, article.id).summary.total_reserved == Decimal("0.000")


def test_reserved_delivery_needs_a_zone_per_line(db_session, bakery):
    zone = bakery.zone()
    article = bakery.article("Baguette")
    bakery.receive(article, zone, "10")
    order = bakery.order((article, "20"))
    line = order.lines[0]
    delivery = create_delivery(db_session, order.id, [DeliveryLineRequest(order_line_id=line.id, quantity=Decimal("4"))])

    with pytest.raises(InvalidOperationError):
        with unit_of_work(db_session):
            create_reservations(
                db_session,
                delivery.id,
                [ReservationRequest(order_line_id=line.id, article_id=article.id, quantity=Decimal("2"))],
            )

    with unit_of_work(db_session):
        (extra,) = create_reservations(
            db_session,
            delivery.id,
            [ReservationRequest(order_line_id=line.id, article_id=article.id, quantity=Decimal("2"), zone_id=zone.id)],
        )
    assert extra.zone_id == zone.id
    assert validate_delivery(db_session, delivery.id).status == DeliveryStatus.validated


def test_order_line_is_resolved_against_the_delivery(db_session, bakery, draft_delivery):
    delivery, line, article, zone = draft_delivery
    other_order = bakery.order((article, "5"))
    croissant = bakery.article("Croissant")

    def reserve(**overrides):
        request = dict(order_line_id=line.id, article_id=article.id, quantity=Decimal("1"), zone_id=zone.id)
        request.update(overrides)
        with unit_of_work(db_session):
            create_reservations(db_session, delivery.id, [ReservationRequest(**request)])

    with pytest.raises(NotFoundError):
        reserve(order_line_id=999999)
    with pytest.raises(InvalidOperationError):
        reserve(order_line_id=other_order.lines[0].id)
    with pytest.raises(InvalidOperationError):
        reserve(article_id=croissant.id)

    assert list_reservations(db_session, delivery_id=delivery.id) == []


def test_reservations_stay_within_remaining_ordered_quantity(db_session, bakery):
    zone = bakery.zone()
    article = bakery.article("Baguette")
    bakery.receive(article, zone, "30")
    order = bakery.order((article, "10"))
    line = order.lines[0]
    delivery = create_delivery(db_session, order.id, [DeliveryLineRequest(order_line_id=line.id, quantity=Decimal("7"))])

    with pytest.raises(OverDeliveryError):
        with unit_of_work(db_session):
            create_reservations(
                db_session,
                delivery.id,
                [ReservationRequest(order_line_id=line.id, article_id=article.id, quantity=Decimal("4"), zone_id=zone.id)],
            )

    assert get_availability(db_session, article.id).summary.total_reserved == Decimal("7.000")
