from decimal import Decimal

import pytest

from fournil.app.core.errors import InsufficientStockError
from fournil.app.db.models.models_v1 import StockLine
from fournil.services.inventory import (
    apply_delta,
    get_quantity,
    get_total_stock,
    lock_article_stock,
)


def test_apply_delta_creates_line_lazily(db_session, bakery):
    zone = bakery.zone()
    flour = bakery.article("Farine T65", unit="kg")

    assert get_quantity(db_session, flour.id, None, zone.id) == Decimal("0")

    new_qty = apply_delta(db_session, flour.id, None, zone.id, Decimal("12.5"))
    db_session.commit()

    assert new_qty == Decimal("12.500")
    assert get_quantity(db_session, flour.id, None, zone.id) == Decimal("12.500")
    assert db_session.query(StockLine).count() == 1


def test_apply_delta_refuses_negative_and_leaves_line_unchanged(db_session, bakery):
    zone = bakery.zone()
    butter = bakery.article("Beurre", unit="kg")
    bakery.receive(butter, zone, "3")

    with pytest.raises(InsufficientStockError) as exc:
        apply_delta(db_session, butter.id, None, zone.id, Decimal("-4"))
    db_session.rollback()

    assert exc.value.available == Decimal("3.000")
    assert exc.value.requested == Decimal("4.000")
    assert get_quantity(db_session, butter.id, None, zone.id) == Decimal("3.000")


def test_null_lot_is_a_distinct_key(db_session, bakery):
    zone = bakery.zone()
    croissant = bakery.article(perishable=True)
    lot = bakery.lot(croissant, expires_in_days=2)

    bakery.receive(croissant, zone, "10")
    bakery.receive(croissant, zone, "4", lot=lot)

    assert get_quantity(db_session, croissant.id, None, zone.id) == Decimal("10.000")
    assert get_quantity(db_session, croissant.id, lot.id, zone.id) == Decimal("4.000")
    assert get_total_stock(db_session, croissant.id) == Decimal("14.000")


def test_lock_article_stock_bumps_versions(db_session, bakery):
    z1, z2 = bakery.zone("Z1"), bakery.zone("Z2")
    baguette = bakery.article("Baguette")
    bakery.receive(baguette, z1, "5")
    bakery.receive(baguette, z2, "5")

    before = {sl.id: sl.version for sl in db_session.query(StockLine).all()}
    rows = lock_article_stock(db_session, baguette.id)
    db_session.commit()

    assert [r.id for r in rows] == sorted(before)
    for sl in db_session.query(StockLine).all():
        assert sl.version == before[sl.id] + 1
