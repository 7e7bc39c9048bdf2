"""
Calcul de disponibilité : stock physique - réservations actives.

Lecture non verrouillée (peut être périmée) ; les écrivains re-valident
sous verrou (voir reservations.create_reservations).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from fournil.app.db.models.core_types import ACTIVE_RESERVATION_STATUSES
from fournil.app.db.models.models_v1 import Lot, StockLine, StockReservation
from fournil.services import catalog
from fournil.services.quantities import ZERO, to_quantity


@dataclass(frozen=True)
class AvailabilityBucket:
    lot_id: int | None
    lot_code: str | None
    expiration_date: date | None
    zone_id: int
    on_hand: Decimal
    reserved: Decimal
    available: Decimal

    @property
    def key(self) -> tuple[int | None, int]:
        return (self.lot_id, self.zone_id)


@dataclass(frozen=True)
class AvailabilitySummary:
    total_stock: Decimal
    total_reserved: Decimal
    total_available: Decimal
    requires_lot_selection: bool
    requires_zone_selection: bool
    can_direct_delivery: bool


@dataclass(frozen=True)
class ArticleAvailability:
    article_id: int
    unit: str
    is_perishable: bool
    buckets: list[AvailabilityBucket]
    summary: AvailabilitySummary

    def bucket(self, lot_id: int | None, zone_id: int) -> AvailabilityBucket | None:
        for b in self.buckets:
            if b.lot_id == lot_id and b.zone_id == zone_id:
                return b
        return None


@dataclass(frozen=True)
class StockCheck:
    has_enough: bool
    available_stock: Decimal
    shortfall: Decimal


@dataclass(frozen=True)
class MissingIngredient:
    article_id: int
    article_name: str
    required_quantity: Decimal
    available_stock: Decimal
    shortfall: Decimal


@dataclass(frozen=True)
class RecipeAvailability:
    available: bool
    missing_ingredients: list[MissingIngredient] = field(default_factory=list)
    total_reserved: Decimal = ZERO


def bucket_sort_key(lot_id: int | None, zone_id: int) -> tuple:
    # "sans lot" avant les lots numérotés
    return (lot_id is not None, lot_id or 0, zone_id)


def _active_reservations(db: Session, article_id: int) -> list[StockReservation]:
    stmt = (
        select(StockReservation)
        .where(StockReservation.article_id == article_id)
        .where(StockReservation.status.in_(ACTIVE_RESERVATION_STATUSES))
        .execution_options(populate_existing=True)
    )
    return list(db.execute(stmt).scalars().all())


def get_availability(db: Session, article_id: int) -> ArticleAvailability:
    article = catalog.get_article(db, article_id)

    rows = db.execute(
        select(StockLine, Lot.code, Lot.expiration_date)
        .outerjoin(Lot, Lot.id == StockLine.lot_id)
        .where(StockLine.article_id == article_id)
        .execution_options(populate_existing=True)
    ).all()

    on_hand: dict[tuple, Decimal] = {}
    lot_info: dict[int | None, tuple[str | None, date | None]] = {None: (None, None)}
    for sl, lot_code, expiration_date in rows:
        on_hand[(sl.lot_id, sl.zone_id)] = to_quantity(sl.quantity)
        if sl.lot_id is not None:
            lot_info[sl.lot_id] = (lot_code, expiration_date)

    reserved: dict[tuple, Decimal] = {}
    total_reserved = ZERO
    for r in _active_reservations(db, article_id):
        remainder = to_quantity(r.reserved_quantity) - to_quantity(r.delivered_quantity)
        total_reserved += remainder
        if r.zone_id is None:
            continue
        key = (r.lot_id, r.zone_id)
        reserved[key] = reserved.get(key, ZERO) + remainder
        if r.lot_id is not None and r.lot_id not in lot_info:
            lot = r.lot
            lot_info[r.lot_id] = (lot.code, lot.expiration_date) if lot else (None, None)

    buckets: list[AvailabilityBucket] = []
    for key in sorted(set(on_hand) | set(reserved), key=lambda k: bucket_sort_key(*k)):
        qty = on_hand.get(key, ZERO)
        res = reserved.get(key, ZERO)
        if qty == 0 and res == 0:
            continue
        lot_code, expiration_date = lot_info.get(key[0], (None, None))
        buckets.append(
            AvailabilityBucket(
                lot_id=key[0],
                lot_code=lot_code,
                expiration_date=expiration_date,
                zone_id=key[1],
                on_hand=qty,
                reserved=res,
                available=max(qty - res, ZERO),
            )
        )

    total_stock = sum((b.on_hand for b in buckets), ZERO)
    stocked = [b for b in buckets if b.on_hand > 0]
    summary = AvailabilitySummary(
        total_stock=total_stock,
        total_reserved=total_reserved,
        total_available=max(total_stock - total_reserved, ZERO),
        requires_lot_selection=article.is_perishable and len({b.lot_id for b in stocked}) > 1,
        requires_zone_selection=len({b.zone_id for b in stocked}) > 1,
        can_direct_delivery=len(stocked) == 1,
    )
    return ArticleAvailability(
        article_id=article.id,
        unit=article.unit,
        is_perishable=article.is_perishable,
        buckets=buckets,
        summary=summary,
    )


def has_enough_available_stock(db: Session, article_id: int, required) -> StockCheck:
    required = to_quantity(required)
    available = get_availability(db, article_id).summary.total_available
    return StockCheck(
        has_enough=available >= required,
        available_stock=available,
        shortfall=max(required - available, ZERO),
    )


def check_recipe_ingredients(db: Session, recipe_id: int, planned_quantity) -> RecipeAvailability:
    """
    Vérifie en une passe tous les ingrédients d'une recette pour une production.
    Quantité requise = quantité ingrédient x (planifié / rendement).
    """
    recipe = catalog.get_recipe(db, recipe_id)
    planned = to_quantity(planned_quantity)
    ratio = planned / to_quantity(recipe.yield_quantity)

    missing: list[MissingIngredient] = []
    total_reserved = ZERO
    for ingredient in sorted(recipe.ingredients, key=lambda i: i.article_id):
        required = to_quantity(to_quantity(ingredient.quantity) * ratio)
        summary = get_availability(db, ingredient.article_id).summary
        total_reserved += summary.total_reserved
        if summary.total_available < required:
            missing.append(
                MissingIngredient(
                    article_id=ingredient.article_id,
                    article_name=ingredient.article.name,
                    required_quantity=required,
                    available_stock=summary.total_available,
                    shortfall=required - summary.total_available,
                )
            )

    return RecipeAvailability(
        available=not missing,
        missing_ingredients=missing,
        total_reserved=total_reserved,
    )
