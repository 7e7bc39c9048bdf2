"""
Collaborateurs externes (catalogue, commandes, recettes).

Le moteur lit ces référentiels mais ne les modifie jamais.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from fournil.app.core.errors import NotFoundError
from fournil.app.db.models.models_v1 import (
    Article,
    Lot,
    Order,
    OrderLine,
    Recipe,
    StorageZone,
)


def _get_or_404(db: Session, model, entity_id: int):
    obj = db.get(model, entity_id)
    if obj is None:
        raise NotFoundError(model.__name__, entity_id)
    return obj


def get_article(db: Session, article_id: int) -> Article:
    return _get_or_404(db, Article, article_id)


def get_lot(db: Session, lot_id: int) -> Lot:
    return _get_or_404(db, Lot, lot_id)


def get_zone(db: Session, zone_id: int) -> StorageZone:
    return _get_or_404(db, StorageZone, zone_id)


def get_order(db: Session, order_id: int) -> Order:
    return _get_or_404(db, Order, order_id)


def get_order_line(db: Session, order_line_id: int) -> OrderLine:
    return _get_or_404(db, OrderLine, order_line_id)


def get_recipe(db: Session, recipe_id: int) -> Recipe:
    return _get_or_404(db, Recipe, recipe_id)
