"""Fabriques de données de test (zones, articles, lots, commandes, stock)."""

import itertools
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from fournil.app.db.base import Base
from fournil.app.db.models.core_types import OperationType
from fournil.app.db.models.models_v1 import (
    Article,
    Lot,
    Order,
    OrderLine,
    Recipe,
    RecipeIngredient,
    StorageZone,
)
from fournil.app.db.session import unit_of_work
from fournil.services.inventory_operations import OperationLineRequest, post_operation


def make_engine(url: str = "sqlite://"):
    if url == "sqlite://":
        engine = create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    else:
        engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 5})
    Base.metadata.create_all(bind=engine)
    return engine


class Bakery:
    _seq = itertools.count(1)

    def __init__(self, db: Session):
        self.db = db

    def _code(self, prefix: str) -> str:
        return f"{prefix}-{next(self._seq):06d}"

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def zone(self, designation: str = "Chambre froide") -> StorageZone:
        return self._save(StorageZone(code=self._code("ZON"), designation=designation))

    def article(
        self,
        name: str = "Croissant",
        *,
        perishable: bool = False,
        stock_managed: bool = True,
        unit: str = "pcs",
    ) -> Article:
        return self._save(
            Article(
                code=self._code("ART"),
                name=name,
                unit=unit,
                is_perishable=perishable,
                is_stock_managed=stock_managed,
            )
        )

    def lot(self, article: Article, expires_in_days: int | None = None) -> Lot:
        expiration = date.today() + timedelta(days=expires_in_days) if expires_in_days is not None else None
        return self._save(Lot(article_id=article.id, code=self._code("LOT"), expiration_date=expiration))

    def order(self, *lines: tuple[Article, str]) -> Order:
        order = Order(code=self._code("CMD"))
        order.lines = [OrderLine(article_id=a.id, quantity_ordered=Decimal(q)) for a, q in lines]
        return self._save(order)

    def recipe(self, article: Article, yield_quantity: str, *ingredients: tuple[Article, str]) -> Recipe:
        recipe = Recipe(article_id=article.id, name=f"Recette {article.name}", yield_quantity=Decimal(yield_quantity))
        recipe.ingredients = [RecipeIngredient(article_id=a.id, quantity=Decimal(q)) for a, q in ingredients]
        return self._save(recipe)

    def receive(self, article: Article, zone: StorageZone, quantity: str, lot: Lot | None = None):
        # le stock n'entre jamais autrement que par une opération
        with unit_of_work(self.db):
            op = post_operation(
                self.db,
                OperationType.reception,
                [
                    OperationLineRequest(
                        article_id=article.id,
                        zone_id=zone.id,
                        lot_id=lot.id if lot else None,
                        quantity=Decimal(quantity),
                    )
                ],
                reason="test reception",
            )
        return op
