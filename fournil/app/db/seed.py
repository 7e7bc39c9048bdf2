from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select

from fournil.app.db.models.core_types import OperationType, OrderStatus
from fournil.app.db.models.models_v1 import (
    Article,
    Lot,
    Order,
    OrderLine,
    Recipe,
    RecipeIngredient,
    StorageZone,
)
from fournil.app.db.session import SessionLocal, unit_of_work
from fournil.services.inventory_operations import OperationLineRequest, post_operation


def run_seed():
    db = SessionLocal()
    try:
        if db.scalar(select(StorageZone).where(StorageZone.code == "ZON-000001")):
            print("SEED SKIPPED: already seeded")
            return

        today = date.today()
        with unit_of_work(db):
            # 1) Zones : chambre froide + réserve sèche
            cold = StorageZone(code="ZON-000001", designation="Chambre froide")
            dry = StorageZone(code="ZON-000002", designation="Réserve sèche")
            db.add_all([cold, dry])

            # 2) Articles
            croissant = Article(code="ART-CROISSANT", name="Croissant", unit="pcs", is_perishable=True)
            flour = Article(code="ART-FARINE-T65", name="Farine T65", unit="kg")
            butter = Article(code="ART-BEURRE", name="Beurre AOP", unit="kg", is_perishable=True)
            db.add_all([croissant, flour, butter])
            db.flush()

            # 3) Lots (DLC courtes pour la viennoiserie)
            lot_a = Lot(article_id=croissant.id, code="LOT-CRO-A", expiration_date=today + timedelta(days=1))
            lot_b = Lot(article_id=croissant.id, code="LOT-CRO-B", expiration_date=today + timedelta(days=2))
            lot_butter = Lot(article_id=butter.id, code="LOT-BEU-1", expiration_date=today + timedelta(days=20))
            db.add_all([lot_a, lot_b, lot_butter])

            # 4) Recette : 60 croissants = 10 kg farine + 5 kg beurre
            recipe = Recipe(article_id=croissant.id, name="Croissant pur beurre", yield_quantity=Decimal("60"))
            recipe.ingredients = [
                RecipeIngredient(article_id=flour.id, quantity=Decimal("10")),
                RecipeIngredient(article_id=butter.id, quantity=Decimal("5")),
            ]
            db.add(recipe)

            # 5) Commande client
            order = Order(code="CMD-000001", status=OrderStatus.confirmed)
            order.lines = [OrderLine(article_id=croissant.id, quantity_ordered=Decimal("25"))]
            db.add(order)
            db.flush()

            # 6) Stock initial : toujours via une opération de réception
            post_operation(
                db,
                OperationType.reception,
                [
                    OperationLineRequest(article_id=croissant.id, zone_id=cold.id, lot_id=lot_a.id, quantity=Decimal("20")),
                    OperationLineRequest(article_id=croissant.id, zone_id=cold.id, lot_id=lot_b.id, quantity=Decimal("15")),
                    OperationLineRequest(article_id=flour.id, zone_id=dry.id, quantity=Decimal("50")),
                    OperationLineRequest(article_id=butter.id, zone_id=cold.id, lot_id=lot_butter.id, quantity=Decimal("8")),
                ],
                reason="Stock initial",
            )

        print("SEED OK: zones=2, articles=3, order=CMD-000001")
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
