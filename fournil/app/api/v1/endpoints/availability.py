from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fournil.app.api.deps import get_db
from fournil.app.schemas.availability import (
    ArticleAvailabilityRead,
    RecipeAvailabilityRead,
    StockCheckRead,
)
from fournil.services.availability import (
    check_recipe_ingredients,
    get_availability,
    has_enough_available_stock,
)

router = APIRouter()


@router.get("/articles/{article_id}/availability", response_model=ArticleAvailabilityRead)
def article_availability(article_id: int, db: Session = Depends(get_db)):
    return get_availability(db, article_id)


@router.get("/articles/{article_id}/availability/check", response_model=StockCheckRead)
def article_availability_check(
    article_id: int,
    quantity: Decimal = Query(gt=0),
    db: Session = Depends(get_db),
):
    return has_enough_available_stock(db, article_id, quantity)


@router.get("/recipes/{recipe_id}/ingredients-availability", response_model=RecipeAvailabilityRead)
def recipe_ingredients_availability(
    recipe_id: int,
    planned_quantity: Decimal = Query(gt=0),
    db: Session = Depends(get_db),
):
    """Contrôle en un appel de tous les ingrédients d'une fournée planifiée."""
    return check_recipe_ingredients(db, recipe_id, planned_quantity)
