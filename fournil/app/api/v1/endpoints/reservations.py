from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from fournil.app.api.deps import get_db
from fournil.app.db.session import unit_of_work
from fournil.app.schemas.reservation import ReservationRead
from fournil.services.deliveries import release_expired_reservations
from fournil.services.reservations import ReservationRequest, create_reservations, list_reservations

router = APIRouter(prefix="/reservations")


class ReservationLineCreate(BaseModel):
    order_line_id: int
    article_id: int
    quantity: Decimal = Field(gt=0)
    lot_id: int | None = None
    zone_id: int | None = None


class ReservationBatchCreate(BaseModel):
    delivery_id: int
    lines: list[ReservationLineCreate] = Field(min_length=1)
    expires_at: datetime | None = None


class ReleaseExpired(BaseModel):
    now: datetime | None = None


@router.get("", response_model=list[ReservationRead])
def get_reservations(
    delivery_id: int | None = None,
    article_id: int | None = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
):
    return list_reservations(db, delivery_id=delivery_id, article_id=article_id, active_only=active_only)


@router.post("", response_model=list[ReservationRead], status_code=201)
def post_reservations(payload: ReservationBatchCreate, db: Session = Depends(get_db)):
    """
    Réservation en lot, tout ou rien.
    - disponibilité re-validée sous verrou
    - 409 insufficient_stock si une seule ligne ne passe pas
    """
    with unit_of_work(db):
        rows = create_reservations(
            db,
            payload.delivery_id,
            [ReservationRequest(**line.model_dump()) for line in payload.lines],
            expires_at=payload.expires_at,
        )
        ids = [r.id for r in rows]
    return [r for r in list_reservations(db, delivery_id=payload.delivery_id) if r.id in ids]


@router.post("/release-expired")
def post_release_expired(payload: ReleaseExpired | None = None, db: Session = Depends(get_db)):
    now = payload.now if payload else None
    released = release_expired_reservations(db, now=now)
    return {"released_delivery_ids": released}
