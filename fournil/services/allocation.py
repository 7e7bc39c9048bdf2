"""
Planification d'allocation : quelle quantité prendre dans quel (lot, zone).

- splits fournis par l'appelant : validés (somme exacte, disponibilité)
- sinon FEFO pour les périssables (DLC la plus proche d'abord, lots sans
  DLC en dernier), ordre des buckets sinon

Résultat déterministe pour un même état de stock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from fournil.app.core.config import settings
from fournil.app.core.errors import InsufficientStockError, InvalidSplitError
from fournil.services.availability import (
    ArticleAvailability,
    AvailabilityBucket,
    bucket_sort_key,
    get_availability,
)
from fournil.services.quantities import ZERO, to_quantity


@dataclass(frozen=True)
class AllocationSplit:
    zone_id: int
    quantity: Decimal
    lot_id: int | None = None


def _fefo_key(bucket: AvailabilityBucket) -> tuple:
    return (
        bucket.expiration_date is None,
        bucket.expiration_date or date.max,
        bucket_sort_key(bucket.lot_id, bucket.zone_id),
    )


def _validate_caller_splits(
    availability: ArticleAvailability,
    requested: Decimal,
    splits: list[AllocationSplit],
) -> list[AllocationSplit]:
    if not splits:
        raise InvalidSplitError(f"Article {availability.article_id}: at least one split is required")

    per_bucket: dict[tuple, Decimal] = {}
    total = ZERO
    for s in splits:
        qty = to_quantity(s.quantity)
        if qty <= 0:
            raise InvalidSplitError(f"Article {availability.article_id}: split quantities must be positive")
        total += qty
        key = (s.lot_id, s.zone_id)
        per_bucket[key] = per_bucket.get(key, ZERO) + qty

    if abs(total - requested) > settings.quantity_epsilon:
        raise InvalidSplitError(
            f"Article {availability.article_id}: splits sum to {total}, requested {requested}"
        )

    for (lot_id, zone_id), qty in sorted(per_bucket.items(), key=lambda kv: bucket_sort_key(*kv[0])):
        bucket = availability.bucket(lot_id, zone_id)
        available = bucket.available if bucket else ZERO
        if qty > available:
            raise InvalidSplitError(
                f"Article {availability.article_id}: split (lot={lot_id}, zone={zone_id}) "
                f"asks {qty}, only {available} available"
            )
    return list(splits)


def plan(
    db: Session,
    article_id: int,
    requested_quantity,
    caller_splits: Iterable[AllocationSplit] | None = None,
    *,
    availability: ArticleAvailability | None = None,
) -> list[AllocationSplit]:
    requested = to_quantity(requested_quantity)
    if requested <= 0:
        raise InvalidSplitError(f"Article {article_id}: requested quantity must be positive")

    if availability is None:
        availability = get_availability(db, article_id)

    if caller_splits is not None:
        return _validate_caller_splits(availability, requested, list(caller_splits))

    candidates = [b for b in availability.buckets if b.available > 0]
    if availability.is_perishable:
        candidates.sort(key=_fefo_key)
    else:
        candidates.sort(key=lambda b: bucket_sort_key(b.lot_id, b.zone_id))

    # une réservation sans zone bloque du stock sans être rattachée à un bucket
    allocatable = min(sum((b.available for b in candidates), ZERO), availability.summary.total_available)
    if allocatable < requested:
        raise InsufficientStockError(article_id, requested, allocatable)

    splits: list[AllocationSplit] = []
    remaining = requested
    for b in candidates:
        if remaining <= 0:
            break
        take = min(b.available, remaining)
        splits.append(AllocationSplit(zone_id=b.zone_id, quantity=take, lot_id=b.lot_id))
        remaining -= take
    return splits
