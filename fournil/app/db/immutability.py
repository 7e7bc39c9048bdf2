"""
Garde ORM d'immutabilité.

- InventoryOperation / InventoryOperationLine : immuables dès qu'elles sont
  postées (les corrections sont de NOUVELLES opérations, liées par
  parent_operation_id).
- StockReservation : une réservation `delivered` ou `cancelled` est figée.

Les listeners tournent avant l'envoi du SQL : la transaction est annulée et
la base n'est jamais modifiée.
"""

from __future__ import annotations

import logging

from sqlalchemy import event, inspect
from sqlalchemy.orm import object_session

from fournil.app.core.errors import ImmutableRecordError
from fournil.app.db.models.core_types import TERMINAL_RESERVATION_STATUSES
from fournil.app.db.models.models_v1 import (
    InventoryOperation,
    InventoryOperationLine,
    StockReservation,
)

logger = logging.getLogger(__name__)


def _has_column_changes(target) -> bool:
    session = object_session(target)
    return session is not None and session.is_modified(target, include_collections=False)


def _changed_attributes(target) -> set[str]:
    state = inspect(target)
    return {attr.key for attr in state.attrs if attr.history.has_changes()}


def _is_code_assignment(target) -> bool:
    # le code traçable est attribué juste après le premier flush (il dépend de l'id)
    if not isinstance(target, InventoryOperation):
        return False
    if _changed_attributes(target) - {"code", "lines", "parent"} != set():
        return False
    history = inspect(target).attrs.code.history
    return not history.deleted or history.deleted[0] is None


def _block_operation_update(mapper, connection, target):
    if not _has_column_changes(target) or _is_code_assignment(target):
        return
    entity = type(target).__name__
    logger.error("immutability violation blocked: UPDATE %s id=%s", entity, target.id)
    raise ImmutableRecordError(entity, target.id, "posted inventory operations cannot be modified")


def _block_operation_delete(mapper, connection, target):
    entity = type(target).__name__
    logger.error("immutability violation blocked: DELETE %s id=%s", entity, target.id)
    raise ImmutableRecordError(entity, target.id, "posted inventory operations cannot be deleted")


def _check_reservation_update(mapper, connection, target):
    if not _has_column_changes(target):
        return
    history = inspect(target).attrs.status.history
    previous = history.deleted[0] if history.deleted else target.status
    if previous in TERMINAL_RESERVATION_STATUSES:
        logger.error("immutability violation blocked: UPDATE StockReservation id=%s (%s)", target.id, previous)
        raise ImmutableRecordError("StockReservation", target.id, f"reservation is {previous.value}")


def _block_reservation_delete(mapper, connection, target):
    raise ImmutableRecordError("StockReservation", target.id, "reservations are retained for audit")


_LISTENERS = (
    (InventoryOperation, "before_update", _block_operation_update),
    (InventoryOperation, "before_delete", _block_operation_delete),
    (InventoryOperationLine, "before_update", _block_operation_update),
    (InventoryOperationLine, "before_delete", _block_operation_delete),
    (StockReservation, "before_update", _check_reservation_update),
    (StockReservation, "before_delete", _block_reservation_delete),
)


def register_immutability_listeners() -> None:
    """Idempotent : peut être appelé plusieurs fois (app, tests, scripts)."""
    for model, identifier, fn in _LISTENERS:
        if not event.contains(model, identifier, fn):
            event.listen(model, identifier, fn)
