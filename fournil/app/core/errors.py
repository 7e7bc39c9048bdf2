"""
Taxonomie d'erreurs du moteur de réservation / livraison.

Toutes les erreurs métier sont levées AVANT toute écriture ; l'appelant
(unit_of_work) fait le rollback. Chaque erreur porte un `kind` stable et un
message lisible, exposés tels quels par l'API.
"""

from __future__ import annotations

from decimal import Decimal


class FulfillmentError(Exception):
    kind = "fulfillment_error"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class InsufficientStockError(FulfillmentError):
    kind = "insufficient_stock"
    status_code = 409

    def __init__(
        self,
        article_id: int,
        requested: Decimal,
        available: Decimal,
        *,
        lot_id: int | None = None,
        zone_id: int | None = None,
    ):
        self.article_id = article_id
        self.requested = requested
        self.available = available
        self.lot_id = lot_id
        self.zone_id = zone_id
        where = ""
        if zone_id is not None:
            where = f" (zone={zone_id}, lot={lot_id if lot_id is not None else 'none'})"
        super().__init__(
            f"Insufficient stock for article {article_id}{where}: "
            f"requested={requested}, available={available}"
        )


class OverDeliveryError(FulfillmentError):
    kind = "over_delivery"
    status_code = 422


class InvalidSplitError(FulfillmentError):
    kind = "invalid_split"
    status_code = 422


class InvalidStateTransitionError(FulfillmentError):
    kind = "invalid_state_transition"
    status_code = 409

    def __init__(self, entity: str, entity_id: int | None, current: str, target: str):
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.target = target
        super().__init__(f"{entity} {entity_id}: transition {current} -> {target} is not allowed")


class NotFoundError(FulfillmentError):
    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: int):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class StorageError(FulfillmentError):
    """Échec inattendu de la couche stockage ; la transaction a été annulée, l'appelant peut réessayer."""

    kind = "storage_error"
    status_code = 503


class ImmutableRecordError(FulfillmentError):
    kind = "immutable_record"
    status_code = 409

    def __init__(self, entity: str, entity_id: int | None, reason: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} is immutable: {reason}")


class InvalidOperationError(FulfillmentError):
    """Requête incohérente (ligne vide, quantité nulle, ligne d'une autre commande...)."""

    kind = "invalid_operation"
    status_code = 422
