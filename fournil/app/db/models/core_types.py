import enum


class OrderStatus(str, enum.Enum):
    draft = "draft"
    confirmed = "confirmed"
    partially_delivered = "partially_delivered"
    delivered = "delivered"
    cancelled = "cancelled"


class DeliveryStatus(str, enum.Enum):
    draft = "draft"
    reserved = "reserved"
    validated = "validated"
    cancelled_before = "cancelled_before"
    cancelled_after_returned = "cancelled_after_returned"
    cancelled_after_wasted = "cancelled_after_wasted"


class ReservationStatus(str, enum.Enum):
    reserved = "reserved"
    partially_delivered = "partially_delivered"
    delivered = "delivered"
    cancelled = "cancelled"


class OperationType(str, enum.Enum):
    delivery = "delivery"
    return_delivery = "return_delivery"
    waste_delivery = "waste_delivery"
    reception = "reception"
    adjustment = "adjustment"
    production = "production"


# Préfixes des codes d'opération (LIV-000001, RETL-000002, ...)
OPERATION_CODE_PREFIXES = {
    OperationType.delivery: "LIV",
    OperationType.return_delivery: "RETL",
    OperationType.waste_delivery: "REBL",
    OperationType.reception: "REC",
    OperationType.adjustment: "AJU",
    OperationType.production: "FAB",
}

# Le rebut est tracé mais ne touche pas au stock (déjà sorti à la validation)
OPERATION_TYPES_WITHOUT_STOCK_EFFECT = frozenset({OperationType.waste_delivery})

ACTIVE_RESERVATION_STATUSES = frozenset({ReservationStatus.reserved, ReservationStatus.partially_delivered})
TERMINAL_RESERVATION_STATUSES = frozenset({ReservationStatus.delivered, ReservationStatus.cancelled})

# Seule autorité sur les transitions légales d'une livraison
DELIVERY_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.draft: frozenset({DeliveryStatus.reserved}),
    DeliveryStatus.reserved: frozenset({DeliveryStatus.validated, DeliveryStatus.cancelled_before}),
    DeliveryStatus.validated: frozenset(
        {DeliveryStatus.cancelled_after_returned, DeliveryStatus.cancelled_after_wasted}
    ),
    DeliveryStatus.cancelled_before: frozenset(),
    DeliveryStatus.cancelled_after_returned: frozenset(),
    DeliveryStatus.cancelled_after_wasted: frozenset(),
}

# Livraisons qui acceptent encore des réservations
RESERVABLE_DELIVERY_STATUSES = frozenset({DeliveryStatus.draft, DeliveryStatus.reserved})

# Livraisons dont les quantités ne comptent plus comme livrées à la commande
RELEASED_DELIVERY_STATUSES = frozenset(
    {
        DeliveryStatus.cancelled_before,
        DeliveryStatus.cancelled_after_returned,
        DeliveryStatus.cancelled_after_wasted,
    }
)
