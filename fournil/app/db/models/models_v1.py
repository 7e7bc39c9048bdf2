from __future__ import annotations

from datetime import datetime, date, timezone
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    BigInteger,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fournil.app.db.base import Base
from fournil.app.db.models.core_types import (
    OrderStatus,
    DeliveryStatus,
    ReservationStatus,
    OperationType,
)

# Quantités : NUMERIC(12,3) partout (grammes / pièces / litres)
Quantity = Numeric(12, 3)
# Identifiants : BIGINT en prod, INTEGER sous SQLite (autoincrement)
Id = BigInteger().with_variant(Integer(), "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- CATALOGUE (référentiel, lu mais jamais modifié par le moteur) ----------
class StorageZone(Base):
    __tablename__ = "storage_zones"
    id: Mapped[int] = mapped_column(Id, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)  # ZON-000001
    designation: Mapped[str] = mapped_column(String(200), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Article(Base):
    """
    Produit ou ingrédient stockable.
    PAS de colonne "stock courant" : le total se calcule depuis stock_lines.
    """

    __tablename__ = "articles"
    id: Mapped[int] = mapped_column(Id, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(32), default="pcs", nullable=False)
    is_perishable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_stock_managed: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Lot(Base):
    __tablename__ = "lots"
    id: Mapped[int] = mapped_column(Id, primary_key=True)
    article_id: Mapped[int] = mapped_column(ForeignKey("articles.id", ondelete="RESTRICT"), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    manufacturing_date: Mapped[date | None] = mapped_column(Date)
    expiration_date: Mapped[date | None] = mapped_column(Date)  # DLC, pilote le FEFO
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    article: Mapped[Article] = relationship()


class Recipe(Base):
    __tablename__ = "recipes"
    id: Mapped[int] = mapped_column(Id, primary_key=True)
    article_id: Mapped[int] = mapped_column(ForeignKey("articles.id", ondelete="RESTRICT"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    yield_quantity: Mapped[Decimal] = mapped_column(Quantity, default=Decimal("1"), nullable=False)

    ingredients: Mapped[list["RecipeIngredient"]] = relationship(back_populates="recipe", cascade="all, delete-orphan")

    __table_args__ = (CheckConstraint("yield_quantity > 0", name="ck_recipe_yield_pos"),)


class RecipeIngredient(Base):
    __tablename__ = "recipe_ingredients"
    recipe_id: Mapped[int] = mapped_column(ForeignKey("recipes.id", ondelete="CASCADE"), primary_key=True)
    article_id: Mapped[int] = mapped_column(ForeignKey("articles.id", ondelete="RESTRICT"), primary_key=True)
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)

    recipe: Mapped[Recipe] = relationship(back_populates="ingredients")
    article: Mapped[Article] = relationship()

    __table_args__ = (CheckConstraint("quantity > 0", name="ck_recipe_ingredient_qty_pos"),)


# ---------- COMMANDES (service externe, lecture seule) ----------
class Order(Base):
    __tablename__ = "orders"
    id: Mapped[int] = mapped_column(Id, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)  # CMD-000001
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status"),
        default=OrderStatus.confirmed,
        nullable=False,
    )
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    lines: Mapped[list["OrderLine"]] = relationship(back_populates="order", cascade="all, delete-orphan")


class OrderLine(Base):
    __tablename__ = "order_lines"
    id: Mapped[int] = mapped_column(Id, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    article_id: Mapped[int] = mapped_column(ForeignKey("articles.id", ondelete="RESTRICT"), nullable=False)
    quantity_ordered: Mapped[Decimal] = mapped_column(Quantity, nullable=False)

    order: Mapped[Order] = relationship(back_populates="lines")
    article: Mapped[Article] = relationship()

    __table_args__ = (CheckConstraint("quantity_ordered > 0", name="ck_order_line_qty_pos"),)


# ---------- STOCK ----------
class StockLine(Base):
    __tablename__ = "stock_lines"
    id: Mapped[int] = mapped_column(Id, primary_key=True)
    article_id: Mapped[int] = mapped_column(ForeignKey("articles.id", ondelete="RESTRICT"), nullable=False)
    lot_id: Mapped[int | None] = mapped_column(ForeignKey("lots.id", ondelete="RESTRICT"))
    zone_id: Mapped[int] = mapped_column(ForeignKey("storage_zones.id", ondelete="RESTRICT"), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(Quantity, default=Decimal("0"), nullable=False)
    # incrémenté à chaque écriture / verrouillage (check-then-write)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    lot: Mapped[Lot | None] = relationship()

    __table_args__ = (
        # lot NULL = une clé distincte (une seule ligne "sans lot" par article/zone)
        UniqueConstraint(
            "article_id",
            "lot_id",
            "zone_id",
            name="uq_stock_line_article_lot_zone",
            postgresql_nulls_not_distinct=True,
        ),
        CheckConstraint("quantity >= 0", name="ck_stock_line_qty_nonneg"),
        Index("ix_stock_lines_article", "article_id"),
    )


# ---------- LIVRAISONS ----------
class Delivery(Base):
    __tablename__ = "deliveries"
    id: Mapped[int] = mapped_column(Id, primary_key=True)
    code: Mapped[str | None] = mapped_column(String(32), unique=True)  # BL-000001, attribué après flush
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False, index=True)
    status: Mapped[DeliveryStatus] = mapped_column(
        Enum(DeliveryStatus, name="delivery_status"),
        default=DeliveryStatus.draft,
        nullable=False,
    )
    is_validated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    validated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # opération "delivery" postée à la validation
    operation_id: Mapped[int | None] = mapped_column(ForeignKey("inventory_operations.id", ondelete="RESTRICT"))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    order: Mapped[Order] = relationship()
    lines: Mapped[list["DeliveryLine"]] = relationship(
        back_populates="delivery",
        cascade="all, delete-orphan",
        order_by="DeliveryLine.id",
    )
    reservations: Mapped[list["StockReservation"]] = relationship(
        back_populates="delivery",
        order_by="StockReservation.id",
    )


class DeliveryLine(Base):
    __tablename__ = "delivery_lines"
    id: Mapped[int] = mapped_column(Id, primary_key=True)
    delivery_id: Mapped[int] = mapped_column(ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False, index=True)
    order_line_id: Mapped[int] = mapped_column(ForeignKey("order_lines.id", ondelete="RESTRICT"), nullable=False)
    article_id: Mapped[int] = mapped_column(ForeignKey("articles.id", ondelete="RESTRICT"), nullable=False)
    requested_quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)

    delivery: Mapped[Delivery] = relationship(back_populates="lines")
    # splits résolus = réservations de la ligne
    reservations: Mapped[list["StockReservation"]] = relationship(
        back_populates="delivery_line",
        order_by="StockReservation.id",
    )

    __table_args__ = (CheckConstraint("requested_quantity > 0", name="ck_delivery_line_qty_pos"),)


class StockReservation(Base):
    __tablename__ = "stock_reservations"
    id: Mapped[int] = mapped_column(Id, primary_key=True)
    delivery_id: Mapped[int] = mapped_column(ForeignKey("deliveries.id", ondelete="RESTRICT"), nullable=False, index=True)
    delivery_line_id: Mapped[int | None] = mapped_column(ForeignKey("delivery_lines.id", ondelete="RESTRICT"))
    order_line_id: Mapped[int] = mapped_column(ForeignKey("order_lines.id", ondelete="RESTRICT"), nullable=False)
    article_id: Mapped[int] = mapped_column(ForeignKey("articles.id", ondelete="RESTRICT"), nullable=False)
    lot_id: Mapped[int | None] = mapped_column(ForeignKey("lots.id", ondelete="RESTRICT"))
    zone_id: Mapped[int | None] = mapped_column(ForeignKey("storage_zones.id", ondelete="RESTRICT"))

    reserved_quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    delivered_quantity: Mapped[Decimal] = mapped_column(Quantity, default=Decimal("0"), nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(ReservationStatus, name="reservation_status"),
        default=ReservationStatus.reserved,
        nullable=False,
    )
    # opération qui a consommé la réservation
    operation_id: Mapped[int | None] = mapped_column(ForeignKey("inventory_operations.id", ondelete="RESTRICT"))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    state_changed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    delivery: Mapped[Delivery] = relationship(back_populates="reservations")
    delivery_line: Mapped[DeliveryLine | None] = relationship(back_populates="reservations")
    lot: Mapped[Lot | None] = relationship()

    __table_args__ = (
        CheckConstraint("reserved_quantity > 0", name="ck_reservation_qty_pos"),
        CheckConstraint("delivered_quantity >= 0", name="ck_reservation_delivered_nonneg"),
        CheckConstraint("delivered_quantity <= reserved_quantity", name="ck_reservation_delivered_le_reserved"),
        Index("ix_stock_reservations_article_status", "article_id", "status"),
    )


# ---------- OPERATIONS D'INVENTAIRE (journal append-only) ----------
class InventoryOperation(Base):
    __tablename__ = "inventory_operations"
    id: Mapped[int] = mapped_column(Id, primary_key=True)
    code: Mapped[str | None] = mapped_column(String(32), unique=True)  # LIV-000001, attribué après flush
    type: Mapped[OperationType] = mapped_column(Enum(OperationType, name="operation_type"), nullable=False)
    parent_operation_id: Mapped[int | None] = mapped_column(
        ForeignKey("inventory_operations.id", ondelete="RESTRICT"),
        index=True,
    )
    delivery_id: Mapped[int | None] = mapped_column(
        ForeignKey("deliveries.id", ondelete="RESTRICT", use_alter=True),
        index=True,
    )
    reason: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    lines: Mapped[list["InventoryOperationLine"]] = relationship(
        back_populates="operation",
        order_by="InventoryOperationLine.id",
    )
    parent: Mapped["InventoryOperation | None"] = relationship(remote_side="InventoryOperation.id")


class InventoryOperationLine(Base):
    __tablename__ = "inventory_operation_lines"
    id: Mapped[int] = mapped_column(Id, primary_key=True)
    operation_id: Mapped[int] = mapped_column(
        ForeignKey("inventory_operations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    article_id: Mapped[int] = mapped_column(ForeignKey("articles.id", ondelete="RESTRICT"), nullable=False)
    lot_id: Mapped[int | None] = mapped_column(ForeignKey("lots.id", ondelete="RESTRICT"))
    zone_id: Mapped[int] = mapped_column(ForeignKey("storage_zones.id", ondelete="RESTRICT"), nullable=False)

    # signée : négatif = sortie, positif = entrée
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    quantity_before: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    quantity_after: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))

    reservation_id: Mapped[int | None] = mapped_column(ForeignKey("stock_reservations.id", ondelete="RESTRICT"))

    operation: Mapped[InventoryOperation] = relationship(back_populates="lines")

    __table_args__ = (
        CheckConstraint("quantity <> 0", name="ck_operation_line_qty_nonzero"),
        CheckConstraint("quantity_after >= 0", name="ck_operation_line_after_nonneg"),
    )
