"""initial fulfillment schema

Revision ID: a1f3c9e20b71
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "a1f3c9e20b71"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

QTY = sa.Numeric(12, 3)

order_status = sa.Enum(
    "draft", "confirmed", "partially_delivered", "delivered", "cancelled",
    name="order_status",
)
delivery_status = sa.Enum(
    "draft", "reserved", "validated",
    "cancelled_before", "cancelled_after_returned", "cancelled_after_wasted",
    name="delivery_status",
)
reservation_status = sa.Enum(
    "reserved", "partially_delivered", "delivered", "cancelled",
    name="reservation_status",
)
operation_type = sa.Enum(
    "delivery", "return_delivery", "waste_delivery", "reception", "adjustment", "production",
    name="operation_type",
)


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    # --- CATALOGUE
    op.create_table(
        "storage_zones",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("code", sa.String(32), nullable=False, unique=True),
        sa.Column("designation", sa.String(200), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "articles",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(32), nullable=False, server_default="pcs"),
        sa.Column("is_perishable", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_stock_managed", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "lots",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("article_id", sa.BigInteger(), sa.ForeignKey("articles.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("manufacturing_date", sa.Date()),
        sa.Column("expiration_date", sa.Date()),
        _ts("created_at"),
    )
    op.create_index("ix_lots_article_id", "lots", ["article_id"])

    op.create_table(
        "recipes",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("article_id", sa.BigInteger(), sa.ForeignKey("articles.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("yield_quantity", QTY, nullable=False),
        sa.CheckConstraint("yield_quantity > 0", name="ck_recipe_yield_pos"),
    )
    op.create_table(
        "recipe_ingredients",
        sa.Column("recipe_id", sa.BigInteger(), sa.ForeignKey("recipes.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("article_id", sa.BigInteger(), sa.ForeignKey("articles.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("quantity", QTY, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_recipe_ingredient_qty_pos"),
    )

    # --- COMMANDES
    op.create_table(
        "orders",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("status", order_status, nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        _ts("created_at"),
    )
    op.create_table(
        "order_lines",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("order_id", sa.BigInteger(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("article_id", sa.BigInteger(), sa.ForeignKey("articles.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity_ordered", QTY, nullable=False),
        sa.CheckConstraint("quantity_ordered > 0", name="ck_order_line_qty_pos"),
    )
    op.create_index("ix_order_lines_order_id", "order_lines", ["order_id"])

    # --- STOCK
    op.create_table(
        "stock_lines",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("article_id", sa.BigInteger(), sa.ForeignKey("articles.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("lot_id", sa.BigInteger(), sa.ForeignKey("lots.id", ondelete="RESTRICT")),
        sa.Column("zone_id", sa.BigInteger(), sa.ForeignKey("storage_zones.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", QTY, nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        _ts("created_at"),
        _ts("updated_at"),
        # lot NULL = une seule ligne "sans lot" par (article, zone) (Postgres 15+)
        sa.UniqueConstraint(
            "article_id", "lot_id", "zone_id",
            name="uq_stock_line_article_lot_zone",
            postgresql_nulls_not_distinct=True,
        ),
        sa.CheckConstraint("quantity >= 0", name="ck_stock_line_qty_nonneg"),
    )
    op.create_index("ix_stock_lines_article", "stock_lines", ["article_id"])

    # --- JOURNAL (FK vers deliveries ajoutée après : dépendance circulaire)
    op.create_table(
        "inventory_operations",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("code", sa.String(32), unique=True),
        sa.Column("type", operation_type, nullable=False),
        sa.Column(
            "parent_operation_id",
            sa.BigInteger(),
            sa.ForeignKey("inventory_operations.id", ondelete="RESTRICT"),
        ),
        sa.Column("delivery_id", sa.BigInteger()),
        sa.Column("reason", sa.String(255)),
        _ts("created_at"),
    )
    op.create_index("ix_inventory_operations_parent_operation_id", "inventory_operations", ["parent_operation_id"])
    op.create_index("ix_inventory_operations_delivery_id", "inventory_operations", ["delivery_id"])

    # --- LIVRAISONS
    op.create_table(
        "deliveries",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("code", sa.String(32), unique=True),
        sa.Column("order_id", sa.BigInteger(), sa.ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", delivery_status, nullable=False),
        sa.Column("is_validated", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("validated_at", nullable=True),
        sa.Column("cancellation_reason", sa.Text()),
        _ts("cancelled_at", nullable=True),
        sa.Column(
            "operation_id",
            sa.BigInteger(),
            sa.ForeignKey("inventory_operations.id", ondelete="RESTRICT"),
        ),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_deliveries_order_id", "deliveries", ["order_id"])
    op.create_foreign_key(
        "fk_inventory_operations_delivery_id",
        "inventory_operations",
        "deliveries",
        ["delivery_id"],
        ["id"],
        ondelete="RESTRICT",
    )

    op.create_table(
        "delivery_lines",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("delivery_id", sa.BigInteger(), sa.ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False),
        sa.Column("order_line_id", sa.BigInteger(), sa.ForeignKey("order_lines.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("article_id", sa.BigInteger(), sa.ForeignKey("articles.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("requested_quantity", QTY, nullable=False),
        sa.CheckConstraint("requested_quantity > 0", name="ck_delivery_line_qty_pos"),
    )
    op.create_index("ix_delivery_lines_delivery_id", "delivery_lines", ["delivery_id"])

    op.create_table(
        "stock_reservations",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("delivery_id", sa.BigInteger(), sa.ForeignKey("deliveries.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("delivery_line_id", sa.BigInteger(), sa.ForeignKey("delivery_lines.id", ondelete="RESTRICT")),
        sa.Column("order_line_id", sa.BigInteger(), sa.ForeignKey("order_lines.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("article_id", sa.BigInteger(), sa.ForeignKey("articles.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("lot_id", sa.BigInteger(), sa.ForeignKey("lots.id", ondelete="RESTRICT")),
        sa.Column("zone_id", sa.BigInteger(), sa.ForeignKey("storage_zones.id", ondelete="RESTRICT")),
        sa.Column("reserved_quantity", QTY, nullable=False),
        sa.Column("delivered_quantity", QTY, nullable=False, server_default="0"),
        sa.Column("status", reservation_status, nullable=False),
        sa.Column(
            "operation_id",
            sa.BigInteger(),
            sa.ForeignKey("inventory_operations.id", ondelete="RESTRICT"),
        ),
        _ts("created_at"),
        _ts("state_changed_at", nullable=True),
        _ts("expires_at", nullable=True),
        sa.CheckConstraint("reserved_quantity > 0", name="ck_reservation_qty_pos"),
        sa.CheckConstraint("delivered_quantity >= 0", name="ck_reservation_delivered_nonneg"),
        sa.CheckConstraint("delivered_quantity <= reserved_quantity", name="ck_reservation_delivered_le_reserved"),
    )
    op.create_index("ix_stock_reservations_delivery_id", "stock_reservations", ["delivery_id"])
    op.create_index("ix_stock_reservations_article_status", "stock_reservations", ["article_id", "status"])

    op.create_table(
        "inventory_operation_lines",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "operation_id",
            sa.BigInteger(),
            sa.ForeignKey("inventory_operations.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("article_id", sa.BigInteger(), sa.ForeignKey("articles.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("lot_id", sa.BigInteger(), sa.ForeignKey("lots.id", ondelete="RESTRICT")),
        sa.Column("zone_id", sa.BigInteger(), sa.ForeignKey("storage_zones.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", QTY, nullable=False),
        sa.Column("quantity_before", QTY, nullable=False),
        sa.Column("quantity_after", QTY, nullable=False),
        sa.Column("unit_cost", sa.Numeric(12, 2)),
        sa.Column(
            "reservation_id",
            sa.BigInteger(),
            sa.ForeignKey("stock_reservations.id", ondelete="RESTRICT"),
        ),
        sa.CheckConstraint("quantity <> 0", name="ck_operation_line_qty_nonzero"),
        sa.CheckConstraint("quantity_after >= 0", name="ck_operation_line_after_nonneg"),
    )
    op.create_index("ix_inventory_operation_lines_operation_id", "inventory_operation_lines", ["operation_id"])


def downgrade() -> None:
    op.drop_table("inventory_operation_lines")
    op.drop_table("stock_reservations")
    op.drop_table("delivery_lines")
    op.drop_constraint("fk_inventory_operations_delivery_id", "inventory_operations", type_="foreignkey")
    op.drop_table("deliveries")
    op.drop_table("inventory_operations")
    op.drop_table("stock_lines")
    op.drop_table("order_lines")
    op.drop_table("orders")
    op.drop_table("recipe_ingredients")
    op.drop_table("recipes")
    op.drop_table("lots")
    op.drop_table("articles")
    op.drop_table("storage_zones")

    bind = op.get_bind()
    for enum in (operation_type, reservation_status, delivery_status, order_status):
        enum.drop(bind, checkfirst=True)
