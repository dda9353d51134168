"""Shipping zones priced per province / municipality

Revision ID: c4e8f9a0b1d2
Revises: b7c1d2e3f4a5
Create Date: 2026-10-19

Order shipping is now computed server-side from the recipient's location.
orders.shipping_zone_id records which zone priced the order.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "c4e8f9a0b1d2"
down_revision = "b7c1d2e3f4a5"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "shipping_zones",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("province_name", sa.String(length=128), nullable=False),
        sa.Column("municipality_name", sa.String(length=128), nullable=True),
        sa.Column("shipping_cost_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("free_shipping", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("delivery_days", sa.Integer(), nullable=True),
        sa.Column("delivery_note", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("province_name", "municipality_name", name="uq_shipping_zones_location"),
        sa.CheckConstraint("shipping_cost_cents >= 0", name="ck_shipping_zones_cost_nonneg"),
        sqlite_autoincrement=True
    )
    op.create_index("ix_shipping_zones_province_name", "shipping_zones", ["province_name"])
    op.create_index("ix_shipping_zones_is_active", "shipping_zones", ["is_active"])

    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.add_column(sa.Column("shipping_zone_id", sa.Integer(), nullable=True))
        batch_op.create_foreign_key(
            "fk_orders_shipping_zone_id", "shipping_zones", ["shipping_zone_id"], ["id"]
        )


def downgrade():
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.drop_constraint("fk_orders_shipping_zone_id", type_="foreignkey")
        batch_op.drop_column("shipping_zone_id")

    op.drop_index("ix_shipping_zones_is_active", table_name="shipping_zones")
    op.drop_index("ix_shipping_zones_province_name", table_name="shipping_zones")
    op.drop_table("shipping_zones")
