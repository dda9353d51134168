"""initial transaction schema

Revision ID: b7c1d2e3f4a5
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete PapuEnvios transaction schema:
- users / api_tokens: accounts and hashed bearer tokens
- products / combos / combo_items: catalog
- inventory_records / inventory_movements: stock ledger (reserved <= quantity)
- recipients: saved delivery recipients
- orders / order_lines: product orders (version_id optimistic lock)
- remittance_types / remittances: commission profiles and snapshotted remittances
- status_history: append-only transition log
- notification_outbox: queued chat notifications
- document_sequences: human-readable number counters
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7c1d2e3f4a5'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=True, default=False):
    if default:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable,
                         server_default=sa.text('CURRENT_TIMESTAMP'))
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _actor(name):
    return sa.Column(name, sa.Integer(), sa.ForeignKey('users.id'), nullable=True)


def upgrade():
    # ============================================================================
    # users / api_tokens
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _timestamp('created_at', nullable=False, default=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'api_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('label', sa.String(length=64), nullable=True),
        _timestamp('created_at', nullable=False, default=True),
        _timestamp('last_used_at'),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_api_tokens_user_id', 'api_tokens', ['user_id'])
    op.create_index('ix_api_tokens_token_hash', 'api_tokens', ['token_hash'], unique=True)
    op.create_index('ix_api_tokens_user_active', 'api_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # catalog
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('currency_code', sa.String(length=3), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _timestamp('created_at', nullable=False, default=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_sku', 'products', ['sku'])

    op.create_table(
        'combos',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('profit_margin_pct', sa.Numeric(7, 4), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _timestamp('created_at', nullable=False, default=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'combo_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('combo_id', sa.Integer(), sa.ForeignKey('combos.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('combo_id', 'product_id', name='uq_combo_items_combo_product'),
        sa.CheckConstraint('quantity > 0', name='ck_combo_items_quantity_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_combo_items_combo_id', 'combo_items', ['combo_id'])
    op.create_index('ix_combo_items_product_id', 'combo_items', ['product_id'])

    # ============================================================================
    # inventory_records: on hand vs reserved, one row per product
    # ============================================================================
    op.create_table(
        'inventory_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reserved_quantity', sa.Integer(), nullable=False),
        sa.Column('min_stock_alert', sa.Integer(), nullable=False),
        _timestamp('updated_at', nullable=False, default=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', name='uq_inventory_records_product'),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_quantity_nonneg'),
        sa.CheckConstraint('reserved_quantity >= 0', name='ck_inventory_reserved_nonneg'),
        sa.CheckConstraint('reserved_quantity <= quantity', name='ck_inventory_reserved_le_quantity'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_records_product_id', 'inventory_records', ['product_id'])

    # ============================================================================
    # recipients
    # ============================================================================
    op.create_table(
        'recipients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('province', sa.String(length=128), nullable=True),
        sa.Column('municipality', sa.String(length=128), nullable=True),
        sa.Column('address', sa.String(length=512), nullable=True),
        sa.Column('id_number', sa.String(length=64), nullable=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _timestamp('created_at', nullable=False, default=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_recipients_owner_user_id', 'recipients', ['owner_user_id'])
    op.create_index('ix_recipients_user_id', 'recipients', ['user_id'])

    # ============================================================================
    # orders / order_lines
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('inventory_state', sa.String(length=16), nullable=False),
        sa.Column('currency_code', sa.String(length=3), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('shipping_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('recipient_info', sa.JSON(), nullable=True),
        sa.Column('delivery_instructions', sa.Text(), nullable=True),
        sa.Column('tracking_info', sa.String(length=255), nullable=True),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('payment_reference', sa.String(length=255), nullable=True),
        sa.Column('payment_proof_ref', sa.String(length=512), nullable=True),
        sa.Column('delivery_proof_ref', sa.String(length=512), nullable=True),
        _timestamp('created_at', nullable=False, default=True),
        _timestamp('payment_proof_uploaded_at'),
        _timestamp('validated_at'),
        _timestamp('processing_started_at'),
        _timestamp('shipped_at'),
        _timestamp('delivered_at'),
        _timestamp('completed_at'),
        _timestamp('cancelled_at'),
        _actor('validated_by_user_id'),
        _actor('rejected_by_user_id'),
        _actor('shipped_by_user_id'),
        _actor('delivered_by_user_id'),
        _actor('completed_by_user_id'),
        _actor('cancelled_by_user_id'),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=500), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index('ix_orders_user_status_created', 'orders', ['user_id', 'status', 'created_at'])

    op.create_table(
        'order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('item_type', sa.String(length=16), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=True),
        sa.Column('combo_id', sa.Integer(), sa.ForeignKey('combos.id'), nullable=True),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity > 0', name='ck_order_lines_quantity_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_lines_order_id', 'order_lines', ['order_id'])

    # ============================================================================
    # inventory_movements: append-only ledger audit
    # ============================================================================
    op.create_table(
        'inventory_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('inventory_record_id', sa.Integer(), sa.ForeignKey('inventory_records.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('quantity_change', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=True),
        _actor('actor_user_id'),
        sa.Column('note', sa.String(length=255), nullable=True),
        _timestamp('occurred_at', nullable=False, default=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_movements_inventory_record_id', 'inventory_movements', ['inventory_record_id'])
    op.create_index('ix_inventory_movements_product_id', 'inventory_movements', ['product_id'])
    op.create_index('ix_inventory_movements_movement_type', 'inventory_movements', ['movement_type'])
    op.create_index('ix_inventory_movements_order_id', 'inventory_movements', ['order_id'])
    op.create_index('ix_inventory_movements_occurred_at', 'inventory_movements', ['occurred_at'])
    op.create_index('ix_inventory_movements_record_occurred', 'inventory_movements',
                    ['inventory_record_id', 'occurred_at'])

    # ============================================================================
    # remittance_types / remittances
    # ============================================================================
    op.create_table(
        'remittance_types',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('currency_code', sa.String(length=3), nullable=False),
        sa.Column('delivery_currency', sa.String(length=3), nullable=False),
        sa.Column('exchange_rate', sa.Numeric(18, 6), nullable=False),
        sa.Column('commission_percentage', sa.Numeric(7, 4), nullable=False),
        sa.Column('commission_fixed_cents', sa.Integer(), nullable=False),
        sa.Column('min_amount_cents', sa.Integer(), nullable=False),
        sa.Column('max_amount_cents', sa.Integer(), nullable=True),
        sa.Column('delivery_method', sa.String(length=16), nullable=False),
        sa.Column('max_delivery_days', sa.Integer(), nullable=False),
        sa.Column('warning_days', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('display_order', sa.Integer(), nullable=False),
        _timestamp('created_at', nullable=False, default=True),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('exchange_rate > 0', name='ck_remittance_types_rate_positive'),
        sa.CheckConstraint('min_amount_cents > 0', name='ck_remittance_types_min_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_remittance_types_is_active', 'remittance_types', ['is_active'])

    op.create_table(
        'remittances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('remittance_number', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('remittance_type_id', sa.Integer(), sa.ForeignKey('remittance_types.id'), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('currency_sent', sa.String(length=3), nullable=False),
        sa.Column('currency_delivered', sa.String(length=3), nullable=False),
        sa.Column('exchange_rate', sa.Numeric(18, 6), nullable=False),
        sa.Column('commission_percentage', sa.Numeric(7, 4), nullable=False),
        sa.Column('commission_fixed_cents', sa.Integer(), nullable=False),
        sa.Column('commission_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('delivered_cents', sa.Integer(), nullable=False),
        sa.Column('delivery_method', sa.String(length=16), nullable=False),
        sa.Column('max_delivery_days', sa.Integer(), nullable=False),
        sa.Column('recipient_id', sa.Integer(), sa.ForeignKey('recipients.id'), nullable=True),
        sa.Column('recipient_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('recipient_name', sa.String(length=255), nullable=False),
        sa.Column('recipient_phone', sa.String(length=32), nullable=False),
        sa.Column('recipient_address', sa.String(length=512), nullable=True),
        sa.Column('recipient_province', sa.String(length=128), nullable=True),
        sa.Column('recipient_id_number', sa.String(length=64), nullable=True),
        sa.Column('delivery_notes', sa.Text(), nullable=True),
        sa.Column('payment_reference', sa.String(length=255), nullable=True),
        sa.Column('payment_proof_ref', sa.String(length=512), nullable=True),
        sa.Column('payment_proof_notes', sa.Text(), nullable=True),
        sa.Column('delivery_proof_ref', sa.String(length=512), nullable=True),
        _timestamp('created_at', nullable=False, default=True),
        _timestamp('payment_proof_uploaded_at'),
        _timestamp('payment_validated_at'),
        _timestamp('max_delivery_date'),
        _timestamp('processing_started_at'),
        _timestamp('delivered_at'),
        _timestamp('completed_at'),
        _timestamp('cancelled_at'),
        _actor('validated_by_user_id'),
        _actor('rejected_by_user_id'),
        _actor('processed_by_user_id'),
        _actor('delivered_by_user_id'),
        _actor('completed_by_user_id'),
        _actor('cancelled_by_user_id'),
        sa.Column('payment_rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=500), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('remittance_number', name='uq_remittances_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_remittances_user_id', 'remittances', ['user_id'])
    op.create_index('ix_remittances_remittance_type_id', 'remittances', ['remittance_type_id'])
    op.create_index('ix_remittances_status', 'remittances', ['status'])
    op.create_index('ix_remittances_payment_status', 'remittances', ['payment_status'])
    op.create_index('ix_remittances_recipient_user_id', 'remittances', ['recipient_user_id'])
    op.create_index('ix_remittances_created_at', 'remittances', ['created_at'])
    op.create_index('ix_remittances_max_delivery_date', 'remittances', ['max_delivery_date'])
    op.create_index('ix_remittances_user_status_created', 'remittances', ['user_id', 'status', 'created_at'])

    # ============================================================================
    # status_history: append-only
    # ============================================================================
    op.create_table(
        'status_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_kind', sa.String(length=16), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('field', sa.String(length=16), nullable=False),
        sa.Column('previous_state', sa.String(length=32), nullable=True),
        sa.Column('new_state', sa.String(length=32), nullable=False),
        _actor('actor_user_id'),
        sa.Column('reason', sa.String(length=500), nullable=True),
        _timestamp('occurred_at', nullable=False, default=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_status_history_tx', 'status_history', ['transaction_kind', 'transaction_id', 'id'])
    op.create_index('ix_status_history_actor_user_id', 'status_history', ['actor_user_id'])
    op.create_index('ix_status_history_occurred_at', 'status_history', ['occurred_at'])

    # ============================================================================
    # notification_outbox
    # ============================================================================
    op.create_table(
        'notification_outbox',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_kind', sa.String(length=16), nullable=True),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('event', sa.String(length=48), nullable=False),
        sa.Column('destination', sa.String(length=32), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.String(length=500), nullable=True),
        _timestamp('created_at', nullable=False, default=True),
        _timestamp('last_attempt_at'),
        _timestamp('sent_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_notification_outbox_status_created', 'notification_outbox', ['status', 'created_at'])

    # ============================================================================
    # document_sequences
    # ============================================================================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=16), nullable=False),
        sa.Column('period', sa.String(length=8), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', 'period', name='uq_document_sequences_type_period'),
        sqlite_autoincrement=True
    )


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('document_sequences')
    op.drop_table('notification_outbox')
    op.drop_table('status_history')
    op.drop_table('remittances')
    op.drop_table('remittance_types')
    op.drop_table('inventory_movements')
    op.drop_table('order_lines')
    op.drop_table('orders')
    op.drop_table('recipients')
    op.drop_table('inventory_records')
    op.drop_table('combo_items')
    op.drop_table('combos')
    op.drop_table('products')
    op.drop_table('api_tokens')
    op.drop_table('users')
