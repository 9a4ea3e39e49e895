"""Purchase order workflow baseline

Revision ID: 001_po_workflow
Revises:
Create Date: 2026-10-17

Adds:
- users (database user directory)
- purchase_orders, purchase_order_items, purchase_order_attachments
- purchase_order_sequences (per-month PO number counter)
- audit_logs
- notifications, device_tokens
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_po_workflow'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.Column('department', sa.String(length=100), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'purchase_orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('number', sa.String(length=30), nullable=False),
        sa.Column('request_date', sa.Date(), nullable=False),
        sa.Column('department', sa.String(length=100), nullable=False),
        sa.Column('request_type', sa.String(length=20), nullable=False, server_default='purchase'),
        sa.Column('requester_name', sa.String(length=200), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('supplier_id', sa.String(length=36), nullable=True),
        sa.Column('execution_date', sa.Date(), nullable=True),
        sa.Column('total_amount', sa.Numeric(precision=18, scale=4), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('created_by', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_purchase_orders_number', 'purchase_orders', ['number'], unique=True)
    op.create_index('ix_purchase_orders_status', 'purchase_orders', ['status'])
    op.create_index('ix_purchase_orders_supplier_id', 'purchase_orders', ['supplier_id'])
    op.create_index('ix_purchase_orders_created_by', 'purchase_orders', ['created_by'])
    op.create_index('ix_purchase_orders_created_at', 'purchase_orders', ['created_at'])

    op.create_table(
        'purchase_order_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('purchase_order_id', sa.String(length=36), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('item_id', sa.String(length=36), nullable=True),
        sa.Column('item_code', sa.String(length=100), nullable=True),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column('unit', sa.String(length=30), nullable=False),
        sa.Column('received_quantity', sa.Numeric(precision=18, scale=4), nullable=True),
        sa.Column('price', sa.Numeric(precision=18, scale=4), nullable=True),
        sa.Column('line_total', sa.Numeric(precision=18, scale=4), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_purchase_order_items_purchase_order_id', 'purchase_order_items', ['purchase_order_id']
    )

    op.create_table(
        'purchase_order_attachments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.String(length=36), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('url', sa.String(length=1000), nullable=False),
        sa.Column('uploaded_by', sa.String(length=36), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_purchase_order_attachments_id', 'purchase_order_attachments', ['id'])
    op.create_index(
        'ix_purchase_order_attachments_purchase_order_id',
        'purchase_order_attachments',
        ['purchase_order_id'],
    )
    op.create_index(
        'ix_purchase_order_attachments_uploaded_by', 'purchase_order_attachments', ['uploaded_by']
    )

    op.create_table(
        'purchase_order_sequences',
        sa.Column('period', sa.String(length=5), nullable=False),
        sa.Column('last_value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('period'),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.String(length=36), nullable=False),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=100), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'])
    op.create_index('ix_audit_logs_actor_id', 'audit_logs', ['actor_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity_type', 'audit_logs', ['entity_type'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])

    op.create_table(
        'device_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('token', sa.String(length=512), nullable=False),
        sa.Column('device_info', sa.String(length=255), nullable=True),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'token', name='uq_device_tokens_user_token'),
    )
    op.create_index('ix_device_tokens_id', 'device_tokens', ['id'])
    op.create_index('ix_device_tokens_user_id', 'device_tokens', ['user_id'])
    op.create_index('ix_device_tokens_token', 'device_tokens', ['token'])


def downgrade() -> None:
    op.drop_table('device_tokens')
    op.drop_table('notifications')
    op.drop_table('audit_logs')
    op.drop_table('purchase_order_sequences')
    op.drop_table('purchase_order_attachments')
    op.drop_table('purchase_order_items')
    op.drop_table('purchase_orders')
    op.drop_table('users')
