"""Reviewer notes on purchase orders

Revision ID: 002_po_notes
Revises: 001_po_workflow
Create Date: 2026-10-17

Adds:
- purchase_order_notes
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002_po_notes'
down_revision: Union[str, Sequence[str], None] = '001_po_workflow'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'purchase_order_notes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('note', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_purchase_order_notes_id', 'purchase_order_notes', ['id'])
    op.create_index('ix_purchase_order_notes_purchase_order_id', 'purchase_order_notes', ['purchase_order_id'])
    op.create_index('ix_purchase_order_notes_user_id', 'purchase_order_notes', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_purchase_order_notes_user_id', table_name='purchase_order_notes')
    op.drop_index('ix_purchase_order_notes_purchase_order_id', table_name='purchase_order_notes')
    op.drop_index('ix_purchase_order_notes_id', table_name='purchase_order_notes')
    op.drop_table('purchase_order_notes')
