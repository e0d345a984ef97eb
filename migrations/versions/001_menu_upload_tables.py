"""Menu upload tables - menus, menu_items, menu_uploads, menu_upload_items

Revision ID: 001_menu_upload_tables
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = '001_menu_upload_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Live menus
    op.create_table(
        'menus',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.BigInteger(), nullable=False),
        sa.Column('updated_at', sa.BigInteger(), nullable=False),
    )
    op.create_index('ix_menus_restaurant_id', 'menus', ['restaurant_id'])

    op.create_table(
        'menu_items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('menu_id', sa.Integer(), sa.ForeignKey('menus.id', ondelete='CASCADE'), nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=True),
        sa.Column('category', sa.String(255), nullable=True),
        sa.Column('allergens', sa.Text(), nullable=True),
        sa.Column('dietary', sa.Text(), nullable=True),
        sa.Column('created_at', sa.BigInteger(), nullable=False),
        sa.Column('updated_at', sa.BigInteger(), nullable=False),
    )
    op.create_index('ix_menu_items_restaurant_id', 'menu_items', ['restaurant_id'])

    # Uploads awaiting AI processing and review
    op.create_table(
        'menu_uploads',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('restaurant_id', sa.Integer(), nullable=True),
        sa.Column('menu_id', sa.Integer(), nullable=True),
        sa.Column('file_url', sa.Text(), nullable=True),
        sa.Column('file_name', sa.String(512), nullable=True),
        sa.Column('file_size', sa.BigInteger(), nullable=True),
        sa.Column('resource_type', sa.String(32), nullable=False, server_default='raw'),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('parser_version', sa.String(64), nullable=True),
        sa.Column('ai_model', sa.String(128), nullable=True),
        sa.Column('processed_at', sa.BigInteger(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.BigInteger(), nullable=False),
        sa.Column('updated_at', sa.BigInteger(), nullable=False),
    )
    op.create_index('ix_menu_uploads_restaurant_id', 'menu_uploads', ['restaurant_id'])
    op.create_index('ix_menu_uploads_status', 'menu_uploads', ['status'])

    op.create_table(
        'menu_upload_items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('upload_id', sa.Integer(), sa.ForeignKey('menu_uploads.id', ondelete='CASCADE'), nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=True),
        sa.Column('menu_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=True),
        sa.Column('raw_text', sa.Text(), nullable=True),
        sa.Column('suggested_category', sa.String(255), nullable=True),
        sa.Column('suggested_allergens', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('suggested_dietary', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('ai_payload', postgresql.JSONB(), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.BigInteger(), nullable=False),
        sa.Column('updated_at', sa.BigInteger(), nullable=False),
    )
    op.create_index('idx_menu_upload_items_upload_status', 'menu_upload_items', ['upload_id', 'status'])


def downgrade() -> None:
    op.drop_index('idx_menu_upload_items_upload_status', table_name='menu_upload_items')
    op.drop_table('menu_upload_items')

    op.drop_index('ix_menu_uploads_status', table_name='menu_uploads')
    op.drop_index('ix_menu_uploads_restaurant_id', table_name='menu_uploads')
    op.drop_table('menu_uploads')

    op.drop_index('ix_menu_items_restaurant_id', table_name='menu_items')
    op.drop_table('menu_items')

    op.drop_index('ix_menus_restaurant_id', table_name='menus')
    op.drop_table('menus')
