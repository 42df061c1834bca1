"""Initial migration

Revision ID: 001_initial
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Catalog items table
    op.create_table(
        'catalog_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('brand', sa.String(length=128), nullable=True),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('stockx_product_id', sa.String(length=64), nullable=True),
        sa.Column('alias_catalog_id', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku')
    )

    # Variants table
    op.create_table(
        'variants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('catalog_item_id', sa.Integer(), nullable=False),
        sa.Column('marketplace', sa.String(length=16), nullable=False),
        sa.Column('marketplace_variant_id', sa.String(length=191), nullable=False),
        sa.Column('size_label', sa.String(length=32), nullable=False),
        sa.Column('barcodes', sa.JSON(), nullable=False),
        sa.Column('region', sa.String(length=8), nullable=True),
        sa.Column('consigned', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['catalog_item_id'], ['catalog_items.id']),
        sa.UniqueConstraint('marketplace', 'marketplace_variant_id', name='uq_variant_marketplace_id')
    )
    op.create_index(
        'ix_variants_catalog_item_marketplace', 'variants', ['catalog_item_id', 'marketplace']
    )

    # Latest market snapshot per (variant, currency)
    op.create_table(
        'market_snapshots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('lowest_ask', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('highest_bid', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('last_sale', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('flex_lowest_ask', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('global_indicator_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('captured_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['variant_id'], ['variants.id']),
        sa.UniqueConstraint('variant_id', 'currency', name='uq_snapshot_variant_currency')
    )
    op.create_index('ix_market_snapshots_updated_at', 'market_snapshots', ['updated_at'])

    # Daily price history
    op.create_table(
        'price_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('snapshot_date', sa.Date(), nullable=False),
        sa.Column('lowest_ask', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('highest_bid', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('last_sale', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['variant_id'], ['variants.id']),
        sa.UniqueConstraint('variant_id', 'currency', 'snapshot_date', name='uq_price_history_daily')
    )

    # Sync runs table
    op.create_table(
        'sync_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('run_id', sa.String(length=64), nullable=False),
        sa.Column('trigger', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('items_total', sa.Integer(), nullable=False),
        sa.Column('items_refreshed', sa.Integer(), nullable=False),
        sa.Column('items_failed', sa.Integer(), nullable=False),
        sa.Column('items_skipped', sa.Integer(), nullable=False),
        sa.Column('market_rows_refreshed', sa.Integer(), nullable=False),
        sa.Column('rate_limited', sa.Integer(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('run_id')
    )


def downgrade() -> None:
    op.drop_table('sync_runs')
    op.drop_table('price_history')
    op.drop_index('ix_market_snapshots_updated_at', table_name='market_snapshots')
    op.drop_table('market_snapshots')
    op.drop_index('ix_variants_catalog_item_marketplace', table_name='variants')
    op.drop_table('variants')
    op.drop_table('catalog_items')
