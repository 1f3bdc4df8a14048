"""Initial estimate schema: projects, estimates, trades, sub_items, templates, categories

Revision ID: a1c3e5f70001
Revises:
Create Date: 2026-10-17 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'a1c3e5f70001'
down_revision = None
branch_labels = None
depends_on = None

JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")
MONEY = sa.Numeric(12, 2)
PERCENT = sa.Numeric(6, 2)


def _record_columns():
    return [
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _cost_columns():
    return [
        sa.Column('labor_cost', MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column('material_cost', MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column('subcontractor_cost', MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column('total_cost', MONEY, nullable=False, server_default=sa.text("0")),
    ]


def upgrade():
    op.create_table(
        'projects',
        *_record_columns(),
        sa.Column('org_id', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default=sa.text("'estimating'")),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('client', JSON, nullable=False),
        sa.Column('metadata', JSON, nullable=False),
        sa.Column('estimate_total', MONEY, nullable=False, server_default=sa.text("0")),
    )
    op.create_index('ix_projects_org_id', 'projects', ['org_id'])
    op.create_index('ix_projects_created_at', 'projects', ['created_at'])
    op.execute("CREATE INDEX IF NOT EXISTS ix_projects_lower_name ON projects ((lower(name)));")

    op.create_table(
        'estimates',
        *_record_columns(),
        sa.Column('project_id', sa.String(length=36), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('org_id', sa.String(length=64), nullable=True),
        sa.Column('default_markup_percent', PERCENT, nullable=True),
        sa.Column('default_contingency_percent', PERCENT, nullable=True),
        sa.Column('subtotal', MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column('gross_profit', MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column('contingency', MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column('total_estimated', MONEY, nullable=False, server_default=sa.text("0")),
    )
    op.create_index('ix_estimates_project_id', 'estimates', ['project_id'])
    op.create_index('ix_estimates_org_id', 'estimates', ['org_id'])

    op.create_table(
        'trades',
        *_record_columns(),
        sa.Column('estimate_id', sa.String(length=36), sa.ForeignKey('estimates.id', ondelete='CASCADE'), nullable=False),
        sa.Column('org_id', sa.String(length=64), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('group', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('quantity', MONEY, nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        *_cost_columns(),
        sa.Column('labor_rate', MONEY, nullable=True),
        sa.Column('labor_hours', MONEY, nullable=True),
        sa.Column('material_rate', MONEY, nullable=True),
        sa.Column('markup_percent', PERCENT, nullable=True),
        sa.Column('is_subcontracted', sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column('waste_factor', PERCENT, nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('estimate_status', sa.String(length=16), nullable=False, server_default=sa.text("'budget'")),
        sa.Column('quote_vendor', sa.String(length=255), nullable=True),
        sa.Column('quote_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('quote_reference', sa.String(length=255), nullable=True),
        sa.Column('quote_file_url', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_trades_org_id', 'trades', ['org_id'])
    op.create_index('ix_trades_estimate_sort', 'trades', ['estimate_id', 'sort_order'])

    op.create_table(
        'sub_items',
        *_record_columns(),
        sa.Column('trade_id', sa.String(length=36), sa.ForeignKey('trades.id', ondelete='CASCADE'), nullable=False),
        sa.Column('estimate_id', sa.String(length=36), sa.ForeignKey('estimates.id', ondelete='CASCADE'), nullable=False),
        sa.Column('org_id', sa.String(length=64), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('group', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('quantity', MONEY, nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        *_cost_columns(),
        sa.Column('markup_percent', PERCENT, nullable=True),
        sa.Column('waste_factor', PERCENT, nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_sub_items_estimate_id', 'sub_items', ['estimate_id'])
    op.create_index('ix_sub_items_org_id', 'sub_items', ['org_id'])
    op.create_index('ix_sub_items_trade_sort', 'sub_items', ['trade_id', 'sort_order'])

    op.create_table(
        'estimate_templates',
        *_record_columns(),
        sa.Column('org_id', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('trades', JSON, nullable=False),
        sa.Column('default_markup_percent', PERCENT, nullable=True),
        sa.Column('default_contingency_percent', PERCENT, nullable=True),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column('linked_plan_ids', JSON, nullable=False),
    )
    op.create_index('ix_estimate_templates_org_id', 'estimate_templates', ['org_id'])
    op.execute("CREATE INDEX IF NOT EXISTS ix_estimate_templates_lower_name ON estimate_templates ((lower(name)));")

    op.create_table(
        'trade_categories',
        *_record_columns(),
        sa.Column('org_id', sa.String(length=64), nullable=True),
        sa.Column('key', sa.String(length=64), nullable=False),
        sa.Column('label', sa.String(length=128), nullable=False),
        sa.Column('icon', sa.String(length=16), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.create_index('ix_trade_categories_org_id', 'trade_categories', ['org_id'])
    # keys are case-insensitive per organization
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS ux_trade_categories_org_lower_key "
        "ON trade_categories (org_id, (lower(key)));"
    )


def downgrade():
    op.execute("DROP INDEX IF EXISTS ux_trade_categories_org_lower_key;")
    op.drop_index('ix_trade_categories_org_id', table_name='trade_categories')
    op.drop_table('trade_categories')

    op.execute("DROP INDEX IF EXISTS ix_estimate_templates_lower_name;")
    op.drop_index('ix_estimate_templates_org_id', table_name='estimate_templates')
    op.drop_table('estimate_templates')

    op.drop_index('ix_sub_items_trade_sort', table_name='sub_items')
    op.drop_index('ix_sub_items_org_id', table_name='sub_items')
    op.drop_index('ix_sub_items_estimate_id', table_name='sub_items')
    op.drop_table('sub_items')

    op.drop_index('ix_trades_estimate_sort', table_name='trades')
    op.drop_index('ix_trades_org_id', table_name='trades')
    op.drop_table('trades')

    op.drop_index('ix_estimates_org_id', table_name='estimates')
    op.drop_index('ix_estimates_project_id', table_name='estimates')
    op.drop_table('estimates')

    op.execute("DROP INDEX IF EXISTS ix_projects_lower_name;")
    op.drop_index('ix_projects_created_at', table_name='projects')
    op.drop_index('ix_projects_org_id', table_name='projects')
    op.drop_table('projects')
