"""Add daily activity, monthly rollup and dirty month tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_add_activity_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create daily_activities table
    op.create_table('daily_activities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('public_id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(128), nullable=False),
        sa.Column('activity_date', sa.Date(), nullable=False),
        sa.Column('month', sa.String(7), nullable=False),
        sa.Column('bad_meals', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('alcohol', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('snacks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('exercise', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('greens', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('total_score', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('public_id'),
        sa.UniqueConstraint('user_id', 'activity_date', name='uq_daily_activities_user_date')
    )
    op.create_index('ix_daily_activities_id', 'daily_activities', ['id'])
    op.create_index('ix_daily_activities_user_id', 'daily_activities', ['user_id'])
    op.create_index('idx_daily_activities_user_month', 'daily_activities', ['user_id', 'month'])

    # Create monthly_rollups table
    op.create_table('monthly_rollups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(128), nullable=False),
        sa.Column('month', sa.String(7), nullable=False),
        sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('exercise_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('greens_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'month', name='uq_monthly_rollups_user_month')
    )
    op.create_index('ix_monthly_rollups_id', 'monthly_rollups', ['id'])
    op.create_index('ix_monthly_rollups_user_id', 'monthly_rollups', ['user_id'])
    op.create_index('ix_monthly_rollups_month', 'monthly_rollups', ['month'])

    # Create rollup_dirty_months table
    op.create_table('rollup_dirty_months',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(128), nullable=False),
        sa.Column('month', sa.String(7), nullable=False),
        sa.Column('reason', sa.String(500), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('marked_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'month', name='uq_rollup_dirty_months_user_month')
    )
    op.create_index('ix_rollup_dirty_months_id', 'rollup_dirty_months', ['id'])
    op.create_index('idx_rollup_dirty_months_marked_at', 'rollup_dirty_months', ['marked_at'])


def downgrade():
    op.drop_index('idx_rollup_dirty_months_marked_at', table_name='rollup_dirty_months')
    op.drop_index('ix_rollup_dirty_months_id', table_name='rollup_dirty_months')
    op.drop_table('rollup_dirty_months')

    op.drop_index('ix_monthly_rollups_month', table_name='monthly_rollups')
    op.drop_index('ix_monthly_rollups_user_id', table_name='monthly_rollups')
    op.drop_index('ix_monthly_rollups_id', table_name='monthly_rollups')
    op.drop_table('monthly_rollups')

    op.drop_index('idx_daily_activities_user_month', table_name='daily_activities')
    op.drop_index('ix_daily_activities_user_id', table_name='daily_activities')
    op.drop_index('ix_daily_activities_id', table_name='daily_activities')
    op.drop_table('daily_activities')
