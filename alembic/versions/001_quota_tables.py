"""Create tier, model, access, quota and usage tables

This migration creates:
1. users with a free-text user_tier, validated by the application on read
2. user_tiers and image_models reference tables
3. tier_model_access and quota_limits, unique per (tier, model)
4. usage_tracking, unique per (user, model, date, hour) so usage can be
   recorded with INSERT ... ON CONFLICT DO UPDATE

Revision ID: 001_quota_tables
Revises: None (first migration)
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

revision = '001_quota_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('user_tier', sa.String(), nullable=True, server_default='free'),
        sa.Column('is_premium', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )

    op.create_table(
        'user_tiers',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('display_name', sa.String(), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )

    op.create_table(
        'image_models',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('model_id', sa.String(), nullable=False, unique=True),
        sa.Column('display_name', sa.String(), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('provider', sa.String(), nullable=False, server_default='fal-ai'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )

    op.create_table(
        'tier_model_access',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('tier_id', sa.String(), sa.ForeignKey('user_tiers.id'), nullable=False),
        sa.Column('model_id', sa.String(), sa.ForeignKey('image_models.id'), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('updated_at', sa.DateTime()),
        sa.UniqueConstraint('tier_id', 'model_id', name='uq_tier_model_access'),
    )

    op.create_table(
        'quota_limits',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('tier_id', sa.String(), sa.ForeignKey('user_tiers.id'), nullable=False),
        sa.Column('model_id', sa.String(), sa.ForeignKey('image_models.id'), nullable=False),
        sa.Column('hourly_limit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('daily_limit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('monthly_limit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime()),
        sa.UniqueConstraint('tier_id', 'model_id', name='uq_quota_limits'),
        sa.CheckConstraint(
            'hourly_limit >= 0 AND daily_limit >= 0 AND monthly_limit >= 0',
            name='ck_quota_limits_non_negative',
        ),
    )

    op.create_table(
        'usage_tracking',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('model_id', sa.String(), sa.ForeignKey('image_models.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('hour', sa.Integer(), nullable=False),
        sa.Column('images_generated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime()),
        sa.UniqueConstraint('user_id', 'model_id', 'date', 'hour', name='uq_usage_bucket'),
        sa.CheckConstraint('hour >= 0 AND hour <= 23', name='ck_usage_hour'),
    )
    op.create_index('idx_usage_user_model_date', 'usage_tracking', ['user_id', 'model_id', 'date'])


def downgrade() -> None:
    op.drop_index('idx_usage_user_model_date', table_name='usage_tracking')
    op.drop_table('usage_tracking')
    op.drop_table('quota_limits')
    op.drop_table('tier_model_access')
    op.drop_table('image_models')
    op.drop_table('user_tiers')
    op.drop_table('users')
