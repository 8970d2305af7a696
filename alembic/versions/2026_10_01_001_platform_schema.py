"""Platform schema: tenants, licensing, plugin state and migration log

Revision ID: 001_platform_schema
Revises:
Create Date: 2026-10-01

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001_platform_schema'
down_revision = None
branch_labels = None
depends_on = None

tenant_plan = sa.Enum('FREE', 'PRO', 'ENTERPRISE', name='tenantplan')
tenant_status = sa.Enum('ACTIVE', 'SUSPENDED', 'CANCELLED', name='tenantstatus')
license_plan = sa.Enum('FREE', 'TRIAL', 'MONTHLY', 'YEARLY', 'LIFETIME', name='licenseplan')
license_status = sa.Enum('ACTIVE', 'TRIALING', 'EXPIRED', 'CANCELED', name='licensestatus')
plugin_status = sa.Enum(
    'INSTALLED', 'ENABLED', 'DISABLED', 'ERROR', 'INSTALLING', 'UNINSTALLING', name='pluginstatus'
)


def upgrade():
    # Tenants
    op.create_table(
        'tenants',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('custom_domain', sa.String(), nullable=True),
        sa.Column('plan', tenant_plan, nullable=False),
        sa.Column('status', tenant_status, nullable=False),
        sa.Column('stripe_customer_id', sa.String(), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(), nullable=True),
        sa.Column('subscription_status', sa.String(), nullable=True),
        sa.Column('trial_ends_at', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_tenants_name', 'tenants', ['name'])
    op.create_index('ix_tenants_slug', 'tenants', ['slug'], unique=True)
    op.create_index('ix_tenants_custom_domain', 'tenants', ['custom_domain'], unique=True)
    op.create_index('ix_tenants_status', 'tenants', ['status'])
    op.create_index('ix_tenants_stripe_customer_id', 'tenants', ['stripe_customer_id'])

    # Licenses
    op.create_table(
        'plugin_licenses',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('tenant_id', sa.String(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('plugin_id', sa.String(), nullable=False),
        sa.Column('plan', license_plan, nullable=False),
        sa.Column('status', license_status, nullable=False),
        sa.Column('features', sa.JSON(), nullable=True),
        sa.Column('expires_at', sa.Integer(), nullable=True),
        sa.Column('trial_used', sa.Boolean(), nullable=False),
        sa.Column('subscription_id', sa.String(), nullable=True),
        sa.Column('price_id', sa.String(), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('tenant_id', 'plugin_id', name='uq_plugin_license_tenant_plugin'),
    )
    op.create_index('ix_plugin_licenses_tenant_id', 'plugin_licenses', ['tenant_id'])
    op.create_index('ix_plugin_licenses_plugin_id', 'plugin_licenses', ['plugin_id'])
    op.create_index('ix_plugin_licenses_status', 'plugin_licenses', ['status'])
    op.create_index('ix_plugin_licenses_expires_at', 'plugin_licenses', ['expires_at'])

    # Tiers
    op.create_table(
        'plugin_tiers',
        sa.Column('plugin_id', sa.String(), primary_key=True),
        sa.Column('tier_id', sa.String(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('features', sa.JSON(), nullable=True),
        sa.Column('price_monthly', sa.Integer(), nullable=True),
        sa.Column('price_yearly', sa.Integer(), nullable=True),
        sa.Column('price_lifetime', sa.Integer(), nullable=True),
        sa.Column('trial_days', sa.Integer(), nullable=False),
    )

    # Feature flags
    op.create_table(
        'plugin_feature_flags',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('tenant_id', sa.String(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('plugin_id', sa.String(), nullable=False),
        sa.Column('feature_key', sa.String(), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('tenant_id', 'plugin_id', 'feature_key', name='uq_feature_flag_tenant_plugin_key'),
    )
    op.create_index('ix_plugin_feature_flags_tenant_id', 'plugin_feature_flags', ['tenant_id'])
    op.create_index('ix_plugin_feature_flags_plugin_id', 'plugin_feature_flags', ['plugin_id'])

    # Usage
    op.create_table(
        'plugin_usage',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('tenant_id', sa.String(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('plugin_id', sa.String(), nullable=False),
        sa.Column('metric_name', sa.String(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('period', sa.String(), nullable=False),
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_plugin_usage_tenant_id', 'plugin_usage', ['tenant_id'])
    op.create_index('ix_plugin_usage_plugin_id', 'plugin_usage', ['plugin_id'])
    op.create_index('ix_plugin_usage_period', 'plugin_usage', ['period'])

    # Plugin state per tenant
    op.create_table(
        'plugin_states',
        sa.Column('tenant_id', sa.String(), sa.ForeignKey('tenants.id'), primary_key=True),
        sa.Column('plugin_id', sa.String(), primary_key=True),
        sa.Column('status', plugin_status, nullable=False),
        sa.Column('version', sa.String(), nullable=False),
        sa.Column('config', sa.JSON(), nullable=True),
        sa.Column('error', sa.String(), nullable=True),
        sa.Column('installed_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('enabled_at', sa.DateTime(), nullable=True),
        sa.Column('disabled_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_plugin_states_status', 'plugin_states', ['status'])

    # Migration log
    op.create_table(
        'plugin_migrations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('plugin_id', sa.String(), nullable=False),
        sa.Column('version', sa.String(), nullable=False),
        sa.Column('applied_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('plugin_id', 'version', name='uq_plugin_migration_version'),
    )
    op.create_index('ix_plugin_migrations_plugin_id', 'plugin_migrations', ['plugin_id'])


def downgrade():
    op.drop_index('ix_plugin_migrations_plugin_id', 'plugin_migrations')
    op.drop_table('plugin_migrations')

    op.drop_index('ix_plugin_states_status', 'plugin_states')
    op.drop_table('plugin_states')

    op.drop_index('ix_plugin_usage_period', 'plugin_usage')
    op.drop_index('ix_plugin_usage_plugin_id', 'plugin_usage')
    op.drop_index('ix_plugin_usage_tenant_id', 'plugin_usage')
    op.drop_table('plugin_usage')

    op.drop_index('ix_plugin_feature_flags_plugin_id', 'plugin_feature_flags')
    op.drop_index('ix_plugin_feature_flags_tenant_id', 'plugin_feature_flags')
    op.drop_table('plugin_feature_flags')

    op.drop_table('plugin_tiers')

    op.drop_index('ix_plugin_licenses_expires_at', 'plugin_licenses')
    op.drop_index('ix_plugin_licenses_status', 'plugin_licenses')
    op.drop_index('ix_plugin_licenses_plugin_id', 'plugin_licenses')
    op.drop_index('ix_plugin_licenses_tenant_id', 'plugin_licenses')
    op.drop_table('plugin_licenses')

    op.drop_index('ix_tenants_stripe_customer_id', 'tenants')
    op.drop_index('ix_tenants_status', 'tenants')
    op.drop_index('ix_tenants_custom_domain', 'tenants')
    op.drop_index('ix_tenants_slug', 'tenants')
    op.drop_index('ix_tenants_name', 'tenants')
    op.drop_table('tenants')
