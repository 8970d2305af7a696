"""
Plugin licensing models: licenses, tiers, feature flags and usage
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON, UniqueConstraint
from datetime import datetime
from typing import List, Optional
from enum import Enum
import uuid


class LicensePlan(str, Enum):
    """Billing plan a license was granted under"""
    FREE = "free"
    TRIAL = "trial"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    LIFETIME = "lifetime"


class LicenseStatus(str, Enum):
    """License status"""
    ACTIVE = "active"
    TRIALING = "trialing"
    EXPIRED = "expired"
    CANCELED = "canceled"


class PluginLicense(SQLModel, table=True):
    """One license per (tenant, plugin)"""

    __tablename__ = "plugin_licenses"
    __table_args__ = (UniqueConstraint("tenant_id", "plugin_id", name="uq_plugin_license_tenant_plugin"),)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    plugin_id: str = Field(index=True)

    plan: LicensePlan = Field(nullable=False)
    status: LicenseStatus = Field(default=LicenseStatus.ACTIVE, index=True)
    # Copied from the tier at grant time, never recomputed
    features: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    expires_at: Optional[int] = Field(default=None, index=True, description="Epoch seconds, null = never")
    trial_used: bool = Field(default=False)

    # Subscription details
    subscription_id: Optional[str] = None
    price_id: Optional[str] = None
    amount: Optional[int] = Field(default=None, description="Price in cents")
    currency: str = Field(default="usd")

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class PluginTier(SQLModel, table=True):
    """Subscription tier and the features it grants"""

    __tablename__ = "plugin_tiers"

    plugin_id: str = Field(primary_key=True)
    tier_id: str = Field(primary_key=True)
    name: str
    features: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    price_monthly: Optional[int] = None
    price_yearly: Optional[int] = None
    price_lifetime: Optional[int] = None
    trial_days: int = Field(default=14)


class PluginFeatureFlag(SQLModel, table=True):
    """Per-tenant feature override, finer grained than the license feature list"""

    __tablename__ = "plugin_feature_flags"
    __table_args__ = (
        UniqueConstraint("tenant_id", "plugin_id", "feature_key", name="uq_feature_flag_tenant_plugin_key"),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    plugin_id: str = Field(index=True)
    feature_key: str
    is_enabled: bool = Field(default=False)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class PluginUsage(SQLModel, table=True):
    """Metered usage sample"""

    __tablename__ = "plugin_usage"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    plugin_id: str = Field(index=True)
    metric_name: str
    quantity: int = Field(default=1)
    period: str = Field(index=True, description="YYYY-MM billing period")
    recorded_at: datetime = Field(default_factory=datetime.utcnow)
