"""
Tenant model - Multi-tenancy foundation
"""

from sqlmodel import Field, SQLModel
from datetime import datetime
from typing import Optional
from enum import Enum
import uuid


class TenantPlan(str, Enum):
    """Platform subscription plan"""
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class TenantStatus(str, Enum):
    """Tenant account status"""
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


class Tenant(SQLModel, table=True):
    """Tenant (SaaS customer) resolved from subdomain or custom domain"""

    __tablename__ = "tenants"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(index=True)
    slug: str = Field(unique=True, index=True, description="Unique tenant identifier for subdomain routing")
    custom_domain: Optional[str] = Field(default=None, unique=True, index=True)

    plan: TenantPlan = Field(default=TenantPlan.FREE)
    status: TenantStatus = Field(default=TenantStatus.ACTIVE, index=True)

    # Billing linkage
    stripe_customer_id: Optional[str] = Field(default=None, index=True)
    stripe_subscription_id: Optional[str] = None
    subscription_status: Optional[str] = None
    trial_ends_at: Optional[int] = Field(default=None, description="Epoch seconds")

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None
