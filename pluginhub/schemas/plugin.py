"""
Pydantic schemas for plugin management and SaaS administration
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional

from pluginhub.models.plugin_license import LicensePlan
from pluginhub.models.tenant import TenantPlan
from pluginhub.plugins.types import PLUGIN_ID_PATTERN


class PluginActionRequest(BaseModel):
    """Body of install / enable / disable / uninstall"""
    model_config = ConfigDict(populate_by_name=True)

    plugin_id: str = Field(..., alias="pluginId", min_length=3, pattern=PLUGIN_ID_PATTERN)


class PluginConfigUpdate(BaseModel):
    """Partial configuration, shallow-merged into the plugin state"""
    config: Dict[str, Any] = Field(default_factory=dict)


class TenantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    plan: TenantPlan = Field(default=TenantPlan.FREE)
    custom_domain: Optional[str] = Field(default=None, max_length=255)


class LicenseGrantRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tenant_id: str = Field(..., alias="tenantId")
    plugin_id: str = Field(..., alias="pluginId", pattern=PLUGIN_ID_PATTERN)
    plan: LicensePlan
    tier_id: Optional[str] = Field(default=None, alias="tierId")
    subscription_id: Optional[str] = Field(default=None, alias="subscriptionId")
    price_id: Optional[str] = Field(default=None, alias="priceId")
    amount: Optional[int] = Field(default=None, ge=0)
    trial_days: Optional[int] = Field(default=None, alias="trialDays", ge=1)


class LicenseRevokeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tenant_id: str = Field(..., alias="tenantId")
    plugin_id: str = Field(..., alias="pluginId")


class FeatureFlagUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tenant_id: str = Field(..., alias="tenantId")
    plugin_id: str = Field(..., alias="pluginId")
    feature_key: str = Field(..., alias="featureKey", min_length=1)
    is_enabled: bool = Field(default=True, alias="isEnabled")


class UsageTrackRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plugin_id: str = Field(..., alias="pluginId")
    metric_name: str = Field(..., alias="metricName", min_length=1)
    quantity: int = Field(default=1, ge=1)
