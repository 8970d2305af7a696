"""
Schemas module
"""

from pluginhub.schemas.token import TokenPayload
from pluginhub.schemas.plugin import (
    FeatureFlagUpdate,
    LicenseGrantRequest,
    LicenseRevokeRequest,
    PluginActionRequest,
    PluginConfigUpdate,
    TenantCreate,
    UsageTrackRequest,
)

__all__ = [
    "TokenPayload",
    "FeatureFlagUpdate",
    "LicenseGrantRequest",
    "LicenseRevokeRequest",
    "PluginActionRequest",
    "PluginConfigUpdate",
    "TenantCreate",
    "UsageTrackRequest",
]
