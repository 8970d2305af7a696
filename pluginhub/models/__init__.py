from pluginhub.models.tenant import Tenant, TenantPlan, TenantStatus
from pluginhub.models.plugin_license import (
    LicensePlan,
    LicenseStatus,
    PluginFeatureFlag,
    PluginLicense,
    PluginTier,
    PluginUsage,
)
from pluginhub.models.plugin_state import PluginMigrationRecord, PluginStateRecord
