"""
SaaS API endpoints: marketplace, tenant context, license administration and usage
"""

from fastapi import APIRouter, Depends, status
from sqlmodel import Session
import re
import structlog

from pluginhub.core.database import get_session
from pluginhub.core.dependencies import get_current_user
from pluginhub.core.errors import PlatformError
from pluginhub.core.permissions import Permission, require_permission
from pluginhub.core.tenant_middleware import TenantContext, require_tenant
from pluginhub.models.tenant import Tenant
from pluginhub.plugins.catalog import get_builtin_manifest
from pluginhub.plugins.registry import PluginRegistry, get_registry
from pluginhub.schemas.plugin import (
    FeatureFlagUpdate,
    LicenseGrantRequest,
    LicenseRevokeRequest,
    TenantCreate,
    UsageTrackRequest,
)
from pluginhub.schemas.token import TokenPayload
from pluginhub.services.license_service import LicenseService, tier_rank

logger = structlog.get_logger(__name__)

router = APIRouter()
admin_router = APIRouter()

_PERIOD = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


# ============================================================================
# Marketplace
# ============================================================================

@router.get("/marketplace")
async def list_marketplace(registry: PluginRegistry = Depends(get_registry)):
    """Registered plugins with their tiers"""
    return {
        "plugins": [
            {
                "id": manifest.id,
                "name": manifest.name,
                "description": manifest.description,
                "version": manifest.version,
                "author": manifest.author,
                "tiers": [
                    tier.model_dump()
                    for tier in sorted(manifest.tiers, key=lambda t: tier_rank(t.tier_id))
                ],
            }
            for manifest in registry.get_all_plugins()
        ]
    }


@router.get("/marketplace/{plugin_id:path}/pricing")
async def get_pricing(
    plugin_id: str,
    registry: PluginRegistry = Depends(get_registry),
    session: Session = Depends(get_session),
):
    licenses = LicenseService(session)
    tiers = licenses.get_plugin_pricing(plugin_id)
    if not tiers:
        manifest = registry.get_plugin(plugin_id)
        if manifest is None:
            raise PlatformError(status.HTTP_404_NOT_FOUND, "Plugin not found", pluginId=plugin_id)
        licenses.sync_plugin_tiers(manifest)
        tiers = licenses.get_plugin_pricing(plugin_id)
    return {"pluginId": plugin_id, "tiers": [tier.model_dump() for tier in tiers]}


# ============================================================================
# Tenant context
# ============================================================================

@router.get("/tenant")
async def get_current_tenant(context: TenantContext = Depends(require_tenant)):
    tenant = context.tenant
    return {
        "id": tenant.id,
        "name": tenant.name,
        "slug": tenant.slug,
        "custom_domain": tenant.custom_domain,
        "plan": tenant.plan,
        "status": tenant.status,
        "trial_ends_at": tenant.trial_ends_at,
    }


@router.get("/licenses")
async def get_tenant_licenses(context: TenantContext = Depends(require_tenant)):
    return {
        "licenses": [lic.model_dump(mode="json") for lic in context.licenses],
        "licensed_plugins": sorted(context.licensed_plugin_ids),
    }


# ============================================================================
# Usage metering
# ============================================================================

@router.post("/usage/track", status_code=status.HTTP_201_CREATED)
async def track_usage(
    body: UsageTrackRequest,
    user: TokenPayload = Depends(get_current_user),
    context: TenantContext = Depends(require_tenant),
    session: Session = Depends(get_session),
):
    if body.plugin_id not in context.licensed_plugin_ids:
        raise PlatformError(
            status.HTTP_403_FORBIDDEN,
            "Plugin not licensed",
            f"This feature requires an active subscription for the {body.plugin_id} plugin.",
            pluginId=body.plugin_id,
        )
    usage = LicenseService(session).track_usage(
        context.tenant_id, body.plugin_id, body.metric_name, body.quantity
    )
    return {"success": True, "period": usage.period, "id": usage.id}


@router.get("/usage/{period}")
async def get_usage(
    period: str,
    user: TokenPayload = Depends(require_permission(Permission.USAGE_VIEW)),
    context: TenantContext = Depends(require_tenant),
    session: Session = Depends(get_session),
):
    if not _PERIOD.match(period):
        raise PlatformError(status.HTTP_400_BAD_REQUEST, "Validation failed", "Period must be YYYY-MM")
    return {
        "period": period,
        "usage": LicenseService(session).get_usage_stats(context.tenant_id, period),
    }


# ============================================================================
# Administration
# ============================================================================

@admin_router.post("/tenants", status_code=status.HTTP_201_CREATED)
async def create_tenant(
    body: TenantCreate,
    user: TokenPayload = Depends(require_permission(Permission.TENANTS_MANAGE)),
    session: Session = Depends(get_session),
):
    tenant = LicenseService(session).create_tenant(body.name, plan=body.plan, custom_domain=body.custom_domain)
    logger.info(f"Tenant {tenant.slug} created by user {user.sub}")
    return {"tenantId": tenant.id, "slug": tenant.slug}


@admin_router.post("/licenses/grant", status_code=status.HTTP_201_CREATED)
async def grant_license(
    body: LicenseGrantRequest,
    user: TokenPayload = Depends(require_permission(Permission.LICENSES_MANAGE)),
    registry: PluginRegistry = Depends(get_registry),
    session: Session = Depends(get_session),
):
    if session.get(Tenant, body.tenant_id) is None:
        raise PlatformError(status.HTTP_404_NOT_FOUND, "Tenant not found")

    manifest = registry.get_plugin(body.plugin_id) or get_builtin_manifest(body.plugin_id)
    if manifest is None:
        raise PlatformError(status.HTTP_404_NOT_FOUND, "Plugin not found", pluginId=body.plugin_id)

    licenses = LicenseService(session)
    licenses.sync_plugin_tiers(manifest)
    license = licenses.grant_license(
        body.tenant_id,
        body.plugin_id,
        body.plan,
        tier_id=body.tier_id,
        subscription_id=body.subscription_id,
        price_id=body.price_id,
        amount=body.amount,
        trial_days=body.trial_days,
    )
    return {"licenseId": license.id, "license": license.model_dump(mode="json")}


@admin_router.post("/licenses/revoke")
async def revoke_license(
    body: LicenseRevokeRequest,
    user: TokenPayload = Depends(require_permission(Permission.LICENSES_MANAGE)),
    session: Session = Depends(get_session),
):
    if not LicenseService(session).revoke_license(body.tenant_id, body.plugin_id):
        raise PlatformError(status.HTTP_404_NOT_FOUND, "License not found", pluginId=body.plugin_id)
    return {"success": True}


@admin_router.post("/licenses/check-expired")
async def check_expired_licenses(
    user: TokenPayload = Depends(require_permission(Permission.LICENSES_MANAGE)),
    session: Session = Depends(get_session),
):
    return {"expired": LicenseService(session).check_expired_licenses()}


@admin_router.post("/feature-flags")
async def set_feature_flag(
    body: FeatureFlagUpdate,
    user: TokenPayload = Depends(require_permission(Permission.LICENSES_MANAGE)),
    session: Session = Depends(get_session),
):
    if session.get(Tenant, body.tenant_id) is None:
        raise PlatformError(status.HTTP_404_NOT_FOUND, "Tenant not found")
    flag = LicenseService(session).set_feature_flag(
        body.tenant_id, body.plugin_id, body.feature_key, body.is_enabled
    )
    return {"success": True, "flag": flag.model_dump(mode="json")}
