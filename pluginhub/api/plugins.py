"""
Plugin management API endpoints

The registry holds manifests; per-tenant state lives in ``plugin_states`` and
is reconciled into the registry's slot for the request's tenant before every
lifecycle call. Routes persist the state object they reconciled, which the
registry updates in place.
"""

from fastapi import APIRouter, Depends, status
from sqlmodel import Session
import structlog

from pluginhub.core.database import get_session
from pluginhub.core.dependencies import get_current_user
from pluginhub.core.errors import PlatformError
from pluginhub.core.permissions import Permission, require_permission
from pluginhub.core.tenant_middleware import TenantContext, detect_tenant, require_tenant
from pluginhub.migrations.runner import rollback_plugin_migrations, run_plugin_migrations
from pluginhub.models.plugin_license import LicensePlan
from pluginhub.plugins.catalog import get_builtin_manifest
from pluginhub.plugins.registry import PluginRegistry, get_registry
from pluginhub.plugins.types import (
    PluginFailureReason,
    PluginLoadResult,
    PluginManifest,
    PluginState,
    PluginStatus,
)
from pluginhub.schemas.plugin import PluginActionRequest, PluginConfigUpdate
from pluginhub.schemas.token import TokenPayload
from pluginhub.services.license_service import LicenseService
from pluginhub.services.plugin_state_service import PluginStateService, to_plugin_state

logger = structlog.get_logger(__name__)
router = APIRouter()

_REASON_STATUS = {
    PluginFailureReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    PluginFailureReason.DEPENDENTS: status.HTTP_403_FORBIDDEN,
    PluginFailureReason.VALIDATION: status.HTTP_400_BAD_REQUEST,
    PluginFailureReason.CONFLICT: status.HTTP_400_BAD_REQUEST,
    PluginFailureReason.DEPENDENCY: status.HTTP_400_BAD_REQUEST,
    PluginFailureReason.HOOK_FAILED: status.HTTP_400_BAD_REQUEST,
}


def _raise_for_result(result: PluginLoadResult) -> None:
    if result.success:
        return
    raise PlatformError(
        _REASON_STATUS.get(result.reason, status.HTTP_400_BAD_REQUEST),
        result.error or "Plugin operation failed",
        pluginId=result.plugin_id,
        reason=result.reason.value if result.reason else None,
    )


def _get_manifest(registry: PluginRegistry, plugin_id: str) -> PluginManifest:
    manifest = registry.get_plugin(plugin_id)
    if manifest is None:
        raise PlatformError(status.HTTP_404_NOT_FOUND, "Plugin not found", pluginId=plugin_id)
    return manifest


def _require_installed(states: PluginStateService, registry: PluginRegistry, tenant_id: str, plugin_id: str) -> PluginState:
    """Reconcile the tenant's durable state into the registry, 404 when not installed"""
    _get_manifest(registry, plugin_id)
    if states.get_state(tenant_id, plugin_id) is None:
        raise PlatformError(status.HTTP_404_NOT_FOUND, "Plugin is not installed", pluginId=plugin_id)
    return states.reconcile(registry, tenant_id, plugin_id)


def _state_payload(state: PluginState) -> dict:
    return state.model_dump(mode="json")


@router.get("")
async def list_plugins(
    context: TenantContext = Depends(detect_tenant),
    registry: PluginRegistry = Depends(get_registry),
    session: Session = Depends(get_session),
):
    """Registered manifests in load order, with the tenant's states"""
    records = {}
    if context.has_tenant:
        records = {r.plugin_id: r for r in PluginStateService(session).list_states(context.tenant_id)}

    plugins = []
    for plugin_id in registry.get_load_order():
        record = records.get(plugin_id)
        state = to_plugin_state(record) if record else None
        plugins.append(registry.describe(plugin_id, state) | {"installed": record is not None})

    return {"tenant_id": context.tenant_id, "plugins": plugins}


@router.get("/licenses")
async def get_licenses(
    user: TokenPayload = Depends(get_current_user),
    context: TenantContext = Depends(detect_tenant),
):
    """Tenant and active licenses for the signed-in user"""
    return {
        "user": user.model_dump(),
        "tenant": context.tenant.model_dump(mode="json") if context.tenant else None,
        "licenses": [lic.model_dump(mode="json") for lic in context.licenses],
        "licensed_plugins": sorted(context.licensed_plugin_ids),
    }


@router.post("/install")
async def install_plugin(
    body: PluginActionRequest,
    user: TokenPayload = Depends(require_permission(Permission.PLUGINS_INSTALL)),
    context: TenantContext = Depends(require_tenant),
    registry: PluginRegistry = Depends(get_registry),
    session: Session = Depends(get_session),
):
    """Install a plugin for the tenant and grant its free tier"""
    plugin_id = body.plugin_id
    states = PluginStateService(session)
    licenses = LicenseService(session)

    if states.get_state(context.tenant_id, plugin_id) is not None:
        raise PlatformError(status.HTTP_400_BAD_REQUEST, "Plugin is already installed", pluginId=plugin_id)

    manifest = registry.get_plugin(plugin_id)
    if manifest is None:
        # Unregistered after its last uninstall
        manifest = get_builtin_manifest(plugin_id)
        if manifest is None:
            raise PlatformError(status.HTTP_404_NOT_FOUND, "Plugin not found", pluginId=plugin_id)
        result = await registry.register(manifest)
        if registry.get_plugin(plugin_id) is None:
            _raise_for_result(result)

    licenses.sync_plugin_tiers(manifest)
    if licenses.get_plugin_tier(plugin_id, "free") and not licenses.has_plugin_license(context.tenant_id, plugin_id):
        licenses.grant_license(context.tenant_id, plugin_id, LicensePlan.FREE)

    state = PluginState(id=plugin_id, status=PluginStatus.INSTALLED, version=manifest.version)
    states.save_state(context.tenant_id, state)
    registry.reconcile_state(plugin_id, state, context.tenant_id)

    logger.info(f"Plugin {plugin_id} installed for tenant {context.tenant_id} by user {user.sub}")
    return {"success": True, "pluginId": plugin_id, "state": _state_payload(state)}


@router.post("/enable")
async def enable_plugin(
    body: PluginActionRequest,
    user: TokenPayload = Depends(require_permission(Permission.PLUGINS_ENABLE)),
    context: TenantContext = Depends(require_tenant),
    registry: PluginRegistry = Depends(get_registry),
    session: Session = Depends(get_session),
):
    """Enable a plugin and apply its pending migrations"""
    plugin_id = body.plugin_id
    states = PluginStateService(session)
    state = _require_installed(states, registry, context.tenant_id, plugin_id)

    manifest = registry.get_plugin(plugin_id)
    if manifest.tiers and plugin_id not in context.licensed_plugin_ids:
        raise PlatformError(
            status.HTTP_403_FORBIDDEN,
            "Plugin not licensed",
            f"This feature requires an active subscription for the {plugin_id} plugin.",
            pluginId=plugin_id,
        )

    if state.status == PluginStatus.ENABLED:
        return {"success": True, "pluginId": plugin_id, "state": _state_payload(state)}

    result = await registry.enable(plugin_id, context.tenant_id)
    if not result.success:
        # on_enable failures leave the plugin in error
        states.save_state(context.tenant_id, state)
        _raise_for_result(result)

    try:
        run_plugin_migrations(plugin_id, session, registry)
    except Exception as e:
        logger.error(f"Migrations failed for {plugin_id}, disabling: {e}")
        rollback = await registry.disable(plugin_id, context.tenant_id)
        if not rollback.success:
            states.mark_status(context.tenant_id, plugin_id, PluginStatus.ERROR, error=str(e))
        else:
            states.save_state(context.tenant_id, state)
        raise PlatformError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Migration failed",
            str(e),
            pluginId=plugin_id,
        )

    states.save_state(context.tenant_id, state)
    logger.info(f"Plugin {plugin_id} enabled for tenant {context.tenant_id} by user {user.sub}")
    return {"success": True, "pluginId": plugin_id, "state": _state_payload(state)}


@router.post("/disable")
async def disable_plugin(
    body: PluginActionRequest,
    user: TokenPayload = Depends(require_permission(Permission.PLUGINS_DISABLE)),
    context: TenantContext = Depends(require_tenant),
    registry: PluginRegistry = Depends(get_registry),
    session: Session = Depends(get_session),
):
    plugin_id = body.plugin_id
    states = PluginStateService(session)
    state = _require_installed(states, registry, context.tenant_id, plugin_id)

    result = await registry.disable(plugin_id, context.tenant_id)
    _raise_for_result(result)

    states.save_state(context.tenant_id, state)
    logger.info(f"Plugin {plugin_id} disabled for tenant {context.tenant_id} by user {user.sub}")
    return {"success": True, "pluginId": plugin_id, "state": _state_payload(state)}


@router.post("/uninstall")
async def uninstall_plugin(
    body: PluginActionRequest,
    user: TokenPayload = Depends(require_permission(Permission.PLUGINS_UNINSTALL)),
    context: TenantContext = Depends(require_tenant),
    registry: PluginRegistry = Depends(get_registry),
    session: Session = Depends(get_session),
):
    """
    Remove a plugin from the tenant.

    Deletes the tenant's plugin rows, license, feature flags and state. When no
    tenant has the plugin installed anymore, its migrations are rolled back and
    the manifest is unregistered.
    """
    plugin_id = body.plugin_id
    states = PluginStateService(session)
    _require_installed(states, registry, context.tenant_id, plugin_id)
    manifest = registry.get_plugin(plugin_id)

    dependents = registry.get_dependents(plugin_id)
    if dependents:
        raise PlatformError(
            status.HTTP_403_FORBIDDEN,
            f"Cannot uninstall: required by {', '.join(dependents)}",
            pluginId=plugin_id,
        )

    deleted = LicenseService(session).delete_tenant_plugin_data(
        context.tenant_id, plugin_id, manifest.tenant_tables
    )
    states.delete_state(context.tenant_id, plugin_id)

    unregistered = False
    if states.count_installations(plugin_id) == 0:
        try:
            rollback_plugin_migrations(plugin_id, session, registry)
        except Exception as e:
            logger.error(f"Rollback failed for {plugin_id}: {e}")
            raise PlatformError(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Migration rollback failed",
                str(e),
                pluginId=plugin_id,
            )
        await registry.unregister(plugin_id)
        unregistered = True
    else:
        registry.reconcile_state(plugin_id, None, context.tenant_id)

    logger.info(f"Plugin {plugin_id} uninstalled for tenant {context.tenant_id} by user {user.sub}")
    return {"success": True, "pluginId": plugin_id, "unregistered": unregistered, "deleted": deleted}


@router.get("/{plugin_id:path}/dependencies")
async def get_plugin_dependencies(
    plugin_id: str,
    registry: PluginRegistry = Depends(get_registry),
):
    _get_manifest(registry, plugin_id)
    return {"pluginId": plugin_id, "dependencies": registry.get_dependencies(plugin_id)}


@router.get("/{plugin_id:path}/dependents")
async def get_plugin_dependents(
    plugin_id: str,
    registry: PluginRegistry = Depends(get_registry),
):
    _get_manifest(registry, plugin_id)
    return {"pluginId": plugin_id, "dependents": registry.get_dependents(plugin_id)}


@router.put("/{plugin_id:path}/config")
async def update_plugin_config(
    plugin_id: str,
    body: PluginConfigUpdate,
    user: TokenPayload = Depends(require_permission(Permission.PLUGINS_CONFIGURE)),
    context: TenantContext = Depends(require_tenant),
    registry: PluginRegistry = Depends(get_registry),
    session: Session = Depends(get_session),
):
    """Shallow-merge configuration into the tenant's plugin state"""
    states = PluginStateService(session)
    _require_installed(states, registry, context.tenant_id, plugin_id)

    state = await registry.update_plugin_config(plugin_id, body.config, context.tenant_id)
    states.save_state(context.tenant_id, state)
    logger.info(f"Plugin {plugin_id} config updated for tenant {context.tenant_id} by user {user.sub}")
    return {"success": True, "pluginId": plugin_id, "state": _state_payload(state)}


@router.get("/{plugin_id:path}")
async def get_plugin(
    plugin_id: str,
    context: TenantContext = Depends(detect_tenant),
    registry: PluginRegistry = Depends(get_registry),
    session: Session = Depends(get_session),
):
    """Manifest and the tenant's state for one plugin"""
    _get_manifest(registry, plugin_id)
    record = None
    if context.has_tenant:
        record = PluginStateService(session).get_state(context.tenant_id, plugin_id)
    state = to_plugin_state(record) if record else None
    return registry.describe(plugin_id, state) | {"installed": record is not None}
