"""
Tenant detection and license guards for multi-tenant isolation

``detect_tenant`` runs as an application-wide dependency: it maps the Host
header to an active tenant and attaches a ``TenantContext`` to
``request.state``. A missing tenant is not an error; routes opt in to the
guards below.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Set

from fastapi import Depends, Request, status
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select
import structlog

from pluginhub.core.config import get_settings
from pluginhub.core.database import get_session
from pluginhub.core.errors import PlatformError
from pluginhub.models.plugin_license import PluginLicense
from pluginhub.models.tenant import Tenant, TenantStatus
from pluginhub.plugins.types import PluginStatus
from pluginhub.services.entitlement import licensed_plugin_ids, now_epoch
from pluginhub.services.license_service import LicenseService
from pluginhub.services.plugin_state_service import PluginStateService

logger = structlog.get_logger(__name__)
settings = get_settings()


@dataclass
class TenantContext:
    """Tenant resolved for the current request, empty on the main domain"""
    tenant: Optional[Tenant] = None
    tenant_id: Optional[str] = None
    licenses: List[PluginLicense] = field(default_factory=list)
    licensed_plugin_ids: Set[str] = field(default_factory=set)

    @property
    def has_tenant(self) -> bool:
        return self.tenant is not None


def _strip_port(host: str) -> str:
    return host.strip().lower().split(":")[0]


def extract_tenant_from_host(host: str, base_domain: str) -> Optional[str]:
    """
    Candidate tenant identifier for a Host header.

    ``acme.example.com`` with base ``example.com`` -> ``"acme"``;
    ``example.com``, ``www.example.com`` and ``app.example.com`` -> None;
    any host outside the base domain is returned whole as a custom domain.
    """
    host = _strip_port(host or "")
    base = _strip_port(base_domain or "")
    if not host:
        return None

    if host == base:
        return None
    if not base or not host.endswith("." + base):
        return host

    subdomain = host[: -(len(base) + 1)]
    if not subdomain or subdomain in settings.RESERVED_SUBDOMAINS:
        return None
    return subdomain


def get_tenant_by_slug_or_domain(session: Session, slug_or_domain: str) -> Optional[Tenant]:
    """Active tenant by custom domain first, then by slug"""
    tenant = session.exec(
        select(Tenant)
        .where(Tenant.custom_domain == slug_or_domain)
        .where(Tenant.status == TenantStatus.ACTIVE)
    ).first()
    if tenant is None:
        tenant = session.exec(
            select(Tenant)
            .where(Tenant.slug == slug_or_domain)
            .where(Tenant.status == TenantStatus.ACTIVE)
        ).first()
    return tenant


def resolve_tenant(session: Session, host: str, base_domain: Optional[str] = None) -> TenantContext:
    """Build the tenant context for a host"""
    candidate = extract_tenant_from_host(host, base_domain or settings.BASE_DOMAIN)
    if candidate is None:
        return TenantContext()

    try:
        tenant = get_tenant_by_slug_or_domain(session, candidate)
    except OperationalError as e:
        # Platform tables not created yet
        logger.warning(f"Tenant lookup unavailable: {e}")
        session.rollback()
        return TenantContext()

    if tenant is None:
        logger.debug(f"No active tenant for host candidate: {candidate}")
        return TenantContext()

    now = now_epoch()
    licenses = LicenseService(session).get_tenant_licenses(tenant.id, now=now)
    return TenantContext(
        tenant=tenant,
        tenant_id=tenant.id,
        licenses=licenses,
        licensed_plugin_ids=licensed_plugin_ids(licenses, now),
    )


async def detect_tenant(request: Request, session: Session = Depends(get_session)) -> TenantContext:
    """Resolve the tenant from the Host header and store it on the request"""
    context = resolve_tenant(session, request.headers.get("host", ""))
    request.state.tenant_context = context
    logger.debug(f"Tenant context: {context.tenant_id}")
    return context


async def require_tenant(context: TenantContext = Depends(detect_tenant)) -> TenantContext:
    if not context.has_tenant:
        raise PlatformError(status.HTTP_404_NOT_FOUND, "Tenant not found")
    return context


def require_plugin(plugin_id: str):
    """Dependency factory: 403 unless the tenant holds an active license"""
    async def check_plugin(context: TenantContext = Depends(detect_tenant)) -> TenantContext:
        if plugin_id not in context.licensed_plugin_ids:
            raise PlatformError(
                status.HTTP_403_FORBIDDEN,
                "Plugin not licensed",
                f"This feature requires an active subscription for the {plugin_id} plugin.",
                pluginId=plugin_id,
            )
        return context
    return check_plugin


def require_feature(plugin_id: str, feature_key: str):
    """Dependency factory: tenant, license and an enabled feature flag"""
    async def check_feature(
        context: TenantContext = Depends(detect_tenant),
        session: Session = Depends(get_session),
    ) -> TenantContext:
        if not context.has_tenant:
            raise PlatformError(status.HTTP_404_NOT_FOUND, "Tenant not found")

        if plugin_id not in context.licensed_plugin_ids:
            raise PlatformError(
                status.HTTP_403_FORBIDDEN,
                "Plugin not licensed",
                f"This feature requires the {plugin_id} plugin.",
                pluginId=plugin_id,
            )

        if not LicenseService(session).has_feature_flag(context.tenant_id, plugin_id, feature_key):
            raise PlatformError(
                status.HTTP_403_FORBIDDEN,
                "Feature not available",
                "This feature requires a higher tier subscription.",
                pluginId=plugin_id,
                featureKey=feature_key,
            )
        return context
    return check_feature


def plugin_enabled(plugin_id: str):
    """Dependency factory: 403 unless the tenant's persisted state is enabled"""
    async def check_enabled(
        context: TenantContext = Depends(detect_tenant),
        session: Session = Depends(get_session),
    ) -> TenantContext:
        record = None
        if context.has_tenant:
            record = PluginStateService(session).get_state(context.tenant_id, plugin_id)
        if record is None or record.status != PluginStatus.ENABLED:
            raise PlatformError(
                status.HTTP_403_FORBIDDEN,
                "Plugin is not enabled",
                pluginId=plugin_id,
            )
        return context
    return check_enabled
