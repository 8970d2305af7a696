"""
License & subscription service
Tenants, plugin tiers, licenses, feature flags and usage metering
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
import re

from sqlalchemy import func, inspect, text
from sqlmodel import Session, select
import structlog

from pluginhub.core.config import get_settings
from pluginhub.models.plugin_license import (
    LicensePlan,
    LicenseStatus,
    PluginFeatureFlag,
    PluginLicense,
    PluginTier,
    PluginUsage,
)
from pluginhub.models.tenant import Tenant, TenantPlan, TenantStatus
from pluginhub.plugins.types import PluginManifest
from pluginhub.services.entitlement import (
    is_license_active,
    license_has_feature,
    now_epoch,
)

logger = structlog.get_logger(__name__)
settings = get_settings()

DAY_SECONDS = 24 * 60 * 60

# Pricing display order
TIER_ORDER = ["free", "trial", "monthly", "yearly", "lifetime"]

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def slugify(name: str) -> str:
    """Lower-case, collapse non-alphanumerics to ``-``"""
    return _SLUG_STRIP.sub("-", name.lower()).strip("-")


def tier_rank(tier_id: str) -> int:
    return TIER_ORDER.index(tier_id) if tier_id in TIER_ORDER else len(TIER_ORDER)


def license_expiry(plan: LicensePlan, now: int, trial_days: Optional[int] = None) -> Optional[int]:
    """Expiry timestamp for a license granted at ``now``; None = never"""
    if plan == LicensePlan.TRIAL:
        return now + (trial_days or settings.DEFAULT_TRIAL_DAYS) * DAY_SECONDS
    if plan == LicensePlan.MONTHLY:
        return now + 30 * DAY_SECONDS
    if plan == LicensePlan.YEARLY:
        return now + 365 * DAY_SECONDS
    return None


class LicenseService:
    """Licensing operations bound to one database session"""

    def __init__(self, session: Session):
        self.session = session

    # ----- Tenants -----

    def generate_unique_slug(self, name: str) -> str:
        """Slug from ``name``; on collision append -2, -3, ..."""
        base = slugify(name) or "tenant"
        reserved = set(settings.RESERVED_SUBDOMAINS)

        candidate = base
        suffix = 1
        while candidate in reserved or self.get_tenant_by_slug(candidate) is not None:
            suffix += 1
            candidate = f"{base}-{suffix}"
        return candidate

    def get_tenant_by_slug(self, slug: str) -> Optional[Tenant]:
        return self.session.exec(select(Tenant).where(Tenant.slug == slug)).first()

    def create_tenant(
        self,
        name: str,
        plan: TenantPlan = TenantPlan.FREE,
        custom_domain: Optional[str] = None,
    ) -> Tenant:
        """Create an active tenant; free plans start a trial window"""
        trial_ends_at = None
        if plan == TenantPlan.FREE:
            trial_ends_at = now_epoch() + settings.TENANT_TRIAL_DAYS * DAY_SECONDS

        tenant = Tenant(
            name=name,
            slug=self.generate_unique_slug(name),
            custom_domain=custom_domain.lower() if custom_domain else None,
            plan=plan,
            status=TenantStatus.ACTIVE,
            trial_ends_at=trial_ends_at,
        )
        self.session.add(tenant)
        self.session.commit()
        self.session.refresh(tenant)
        logger.info(f"Tenant created: {tenant.id} ({tenant.slug})")
        return tenant

    # ----- Tiers -----

    def get_plugin_tier(self, plugin_id: str, tier_id: str) -> Optional[PluginTier]:
        return self.session.get(PluginTier, (plugin_id, tier_id))

    def get_plugin_pricing(self, plugin_id: str) -> List[PluginTier]:
        tiers = self.session.exec(select(PluginTier).where(PluginTier.plugin_id == plugin_id)).all()
        return sorted(tiers, key=lambda tier: tier_rank(tier.tier_id))

    def sync_plugin_tiers(self, manifest: PluginManifest) -> int:
        """Upsert the tiers a manifest declares"""
        for definition in manifest.tiers:
            tier = self.get_plugin_tier(manifest.id, definition.tier_id)
            if tier is None:
                tier = PluginTier(plugin_id=manifest.id, tier_id=definition.tier_id, name=definition.name)
            tier.name = definition.name
            tier.features = list(definition.features)
            tier.price_monthly = definition.price_monthly
            tier.price_yearly = definition.price_yearly
            tier.price_lifetime = definition.price_lifetime
            tier.trial_days = definition.trial_days
            self.session.add(tier)
        self.session.commit()
        return len(manifest.tiers)

    # ----- Licenses -----

    def get_plugin_license(self, tenant_id: str, plugin_id: str) -> Optional[PluginLicense]:
        return self.session.exec(
            select(PluginLicense)
            .where(PluginLicense.tenant_id == tenant_id)
            .where(PluginLicense.plugin_id == plugin_id)
        ).first()

    def get_tenant_licenses(
        self,
        tenant_id: str,
        active_only: bool = True,
        now: Optional[int] = None,
    ) -> List[PluginLicense]:
        licenses = self.session.exec(
            select(PluginLicense).where(PluginLicense.tenant_id == tenant_id)
        ).all()
        if not active_only:
            return list(licenses)
        now = now if now is not None else now_epoch()
        return [lic for lic in licenses if is_license_active(lic, now)]

    def grant_license(
        self,
        tenant_id: str,
        plugin_id: str,
        plan: LicensePlan,
        tier_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        price_id: Optional[str] = None,
        amount: Optional[int] = None,
        trial_days: Optional[int] = None,
    ) -> PluginLicense:
        """
        Grant (or re-grant) a plugin license to a tenant.

        Features are copied from the tier at grant time; later tier edits do
        not change existing licenses. One license exists per (tenant, plugin).
        """
        now = now_epoch()
        tier = self.get_plugin_tier(plugin_id, tier_id or plan.value)
        if trial_days is None and tier is not None and plan == LicensePlan.TRIAL:
            trial_days = tier.trial_days

        license = self.get_plugin_license(tenant_id, plugin_id)
        if license is None:
            license = PluginLicense(tenant_id=tenant_id, plugin_id=plugin_id, plan=plan)

        license.plan = plan
        license.status = LicenseStatus.ACTIVE
        license.features = list(tier.features) if tier else []
        license.expires_at = license_expiry(plan, now, trial_days)
        license.trial_used = license.trial_used or plan == LicensePlan.TRIAL
        license.subscription_id = subscription_id
        license.price_id = price_id
        license.amount = amount
        license.updated_at = datetime.utcnow()

        self.session.add(license)
        self.session.commit()
        self.session.refresh(license)
        logger.info(f"License granted: {plugin_id} ({plan.value}) to tenant {tenant_id}")
        return license

    def revoke_license(self, tenant_id: str, plugin_id: str) -> bool:
        license = self.get_plugin_license(tenant_id, plugin_id)
        if license is None:
            return False
        license.status = LicenseStatus.CANCELED
        license.updated_at = datetime.utcnow()
        self.session.add(license)
        self.session.commit()
        logger.info(f"License revoked: {plugin_id} for tenant {tenant_id}")
        return True

    def check_expired_licenses(self, now: Optional[int] = None) -> int:
        """Flip active licenses past ``expires_at`` to expired; returns the count"""
        now = now if now is not None else now_epoch()
        expired = self.session.exec(
            select(PluginLicense)
            .where(PluginLicense.status == LicenseStatus.ACTIVE)
            .where(PluginLicense.expires_at != None)  # noqa: E711
            .where(PluginLicense.expires_at <= now)
        ).all()

        for license in expired:
            license.status = LicenseStatus.EXPIRED
            license.updated_at = datetime.utcnow()
            self.session.add(license)
        self.session.commit()

        if expired:
            logger.info(f"Expired {len(expired)} plugin licenses")
        return len(expired)

    def has_plugin_license(self, tenant_id: str, plugin_id: str, now: Optional[int] = None) -> bool:
        return is_license_active(self.get_plugin_license(tenant_id, plugin_id), now)

    def has_plugin_feature(self, tenant_id: str, plugin_id: str, feature: str, now: Optional[int] = None) -> bool:
        return license_has_feature(self.get_plugin_license(tenant_id, plugin_id), feature, now)

    # ----- Feature flags -----

    def get_feature_flag(self, tenant_id: str, plugin_id: str, feature_key: str) -> Optional[PluginFeatureFlag]:
        return self.session.exec(
            select(PluginFeatureFlag)
            .where(PluginFeatureFlag.tenant_id == tenant_id)
            .where(PluginFeatureFlag.plugin_id == plugin_id)
            .where(PluginFeatureFlag.feature_key == feature_key)
        ).first()

    def has_feature_flag(self, tenant_id: str, plugin_id: str, feature_key: str) -> bool:
        flag = self.get_feature_flag(tenant_id, plugin_id, feature_key)
        return bool(flag and flag.is_enabled)

    def set_feature_flag(self, tenant_id: str, plugin_id: str, feature_key: str, is_enabled: bool) -> PluginFeatureFlag:
        flag = self.get_feature_flag(tenant_id, plugin_id, feature_key)
        if flag is None:
            flag = PluginFeatureFlag(tenant_id=tenant_id, plugin_id=plugin_id, feature_key=feature_key)
        flag.is_enabled = is_enabled
        flag.updated_at = datetime.utcnow()
        self.session.add(flag)
        self.session.commit()
        self.session.refresh(flag)
        return flag

    # ----- Uninstall -----

    def delete_tenant_plugin_data(
        self,
        tenant_id: str,
        plugin_id: str,
        tenant_tables: Iterable[str] = (),
    ) -> Dict[str, int]:
        """Remove one tenant's rows, license and feature flags for a plugin"""
        deleted: Dict[str, int] = {}
        inspector = inspect(self.session.connection())

        for table in tenant_tables:
            if not _IDENTIFIER.match(table):
                raise ValueError(f"Invalid table name: {table}")
            if not inspector.has_table(table):
                continue
            result = self.session.execute(
                text(f"DELETE FROM {table} WHERE tenant_id = :tenant_id"),
                {"tenant_id": tenant_id},
            )
            deleted[table] = result.rowcount or 0

        license = self.get_plugin_license(tenant_id, plugin_id)
        if license is not None:
            self.session.delete(license)
            deleted["plugin_licenses"] = 1

        flags = self.session.exec(
            select(PluginFeatureFlag)
            .where(PluginFeatureFlag.tenant_id == tenant_id)
            .where(PluginFeatureFlag.plugin_id == plugin_id)
        ).all()
        for flag in flags:
            self.session.delete(flag)
        deleted["plugin_feature_flags"] = len(flags)

        self.session.commit()
        logger.info(f"Deleted plugin data for {plugin_id} in tenant {tenant_id}: {deleted}")
        return deleted

    # ----- Usage -----

    def track_usage(self, tenant_id: str, plugin_id: str, metric_name: str, quantity: int = 1) -> PluginUsage:
        usage = PluginUsage(
            tenant_id=tenant_id,
            plugin_id=plugin_id,
            metric_name=metric_name,
            quantity=quantity,
            period=datetime.utcnow().strftime("%Y-%m"),
        )
        self.session.add(usage)
        self.session.commit()
        self.session.refresh(usage)
        return usage

    def get_usage_stats(self, tenant_id: str, period: str) -> List[Dict[str, Any]]:
        """Usage totals per (plugin, metric) for a YYYY-MM period"""
        rows = self.session.exec(
            select(PluginUsage.plugin_id, PluginUsage.metric_name, func.sum(PluginUsage.quantity))
            .where(PluginUsage.tenant_id == tenant_id)
            .where(PluginUsage.period == period)
            .group_by(PluginUsage.plugin_id, PluginUsage.metric_name)
            .order_by(PluginUsage.plugin_id, PluginUsage.metric_name)
        ).all()
        return [
            {"plugin_id": plugin_id, "metric_name": metric_name, "total": int(total or 0)}
            for plugin_id, metric_name, total in rows
        ]
