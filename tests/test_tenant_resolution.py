"""
Tenant resolution from Host headers
"""

import pytest

from pluginhub.core.tenant_middleware import extract_tenant_from_host, resolve_tenant
from pluginhub.models.plugin_license import LicensePlan, LicenseStatus
from pluginhub.models.tenant import TenantStatus
from pluginhub.services.license_service import LicenseService


@pytest.mark.parametrize(
    "host, base, expected",
    [
        ("acme.example.com", "example.com", "acme"),
        ("ACME.Example.com:8443", "example.com", "acme"),
        ("acme.localhost:8000", "localhost:8000", "acme"),
        ("example.com", "example.com", None),
        ("example.com:80", "example.com:443", None),
        ("www.example.com", "example.com", None),
        ("app.example.com", "example.com", None),
        ("blog.acme.io", "example.com", "blog.acme.io"),
        ("eu.acme.example.com", "example.com", "eu.acme"),
        ("", "example.com", None),
    ],
)
def test_extract_tenant_from_host(host, base, expected):
    assert extract_tenant_from_host(host, base) == expected


def test_resolve_by_slug(db, tenant):
    context = resolve_tenant(db, "acme.example.com", "example.com")

    assert context.has_tenant
    assert context.tenant_id == tenant.id
    assert context.licenses == []
    assert context.licensed_plugin_ids == set()


def test_resolve_by_custom_domain_first(db):
    service = LicenseService(db)
    by_slug = service.create_tenant("Blog Acme Io")
    by_domain = service.create_tenant("Acme Blog", custom_domain="Blog-Acme-Io.example.org")

    # Host outside the base domain is a custom domain candidate
    context = resolve_tenant(db, "blog-acme-io.example.org", "example.com")
    assert context.tenant_id == by_domain.id

    context = resolve_tenant(db, f"{by_slug.slug}.example.com", "example.com")
    assert context.tenant_id == by_slug.id


def test_inactive_or_unknown_tenant_gives_empty_context(db, tenant):
    assert not resolve_tenant(db, "nobody.example.com", "example.com").has_tenant
    assert not resolve_tenant(db, "example.com", "example.com").has_tenant

    tenant.status = TenantStatus.SUSPENDED
    db.add(tenant)
    db.commit()
    assert not resolve_tenant(db, "acme.example.com", "example.com").has_tenant


def test_context_contains_only_active_licenses(db, tenant):
    service = LicenseService(db)
    service.grant_license(tenant.id, "acme/active", LicensePlan.LIFETIME)
    service.grant_license(tenant.id, "acme/revoked", LicensePlan.LIFETIME)
    service.revoke_license(tenant.id, "acme/revoked")
    expired = service.grant_license(tenant.id, "acme/expired", LicensePlan.MONTHLY)
    expired.expires_at = 1
    db.add(expired)
    db.commit()

    context = resolve_tenant(db, "acme.example.com", "example.com")

    assert context.licensed_plugin_ids == {"acme/active"}
    assert [lic.status for lic in context.licenses] == [LicenseStatus.ACTIVE]
