"""
Plugin management API: the blog plugin lifecycle for one tenant
"""

import asyncio

import httpx
import pytest
from sqlalchemy import inspect
from sqlmodel import select

from pluginhub.migrations.runner import get_applied_versions
from pluginhub.models.plugin_license import LicensePlan
from pluginhub.models.plugin_state import PluginStateRecord
from pluginhub.plugins.blog import BLOG_PLUGIN_ID
from pluginhub.plugins.types import (
    LifecycleHooks,
    PluginDependency,
    PluginManifest,
    PluginMigration,
    PluginStatus,
)
from pluginhub.services.license_service import LicenseService

BLOG = {"pluginId": BLOG_PLUGIN_ID}


@pytest.fixture
def admin(auth_headers, tenant):
    return auth_headers(tenant=tenant)


def _has_table(db, name):
    return inspect(db.connection()).has_table(name)


def _install_and_enable(client, headers):
    assert client.post("/api/plugins/install", json=BLOG, headers=headers).status_code == 200
    assert client.post("/api/plugins/enable", json=BLOG, headers=headers).status_code == 200


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy", "service": "pluginhub-api"}


def test_list_plugins_before_install(client, tenant):
    response = client.get("/api/plugins")

    assert response.status_code == 200
    body = response.json()
    assert body["tenant_id"] == tenant.id
    assert [p["manifest"]["id"] for p in body["plugins"]] == [BLOG_PLUGIN_ID]
    assert body["plugins"][0]["installed"] is False
    assert body["plugins"][0]["state"] is None
    assert "hooks" not in body["plugins"][0]["manifest"]


def test_blog_lifecycle(db, client, tenant, admin, registry):
    # Install grants the free tier
    response = client.post("/api/plugins/install", json=BLOG, headers=admin)
    assert response.status_code == 200
    assert response.json()["state"]["status"] == "installed"
    license = LicenseService(db).get_plugin_license(tenant.id, BLOG_PLUGIN_ID)
    assert license.plan == LicensePlan.FREE
    assert license.features == ["posts"]

    response = client.get("/api/blog/posts")
    assert response.status_code == 403
    assert response.json()["error"] == "Plugin is not enabled"

    # Enable runs the migrations
    response = client.post("/api/plugins/enable", json=BLOG, headers=admin)
    assert response.status_code == 200
    assert response.json()["state"]["status"] == "enabled"
    assert get_applied_versions(db, BLOG_PLUGIN_ID) == ["1.0.0", "1.1.0"]

    response = client.get("/api/blog/posts")
    assert response.status_code == 200
    assert response.json()["total"] == 2

    listed = client.get("/api/plugins").json()["plugins"][0]
    assert listed["installed"] is True
    assert listed["state"]["status"] == "enabled"

    # Free tier does not include export
    response = client.get("/api/blog/export", headers=admin)
    assert response.status_code == 403
    assert response.json()["error"] == "Feature not available"

    response = client.post("/api/plugins/disable", json=BLOG, headers=admin)
    assert response.status_code == 200
    assert response.json()["state"]["status"] == "disabled"
    assert client.get("/api/blog/posts").status_code == 403

    # Last tenant out: rollback and unregister
    response = client.post("/api/plugins/uninstall", json=BLOG, headers=admin)
    assert response.status_code == 200
    assert response.json()["unregistered"] is True
    assert registry.get_plugin(BLOG_PLUGIN_ID) is None
    assert get_applied_versions(db, BLOG_PLUGIN_ID) == []
    assert not _has_table(db, "blog_posts")
    assert LicenseService(db).get_plugin_license(tenant.id, BLOG_PLUGIN_ID) is None
    assert client.get("/api/plugins").json()["plugins"] == []

    # The built-in catalog allows a fresh install
    response = client.post("/api/plugins/install", json=BLOG, headers=admin)
    assert response.status_code == 200
    assert registry.get_plugin(BLOG_PLUGIN_ID) is not None


def test_enable_twice_is_a_no_op(db, client, admin):
    _install_and_enable(client, admin)

    response = client.post("/api/plugins/enable", json=BLOG, headers=admin)

    assert response.status_code == 200
    assert response.json()["state"]["status"] == "enabled"
    assert get_applied_versions(db, BLOG_PLUGIN_ID) == ["1.0.0", "1.1.0"]


def test_install_twice_is_rejected(client, admin):
    client.post("/api/plugins/install", json=BLOG, headers=admin)

    response = client.post("/api/plugins/install", json=BLOG, headers=admin)

    assert response.status_code == 400
    assert response.json()["error"] == "Plugin is already installed"


def test_unknown_plugin_and_not_installed(client, admin):
    response = client.post("/api/plugins/install", json={"pluginId": "acme/nothing"}, headers=admin)
    assert response.status_code == 404

    response = client.post("/api/plugins/enable", json=BLOG, headers=admin)
    assert response.status_code == 404
    assert response.json()["error"] == "Plugin is not installed"


def test_invalid_plugin_id_is_a_validation_error(client, admin):
    response = client.post("/api/plugins/install", json={"pluginId": "Not Valid"}, headers=admin)

    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed"


def test_actions_require_a_tenant(make_client, tenant, auth_headers):
    client = make_client("localhost:8000")

    response = client.post("/api/plugins/install", json=BLOG, headers=auth_headers())

    assert response.status_code == 404
    assert response.json()["error"] == "Tenant not found"


def test_enable_requires_license(db, client, tenant, admin):
    client.post("/api/plugins/install", json=BLOG, headers=admin)
    LicenseService(db).revoke_license(tenant.id, BLOG_PLUGIN_ID)

    response = client.post("/api/plugins/enable", json=BLOG, headers=admin)

    assert response.status_code == 403
    assert response.json()["error"] == "Plugin not licensed"


def test_states_are_tenant_scoped(db, make_client, tenant, auth_headers):
    other = LicenseService(db).create_tenant("Globex")
    acme = make_client("acme.localhost")
    globex = make_client(f"{other.slug}.localhost")

    _install_and_enable(acme, auth_headers(tenant=tenant))

    body = globex.get("/api/plugins").json()
    assert body["tenant_id"] == other.id
    assert body["plugins"][0]["installed"] is False
    assert globex.get("/api/blog/posts").status_code == 403

    # A second tenant keeps the migrations alive when the first uninstalls
    globex_admin = auth_headers(tenant=other)
    assert globex.post("/api/plugins/install", json=BLOG, headers=globex_admin).status_code == 200
    response = acme.post("/api/plugins/uninstall", json=BLOG, headers=auth_headers(tenant=tenant))
    assert response.json()["unregistered"] is False
    assert get_applied_versions(db, BLOG_PLUGIN_ID) == ["1.0.0", "1.1.0"]
    assert _has_table(db, "blog_posts")


def test_config_update_merges(client, admin):
    client.post("/api/plugins/install", json=BLOG, headers=admin)

    client.put(f"/api/plugins/{BLOG_PLUGIN_ID}/config", json={"config": {"perPage": 5, "theme": "light"}}, headers=admin)
    response = client.put(f"/api/plugins/{BLOG_PLUGIN_ID}/config", json={"config": {"theme": "dark"}}, headers=admin)

    assert response.status_code == 200
    assert response.json()["state"]["config"] == {"perPage": 5, "theme": "dark"}
    assert client.get(f"/api/plugins/{BLOG_PLUGIN_ID}").json()["state"]["config"] == {"perPage": 5, "theme": "dark"}


def test_plugin_detail_and_graph_views(client):
    response = client.get(f"/api/plugins/{BLOG_PLUGIN_ID}")
    assert response.status_code == 200
    assert response.json()["manifest"]["version"] == "1.1.0"
    assert response.json()["installed"] is False

    assert client.get(f"/api/plugins/{BLOG_PLUGIN_ID}/dependencies").json()["dependencies"] == []
    assert client.get(f"/api/plugins/{BLOG_PLUGIN_ID}/dependents").json()["dependents"] == []
    assert client.get("/api/plugins/acme/missing").status_code == 404


def _broken_manifest() -> PluginManifest:
    return PluginManifest(
        id="acme/broken",
        name="Broken",
        version="1.0.0",
        migrations=[
            PluginMigration(
                version="1.0.0",
                name="Broken migration",
                up="CREATE TABLE broken_a (id INTEGER); THIS IS NOT SQL;",
                down="DROP TABLE IF EXISTS broken_a;",
            )
        ],
    )


def test_migration_failure_disables_plugin(db, registry, client, tenant, admin):
    asyncio.run(registry.register(_broken_manifest()))
    body = {"pluginId": "acme/broken"}
    client.post("/api/plugins/install", json=body, headers=admin)

    response = client.post("/api/plugins/enable", json=body, headers=admin)

    assert response.status_code == 500
    assert response.json()["error"] == "Migration failed"
    record = db.get(PluginStateRecord, (tenant.id, "acme/broken"))
    db.refresh(record)
    assert record.status == PluginStatus.DISABLED
    assert get_applied_versions(db, "acme/broken") == []


def test_on_enable_failure_persists_error_state(db, registry, client, tenant, admin):
    def refuse():
        raise RuntimeError("not configured")

    asyncio.run(registry.register(
        PluginManifest(id="acme/picky", name="Picky", version="1.0.0", hooks=LifecycleHooks(on_enable=refuse))
    ))
    body = {"pluginId": "acme/picky"}
    client.post("/api/plugins/install", json=body, headers=admin)

    response = client.post("/api/plugins/enable", json=body, headers=admin)

    assert response.status_code == 400
    assert response.json()["error"] == "onEnable hook failed: not configured"
    record = db.get(PluginStateRecord, (tenant.id, "acme/picky"))
    db.refresh(record)
    assert record.status == PluginStatus.ERROR
    assert record.error == "not configured"


@pytest.fixture
def two_tenant_app(db, make_client, tenant):
    """Started application plus two tenants and their hosts"""
    other = LicenseService(db).create_tenant("Globex")
    app = make_client().app
    return app, [(tenant, "acme.localhost"), (other, f"{other.slug}.localhost")]


@pytest.mark.asyncio
async def test_concurrent_enables_keep_tenant_states_apart(db, registry, two_tenant_app, auth_headers):
    async def slow_enable():
        await asyncio.sleep(0.05)

    await registry.register(
        PluginManifest(id="acme/slow", name="Slow", version="1.0.0", hooks=LifecycleHooks(on_enable=slow_enable))
    )
    app, tenants = two_tenant_app
    transport = httpx.ASGITransport(app=app)
    body = {"pluginId": "acme/slow"}

    async def post(owner, host, path):
        async with httpx.AsyncClient(transport=transport, base_url=f"http://{host}") as client:
            return await client.post(path, json=body, headers=auth_headers(tenant=owner))

    for owner, host in tenants:
        assert (await post(owner, host, "/api/plugins/install")).status_code == 200

    responses = await asyncio.gather(*(post(owner, host, "/api/plugins/enable") for owner, host in tenants))

    for response in responses:
        assert response.status_code == 200
        assert response.json()["state"]["status"] == "enabled"
    for owner, _ in tenants:
        record = db.get(PluginStateRecord, (owner.id, "acme/slow"))
        db.refresh(record)
        assert record.status == PluginStatus.ENABLED


def test_disable_and_uninstall_blocked_by_dependents(db, registry, client, admin):
    asyncio.run(registry.register(
        PluginManifest(id="acme/blog-seo", name="Blog SEO", version="1.0.0",
                       dependencies=[PluginDependency(plugin_id=BLOG_PLUGIN_ID)])
    ))
    _install_and_enable(client, admin)

    response = client.post("/api/plugins/disable", json=BLOG, headers=admin)
    assert response.status_code == 403
    assert response.json()["error"] == "Cannot disable: required by acme/blog-seo"

    response = client.post("/api/plugins/uninstall", json=BLOG, headers=admin)
    assert response.status_code == 403

    dependents = client.get(f"/api/plugins/{BLOG_PLUGIN_ID}/dependents").json()["dependents"]
    assert dependents == ["acme/blog-seo"]
    dependencies = client.get("/api/plugins/acme/blog-seo/dependencies").json()["dependencies"]
    assert dependencies[0]["registered"] is True
    assert dependencies[0]["installed_version"] == "1.1.0"
    assert db.exec(select(PluginStateRecord)).all()[0].status == PluginStatus.ENABLED
