"""
Client registry mirror: UI aggregation and REST synchronisation
"""

import httpx
import pytest

from pluginhub.client.registry import ClientPluginRegistry
from pluginhub.client.sync import LicenseClient, PluginSyncClient, PluginSyncError
from pluginhub.core.events import PluginEventType
from pluginhub.plugins.blog import BLOG_PLUGIN_ID, build_manifest
from pluginhub.plugins.registry import PluginRegistry
from pluginhub.plugins.types import (
    ComponentKind,
    ComponentRef,
    NavigationScope,
    PluginComponent,
    PluginDependency,
    PluginManifest,
    PluginNavigationItem,
    PluginSettingsPanel,
    PluginState,
    PluginStatus,
)


def _panel(label, order=None):
    return PluginSettingsPanel(
        label=label,
        component=ComponentRef(kind=ComponentKind.PANEL, handle=f"{label}.Settings"),
        order=order,
    )


def _widget(slot, handle):
    return PluginComponent(slot=slot, component=ComponentRef(kind=ComponentKind.WIDGET, handle=handle))


@pytest.fixture
def manifests():
    return [
        PluginManifest(
            id="acme/alpha",
            name="Alpha",
            version="1.0.0",
            navigation=[
                PluginNavigationItem(label="Alpha unordered"),
                PluginNavigationItem(label="Alpha first", order=1),
            ],
            admin_navigation=[PluginNavigationItem(label="Alpha admin", order=5)],
            settings=_panel("alpha"),
            components=[_widget("dashboard.widgets", "alpha.Widget"), _widget("sidebar", "alpha.Side")],
        ),
        PluginManifest(
            id="acme/beta",
            name="Beta",
            version="1.0.0",
            navigation=[PluginNavigationItem(label="Beta", order=50)],
            user_navigation=[PluginNavigationItem(label="Beta profile")],
            settings=_panel("beta", order=10),
            components=[_widget("dashboard.widgets", "beta.Widget")],
        ),
        PluginManifest(
            id="acme/gamma",
            name="Gamma",
            version="1.0.0",
            navigation=[PluginNavigationItem(label="Gamma", order=0)],
            settings=_panel("gamma", order=0),
        ),
    ]


@pytest.mark.asyncio
async def test_aggregates_only_enabled_plugins(manifests):
    registry = ClientPluginRegistry()
    for manifest in manifests:
        await registry.register(manifest)
    await registry.enable("acme/alpha")
    await registry.enable("acme/beta")

    labels = [item.label for item in registry.get_navigation_items()]
    assert labels == ["Alpha first", "Beta", "Alpha unordered"]

    assert [item.label for item in registry.get_navigation_items(NavigationScope.ADMIN)] == ["Alpha admin"]
    assert [item.label for item in registry.get_navigation_items(NavigationScope.USER)] == ["Beta profile"]

    handles = [c.component.handle for c in registry.get_components_for_slot("dashboard.widgets")]
    assert sorted(handles) == ["alpha.Widget", "beta.Widget"]
    assert registry.get_components_for_slot("footer") == []

    assert [panel.label for panel in registry.get_settings_panels()] == ["beta", "alpha"]


@pytest.mark.asyncio
async def test_routes_follow_enabled_state():
    registry = ClientPluginRegistry()
    await registry.register(build_manifest())
    assert registry.get_plugin_routes() == []

    await registry.enable(BLOG_PLUGIN_ID)
    assert [route.path for route in registry.get_plugin_routes()] == [
        "/blog", "/blog/new", "/blog/:id", "/blog/:id/edit",
    ]

    await registry.disable(BLOG_PLUGIN_ID)
    assert registry.get_plugin_routes() == []


async def _backend_payload(enabled_ids, extra=(), disabled_ids=()):
    """Body of GET /api/plugins as the backend renders it"""
    backend = PluginRegistry()
    for manifest in [build_manifest(), *extra]:
        await backend.register(manifest)
    plugins = []
    for plugin_id in backend.get_load_order():
        state = None
        version = backend.get_plugin(plugin_id).version
        if plugin_id in enabled_ids:
            state = PluginState(id=plugin_id, status=PluginStatus.ENABLED, version=version)
        elif plugin_id in disabled_ids:
            state = PluginState(id=plugin_id, status=PluginStatus.DISABLED, version=version)
        plugins.append(backend.describe(plugin_id, state) | {"installed": state is not None})
    return {"tenant_id": "tenant-1", "plugins": plugins}


@pytest.mark.asyncio
async def test_sync_mirrors_backend_manifests_and_states():
    addon = PluginManifest(
        id="acme/addon",
        name="Addon",
        version="0.1.0",
        priority=200,
        dependencies=[PluginDependency(plugin_id=BLOG_PLUGIN_ID, min_version="1.0.0")],
    )
    payload = await _backend_payload({BLOG_PLUGIN_ID}, extra=[addon])
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=payload)

    registry = ClientPluginRegistry()
    await registry.register(PluginManifest(id="acme/stale", name="Stale", version="1.0.0"))
    sync = PluginSyncClient("http://acme.example.com", token="abc", transport=httpx.MockTransport(handler))

    assert await sync.sync(registry) == 2

    assert requests[0].url.path == "/api/plugins"
    assert requests[0].headers["Authorization"] == "Bearer abc"
    # The addon is listed first but depends on the blog
    assert registry.get_load_order() == ["acme/addon", BLOG_PLUGIN_ID]
    assert registry.get_plugin("acme/stale") is None
    assert registry.get_plugin_state(BLOG_PLUGIN_ID).status == PluginStatus.ENABLED
    # Registered on the server but not installed for this tenant
    assert registry.get_plugin("acme/addon") is not None
    assert registry.get_plugin_state("acme/addon") is None
    assert [item.label for item in registry.get_navigation_items()] == ["Blog"]


@pytest.mark.asyncio
async def test_sync_replaces_states_on_each_pull():
    payloads = [await _backend_payload({BLOG_PLUGIN_ID}), await _backend_payload(set())]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payloads.pop(0))

    registry = ClientPluginRegistry()
    sync = PluginSyncClient("http://acme.example.com", transport=httpx.MockTransport(handler))

    await sync.sync(registry)
    assert [m.id for m in registry.get_enabled_plugins()] == [BLOG_PLUGIN_ID]

    await sync.sync(registry)
    assert registry.get_enabled_plugins() == []
    assert registry.get_plugin(BLOG_PLUGIN_ID) is not None


@pytest.mark.asyncio
async def test_sync_publishes_remote_status_changes():
    payloads = [
        await _backend_payload(set()),
        await _backend_payload({BLOG_PLUGIN_ID}),
        await _backend_payload(set(), disabled_ids={BLOG_PLUGIN_ID}),
        await _backend_payload(set()),
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payloads.pop(0))

    registry = ClientPluginRegistry()
    events = []
    for event_type in (PluginEventType.ENABLED, PluginEventType.DISABLED, PluginEventType.UNINSTALLED):
        registry.on(event_type, lambda event: events.append((event.type, event.plugin_id)))
    sync = PluginSyncClient("http://acme.example.com", transport=httpx.MockTransport(handler))

    await sync.sync(registry)
    assert registry.get_plugin_state(BLOG_PLUGIN_ID) is None
    assert events == []

    await sync.sync(registry)
    assert registry.get_plugin_state(BLOG_PLUGIN_ID).status == PluginStatus.ENABLED
    assert events == [(PluginEventType.ENABLED, BLOG_PLUGIN_ID)]

    await sync.sync(registry)
    assert registry.get_plugin_state(BLOG_PLUGIN_ID).status == PluginStatus.DISABLED
    assert events[1:] == [(PluginEventType.DISABLED, BLOG_PLUGIN_ID)]

    await sync.sync(registry)
    assert registry.get_plugin_state(BLOG_PLUGIN_ID) is None
    assert events[2:] == [(PluginEventType.UNINSTALLED, BLOG_PLUGIN_ID)]
    assert registry.get_plugin(BLOG_PLUGIN_ID) is not None


@pytest.mark.asyncio
async def test_sync_raises_on_backend_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "Internal server error"}))
    sync = PluginSyncClient("http://acme.example.com", transport=transport)

    with pytest.raises(PluginSyncError):
        await sync.sync(ClientPluginRegistry())


@pytest.mark.asyncio
async def test_license_client_checks_licenses_and_features():
    body = {
        "licenses": [
            {"plugin_id": BLOG_PLUGIN_ID, "plan": "monthly", "status": "active", "features": ["posts", "export"], "expires_at": None},
            {"plugin_id": "acme/old", "plan": "monthly", "status": "active", "features": ["x"], "expires_at": 1},
        ],
        "licensed_plugins": [BLOG_PLUGIN_ID],
    }
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=body))
    licenses = LicenseClient("http://acme.example.com", token="abc", transport=transport)

    assert await licenses.refresh() == {BLOG_PLUGIN_ID, "acme/old"}
    assert licenses.has_plugin_license(BLOG_PLUGIN_ID)
    assert licenses.has_plugin_feature(BLOG_PLUGIN_ID, "export")
    assert not licenses.has_plugin_feature(BLOG_PLUGIN_ID, "analytics")
    assert not licenses.has_plugin_license("acme/old")
    assert not licenses.has_plugin_license("acme/unknown")
