"""
REST synchronisation for the client registry mirror

The mirror pulls ``GET /api/plugins`` and reconciles its catalog and states
from the response. Manifests arrive as plain data, so mirrored plugins carry
no lifecycle hooks.
"""

from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field
import httpx
import structlog

from pluginhub.client.registry import ClientPluginRegistry
from pluginhub.models.plugin_license import LicensePlan, LicenseStatus
from pluginhub.plugins.types import PluginManifest, PluginState
from pluginhub.services.entitlement import is_license_active, license_has_feature

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 10.0


class PluginSyncError(Exception):
    """The backend could not be reached or answered with an error"""


class LicenseSnapshot(BaseModel):
    """License as reported by ``GET /api/plugins/licenses``"""
    plugin_id: str
    plan: LicensePlan
    status: LicenseStatus
    features: List[str] = Field(default_factory=list)
    expires_at: Optional[int] = None


class _ApiClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.transport = transport
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get(self, path: str) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                transport=self.transport,
                timeout=self.timeout,
            ) as client:
                response = await client.get(path, headers=self._headers())
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Timeout fetching {path}: {e}")
            raise PluginSyncError(f"Timeout fetching {path}") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Backend error {e.response.status_code} for {path}")
            raise PluginSyncError(f"Backend error {e.response.status_code} for {path}") from e
        except httpx.HTTPError as e:
            logger.error(f"Request to {path} failed: {e}")
            raise PluginSyncError(f"Request to {path} failed: {e}") from e


class PluginSyncClient(_ApiClient):
    """Pulls plugin manifests and tenant states into a client mirror"""

    async def fetch_plugins(self) -> List[Dict[str, Any]]:
        return (await self._get("/api/plugins")).get("plugins", [])

    async def sync(self, registry: ClientPluginRegistry) -> int:
        """
        Reconcile ``registry`` with the backend.

        New or changed manifests are registered, manifests the backend no longer
        lists are unregistered, and every state is replaced by the server's.
        Plugins the tenant has not installed carry no state. Status changes are
        published on the mirror's event bus. Returns the number of plugins
        mirrored.
        """
        entries = await self.fetch_plugins()

        manifests = {}
        states: Dict[str, Optional[PluginState]] = {}
        for entry in entries:
            manifest = PluginManifest.model_validate(entry["manifest"])
            manifests[manifest.id] = manifest
            state = entry.get("state")
            installed = entry.get("installed", state is not None)
            states[manifest.id] = PluginState.model_validate(state) if installed and state else None

        known = set()
        for plugin_id in [m.id for m in registry.get_all_plugins()]:
            if plugin_id not in manifests:
                await registry.unregister(plugin_id)
            else:
                known.add(plugin_id)

        registered = await self._register_all(registry, manifests)
        # Drop the placeholder state of new plugins before applying the server's
        for plugin_id in registered:
            if plugin_id not in known:
                registry.reconcile_state(plugin_id, None)

        for plugin_id, state in states.items():
            await registry.apply_state(plugin_id, state)

        logger.info(f"Synced {len(manifests)} plugins from {self.base_url}")
        return len(manifests)

    async def _register_all(self, registry: ClientPluginRegistry, manifests: Dict[str, PluginManifest]) -> List[str]:
        """Register new or changed manifests; returns the ids that were registered"""
        registered = []
        # Dependencies may be listed after their dependents, so retry until no progress
        pending = [
            manifest for manifest in manifests.values()
            if registry.get_plugin(manifest.id) != manifest
        ]
        while pending:
            failed = []
            for manifest in pending:
                result = await registry.register(manifest)
                if not result.success and registry.get_plugin(manifest.id) is None:
                    failed.append(manifest)
                else:
                    registered.append(manifest.id)
            if len(failed) == len(pending):
                for manifest in failed:
                    logger.warning(f"Could not mirror plugin {manifest.id}")
                break
            pending = failed
        return registered


class LicenseClient(_ApiClient):
    """Tenant license lookups against ``GET /api/plugins/licenses``"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._licenses: Dict[str, LicenseSnapshot] = {}

    async def refresh(self) -> Set[str]:
        data = await self._get("/api/plugins/licenses")
        self._licenses = {
            lic.plugin_id: lic
            for lic in (LicenseSnapshot.model_validate(item) for item in data.get("licenses", []))
        }
        return set(self._licenses)

    def has_plugin_license(self, plugin_id: str, now: Optional[int] = None) -> bool:
        return is_license_active(self._licenses.get(plugin_id), now)

    def has_plugin_feature(self, plugin_id: str, feature: str, now: Optional[int] = None) -> bool:
        return license_has_feature(self._licenses.get(plugin_id), feature, now)
