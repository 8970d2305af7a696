"""
Shared plugin registry core

``BasePluginRegistry`` holds the manifest catalog, the state map and the
priority load order. It is used by both the backend registry and the
client-side mirror; neither is a module-level singleton.

States are keyed by ``(tenant_id, plugin_id)``. The client mirror and
standalone callers use the ``None`` tenant; the backend passes the tenant of
the request so concurrent requests never share a state object.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union
import inspect
import re
import structlog

from pluginhub.core.events import PluginEvent, PluginEventBus, PluginEventListener, PluginEventType
from pluginhub.plugins.types import (
    PLUGIN_ID_PATTERN,
    HookFn,
    PluginFailureReason,
    PluginLoadResult,
    PluginManifest,
    PluginState,
    PluginStatus,
)
from pluginhub.plugins.versioning import compare_versions, satisfies_version

logger = structlog.get_logger(__name__)

_PLUGIN_ID_RE = re.compile(PLUGIN_ID_PATTERN)

StateSink = Callable[[PluginState], Union[None, Awaitable[None]]]
StateKey = Tuple[Optional[str], str]


def _error_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


async def _invoke(hook: Optional[HookFn]) -> None:
    if hook is None:
        return
    result = hook()
    if inspect.isawaitable(result):
        await result


class BasePluginRegistry:
    """In-memory plugin catalog with lifecycle state machine"""

    def __init__(self, state_sink: Optional[StateSink] = None):
        self._plugins: Dict[str, PluginManifest] = {}
        self._states: Dict[StateKey, PluginState] = {}
        self._load_order: List[str] = []
        self._events = PluginEventBus()
        self.state_sink = state_sink

    # ----- Registration -----

    async def register(self, manifest: PluginManifest) -> PluginLoadResult:
        """Validate and register a manifest, then run its ``on_load`` hook"""
        error = self._validate(manifest)
        if error:
            return PluginLoadResult.fail(manifest.id, error, PluginFailureReason.VALIDATION)

        error = self._check_conflicts(manifest)
        if error:
            return PluginLoadResult.fail(manifest.id, error, PluginFailureReason.CONFLICT)

        error = self._check_dependencies(manifest)
        if error:
            return PluginLoadResult.fail(manifest.id, error, PluginFailureReason.DEPENDENCY)

        self._plugins[manifest.id] = manifest
        if (None, manifest.id) not in self._states:
            self._states[(None, manifest.id)] = PluginState(
                id=manifest.id,
                status=PluginStatus.INSTALLED,
                version=manifest.version,
            )
        self._update_load_order(manifest)
        logger.info(f"Plugin registered: {manifest.id}@{manifest.version}")

        await self._emit(PluginEventType.LOADED, manifest.id)

        # The manifest stays registered when on_load fails
        try:
            await _invoke(manifest.hooks.on_load)
        except Exception as e:
            message = f"onLoad hook failed: {_error_message(e)}"
            logger.error(f"Error in onLoad for plugin {manifest.id}: {e}", exc_info=True)
            await self._emit(PluginEventType.ERROR, manifest.id, {"error": message})
            return PluginLoadResult.fail(manifest.id, message, PluginFailureReason.HOOK_FAILED)

        return PluginLoadResult.ok(manifest.id)

    async def unregister(self, plugin_id: str) -> None:
        """Run ``on_uninstall`` (errors logged) and drop every trace of the plugin"""
        manifest = self._plugins.get(plugin_id)
        if manifest is None:
            return

        keys = [key for key in self._states if key[1] == plugin_id]
        for key in keys:
            self._set_state(self._states[key], status=PluginStatus.UNINSTALLING)

        try:
            await _invoke(manifest.hooks.on_uninstall)
        except Exception as e:
            logger.error(f"Error in onUninstall for plugin {plugin_id}: {e}", exc_info=True)

        self._plugins.pop(plugin_id, None)
        for key in keys:
            self._states.pop(key, None)
        self._load_order = [pid for pid in self._load_order if pid != plugin_id]
        logger.info(f"Plugin unregistered: {plugin_id}")

        await self._emit(PluginEventType.UNINSTALLED, plugin_id)

    # ----- Lifecycle -----

    async def enable(self, plugin_id: str, tenant_id: Optional[str] = None) -> PluginLoadResult:
        manifest = self._plugins.get(plugin_id)
        state = self._states.get((tenant_id, plugin_id))
        if manifest is None or state is None:
            return PluginLoadResult.fail(plugin_id, "Plugin not found", PluginFailureReason.NOT_FOUND)

        if state.status == PluginStatus.ENABLED:
            return PluginLoadResult.ok(plugin_id)

        try:
            await _invoke(manifest.hooks.on_enable)
        except Exception as e:
            reason = _error_message(e)
            logger.error(f"Error in onEnable for plugin {plugin_id}: {e}", exc_info=True)
            self._set_state(state, status=PluginStatus.ERROR, error=reason)
            await self._emit(PluginEventType.ERROR, plugin_id, {"error": reason}, tenant_id)
            return PluginLoadResult.fail(
                plugin_id, f"onEnable hook failed: {reason}", PluginFailureReason.HOOK_FAILED
            )

        self._set_state(state, status=PluginStatus.ENABLED, error=None, enabled_at=datetime.utcnow())
        logger.info(f"Plugin enabled: {plugin_id}")
        await self._emit(PluginEventType.ENABLED, plugin_id, tenant_id=tenant_id)
        return PluginLoadResult.ok(plugin_id)

    async def disable(self, plugin_id: str, tenant_id: Optional[str] = None) -> PluginLoadResult:
        manifest = self._plugins.get(plugin_id)
        state = self._states.get((tenant_id, plugin_id))
        if manifest is None or state is None:
            return PluginLoadResult.fail(plugin_id, "Plugin not found", PluginFailureReason.NOT_FOUND)

        if state.status == PluginStatus.DISABLED:
            return PluginLoadResult.ok(plugin_id)

        dependents = self.get_dependents(plugin_id)
        if dependents:
            return PluginLoadResult.fail(
                plugin_id,
                f"Cannot disable: required by {', '.join(dependents)}",
                PluginFailureReason.DEPENDENTS,
            )

        try:
            await _invoke(manifest.hooks.on_disable)
        except Exception as e:
            logger.error(f"Error in onDisable for plugin {plugin_id}: {e}", exc_info=True)
            return PluginLoadResult.fail(
                plugin_id,
                f"onDisable hook failed: {_error_message(e)}",
                PluginFailureReason.HOOK_FAILED,
            )

        self._set_state(state, status=PluginStatus.DISABLED, error=None, disabled_at=datetime.utcnow())
        logger.info(f"Plugin disabled: {plugin_id}")
        await self._emit(PluginEventType.DISABLED, plugin_id, tenant_id=tenant_id)
        return PluginLoadResult.ok(plugin_id)

    async def update_plugin_config(
        self,
        plugin_id: str,
        config: Dict[str, Any],
        tenant_id: Optional[str] = None,
    ) -> Optional[PluginState]:
        """Shallow-merge ``config`` into the plugin's state and persist it"""
        state = self._states.get((tenant_id, plugin_id))
        if state is None:
            return None

        self._set_state(state, config={**state.config, **config})
        if self.state_sink is not None:
            result = self.state_sink(state)
            if inspect.isawaitable(result):
                await result

        await self._emit(PluginEventType.SETTINGS_CHANGED, plugin_id, {"config": config}, tenant_id)
        return state

    def reconcile_state(
        self,
        plugin_id: str,
        state: Optional[PluginState],
        tenant_id: Optional[str] = None,
    ) -> Optional[PluginState]:
        """
        Overwrite the cached state of a registered plugin with a durable one.

        ``None`` means the plugin is not installed for that tenant and drops the
        cached entry. Returns the previous state. No events are published.
        """
        if plugin_id not in self._plugins:
            return None
        key = (tenant_id, plugin_id)
        previous = self._states.get(key)
        if state is None:
            self._states.pop(key, None)
        else:
            self._states[key] = state
        return previous

    async def apply_state(
        self,
        plugin_id: str,
        state: Optional[PluginState],
        tenant_id: Optional[str] = None,
    ) -> None:
        """Reconcile a state reported elsewhere and publish the status change it implies"""
        if plugin_id not in self._plugins:
            return
        previous = self.reconcile_state(plugin_id, state, tenant_id)
        old_status = previous.status if previous else None
        new_status = state.status if state else None
        if new_status == old_status:
            return

        if new_status == PluginStatus.ENABLED:
            await self._emit(PluginEventType.ENABLED, plugin_id, tenant_id=tenant_id)
        elif new_status == PluginStatus.ERROR:
            await self._emit(PluginEventType.ERROR, plugin_id, {"error": state.error}, tenant_id)
        elif new_status is None:
            await self._emit(PluginEventType.UNINSTALLED, plugin_id, tenant_id=tenant_id)
        elif new_status == PluginStatus.DISABLED or old_status == PluginStatus.ENABLED:
            await self._emit(PluginEventType.DISABLED, plugin_id, tenant_id=tenant_id)

    # ----- Accessors -----

    def get_plugin(self, plugin_id: str) -> Optional[PluginManifest]:
        return self._plugins.get(plugin_id)

    def get_plugin_state(self, plugin_id: str, tenant_id: Optional[str] = None) -> Optional[PluginState]:
        return self._states.get((tenant_id, plugin_id))

    def get_all_plugins(self) -> List[PluginManifest]:
        return list(self._plugins.values())

    def get_all_plugin_states(self, tenant_id: Optional[str] = None) -> List[PluginState]:
        return [state for (scope, _), state in self._states.items() if scope == tenant_id]

    def get_enabled_plugins(self, tenant_id: Optional[str] = None) -> List[PluginManifest]:
        """Enabled plugins, in load order"""
        enabled = []
        for pid in self._load_order:
            state = self._states.get((tenant_id, pid))
            if pid in self._plugins and state is not None and state.status == PluginStatus.ENABLED:
                enabled.append(self._plugins[pid])
        return enabled

    def get_load_order(self) -> List[str]:
        return list(self._load_order)

    def get_dependents(self, plugin_id: str) -> List[str]:
        """Registered plugins that declare ``plugin_id`` as a dependency"""
        return [
            manifest.id
            for manifest in self._plugins.values()
            if any(dep.plugin_id == plugin_id for dep in manifest.dependencies)
        ]

    def on(self, event_type: PluginEventType, listener: PluginEventListener) -> Callable[[], None]:
        return self._events.on(event_type, listener)

    # ----- Internals -----

    def _validate(self, manifest: PluginManifest) -> Optional[str]:
        if not manifest.id:
            return "Plugin ID is required"
        if not manifest.name:
            return "Plugin name is required"
        if not manifest.version:
            return "Plugin version is required"
        if not _PLUGIN_ID_RE.match(manifest.id):
            return f"Invalid plugin ID format: {manifest.id} (expected vendor/name)"
        return None

    def _check_conflicts(self, manifest: PluginManifest) -> Optional[str]:
        for conflict_id in manifest.conflicts:
            if conflict_id in self._plugins and conflict_id != manifest.id:
                return f"Conflicts with installed plugin: {conflict_id}"

        for existing in self._plugins.values():
            if existing.id != manifest.id and manifest.id in existing.conflicts:
                return f"Plugin {existing.id} declares conflict with this plugin"
        return None

    def _check_dependencies(self, manifest: PluginManifest) -> Optional[str]:
        for dep in manifest.dependencies:
            installed = self._plugins.get(dep.plugin_id)
            if installed is None:
                return f"Missing dependency: {dep.plugin_id}"
            if dep.min_version and compare_versions(installed.version, dep.min_version) < 0:
                return (
                    f"Dependency {dep.plugin_id} requires version >= {dep.min_version}, "
                    f"found {installed.version}"
                )
            if not satisfies_version(installed.version, max_version=dep.max_version):
                return (
                    f"Dependency {dep.plugin_id} requires version <= {dep.max_version}, "
                    f"found {installed.version}"
                )
        return None

    def _update_load_order(self, manifest: PluginManifest) -> None:
        """Stable insert by descending priority; ties keep registration order"""
        self._load_order = [pid for pid in self._load_order if pid != manifest.id]
        for i, pid in enumerate(self._load_order):
            existing = self._plugins.get(pid)
            if existing is not None and existing.priority < manifest.priority:
                self._load_order.insert(i, manifest.id)
                return
        self._load_order.append(manifest.id)

    def _set_state(self, state: PluginState, **changes: Any) -> None:
        for key, value in changes.items():
            setattr(state, key, value)
        state.updated_at = datetime.utcnow()

    async def _emit(
        self,
        event_type: PluginEventType,
        plugin_id: str,
        data: Optional[Dict[str, Any]] = None,
        tenant_id: Optional[str] = None,
    ) -> None:
        if tenant_id is not None:
            data = {**(data or {}), "tenant_id": tenant_id}
        await self._events.publish(PluginEvent(event_type, plugin_id, data))
