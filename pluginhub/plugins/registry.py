"""
Backend plugin registry

One registry is created per application (see ``pluginhub.main.create_app``)
and handed to routes through the ``get_registry`` dependency.
"""

from typing import Any, Dict, List, Optional

from fastapi import Request

from pluginhub.plugins.base import BasePluginRegistry, StateSink
from pluginhub.plugins.types import PluginMigration, PluginState


class PluginRegistry(BasePluginRegistry):
    """Server-side registry: manifests plus the backend contributions they carry"""

    def __init__(self, state_sink: Optional[StateSink] = None):
        super().__init__(state_sink=state_sink)

    def get_migrations(self, plugin_id: str) -> List[PluginMigration]:
        manifest = self.get_plugin(plugin_id)
        return list(manifest.migrations) if manifest else []

    def get_dependencies(self, plugin_id: str) -> List[Dict[str, Any]]:
        """Declared dependencies with whether each one is currently registered"""
        manifest = self.get_plugin(plugin_id)
        if manifest is None:
            return []
        return [
            {
                **dep.model_dump(),
                "registered": self.get_plugin(dep.plugin_id) is not None,
                "installed_version": getattr(self.get_plugin(dep.plugin_id), "version", None),
            }
            for dep in manifest.dependencies
        ]

    def describe(self, plugin_id: str, state: Optional[PluginState] = None) -> Optional[Dict[str, Any]]:
        """JSON-ready manifest with the given tenant state attached"""
        manifest = self.get_plugin(plugin_id)
        if manifest is None:
            return None
        return {
            "manifest": manifest.model_dump(mode="json"),
            "state": state.model_dump(mode="json") if state else None,
        }


def get_registry(request: Request) -> PluginRegistry:
    """FastAPI dependency returning the application's registry"""
    return request.app.state.plugin_registry
