"""
Client-side plugin registry mirror

Aggregates the UI contributions (routes, navigation, slot components and
settings panels) of enabled plugins. Contents come from the backend through
``pluginhub.client.sync``; the mirror never pushes state back.
"""

from typing import List

from pluginhub.plugins.base import BasePluginRegistry
from pluginhub.plugins.types import (
    DEFAULT_ORDER,
    NavigationScope,
    PluginComponent,
    PluginNavigationItem,
    PluginRoute,
    PluginSettingsPanel,
)


def _order(item) -> int:
    return item.order if item.order is not None else DEFAULT_ORDER


class ClientPluginRegistry(BasePluginRegistry):
    """Registry mirror with UI aggregation over enabled plugins"""

    def get_plugin_routes(self) -> List[PluginRoute]:
        return [route for manifest in self.get_enabled_plugins() for route in manifest.routes]

    def get_navigation_items(self, scope: NavigationScope = NavigationScope.MAIN) -> List[PluginNavigationItem]:
        """Navigation entries for one scope, ascending ``order``"""
        items = [
            item
            for manifest in self.get_enabled_plugins()
            for item in manifest.navigation_for(scope)
        ]
        return sorted(items, key=_order)

    def get_components_for_slot(self, slot: str) -> List[PluginComponent]:
        return [
            component
            for manifest in self.get_enabled_plugins()
            for component in manifest.components
            if component.slot == slot
        ]

    def get_settings_panels(self) -> List[PluginSettingsPanel]:
        panels = [manifest.settings for manifest in self.get_enabled_plugins() if manifest.settings]
        return sorted(panels, key=_order)
