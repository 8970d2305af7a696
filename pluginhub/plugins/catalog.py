"""
Built-in plugin catalog

Plugins are known at import time; there is no remote installation.
"""

from typing import Callable, Dict, List, Optional
import structlog

from pluginhub.plugins.base import BasePluginRegistry
from pluginhub.plugins.blog import BLOG_PLUGIN_ID, build_manifest as build_blog_manifest
from pluginhub.plugins.types import PluginLoadResult, PluginManifest

logger = structlog.get_logger(__name__)

# Registration order; dependencies must come before their dependents
BUILTIN_PLUGINS: Dict[str, Callable[[], PluginManifest]] = {
    BLOG_PLUGIN_ID: build_blog_manifest,
}


def get_builtin_manifest(plugin_id: str) -> Optional[PluginManifest]:
    factory = BUILTIN_PLUGINS.get(plugin_id)
    return factory() if factory else None


async def load_builtin_plugins(registry: BasePluginRegistry) -> List[PluginLoadResult]:
    """Register every built-in plugin; failures are logged, not raised"""
    results = []
    for plugin_id, factory in BUILTIN_PLUGINS.items():
        result = await registry.register(factory())
        if not result.success:
            logger.error(f"Failed to register built-in plugin {plugin_id}: {result.error}")
        results.append(result)

    logger.info(f"Loaded {sum(r.success for r in results)}/{len(results)} built-in plugins")
    return results
