"""
Plugin manifest, state and result types

Manifests are plain data: UI contributions reference components through
``ComponentRef`` handles and lifecycle callbacks are kept in a separate
``LifecycleHooks`` value that is never serialized.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

PLUGIN_ID_PATTERN = r"^[a-z0-9-]+/[a-z0-9-]+$"

# Default order for navigation items and settings panels without one
DEFAULT_ORDER = 999


class PluginStatus(str, Enum):
    """Plugin lifecycle status"""
    INSTALLED = "installed"
    ENABLED = "enabled"
    DISABLED = "disabled"
    ERROR = "error"
    INSTALLING = "installing"
    UNINSTALLING = "uninstalling"


class PluginFailureReason(str, Enum):
    """Why a registry operation was refused"""
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    DEPENDENCY = "dependency"
    DEPENDENTS = "dependents"
    HOOK_FAILED = "hook_failed"


class ComponentKind(str, Enum):
    """Closed set of renderable contributions"""
    PAGE = "page"
    WIDGET = "widget"
    PANEL = "panel"
    FORM = "form"
    ICON = "icon"


class NavigationScope(str, Enum):
    MAIN = "navigation"
    ADMIN = "admin_navigation"
    USER = "user_navigation"


class ComponentRef(BaseModel):
    """Opaque reference resolved by the UI renderer"""
    kind: ComponentKind
    handle: str


class PluginNavigationItem(BaseModel):
    label: str
    path: Optional[str] = None
    icon: Optional[ComponentRef] = None
    order: Optional[int] = None
    parent_id: Optional[str] = None
    permission: Optional[str] = None
    badge: Optional[Union[str, int]] = None


class PluginRoute(BaseModel):
    path: str
    component: ComponentRef
    lazy: bool = False
    nav_item: Optional[PluginNavigationItem] = None


class PluginSettingsPanel(BaseModel):
    label: str
    component: ComponentRef
    order: Optional[int] = None


class PluginComponent(BaseModel):
    """Component injected into a named slot of the app shell"""
    slot: str
    component: ComponentRef
    props: Dict[str, Any] = Field(default_factory=dict)


class PluginPermission(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None


class PluginEndpoint(BaseModel):
    method: str = "GET"
    path: str
    permission: Optional[str] = None
    auth_required: bool = False


class PluginDependency(BaseModel):
    plugin_id: str
    min_version: Optional[str] = None
    max_version: Optional[str] = None


class PluginMigration(BaseModel):
    version: str
    name: str
    up: str
    down: str


class PluginTierDefinition(BaseModel):
    """Subscription tier declared by a plugin"""
    tier_id: str
    name: str
    features: List[str] = Field(default_factory=list)
    price_monthly: Optional[int] = None
    price_yearly: Optional[int] = None
    price_lifetime: Optional[int] = None
    trial_days: int = 14


HookFn = Callable[[], Union[None, Awaitable[None]]]


@dataclass
class LifecycleHooks:
    """Lifecycle callbacks, sync or async, taking no arguments"""
    on_load: Optional[HookFn] = None
    on_enable: Optional[HookFn] = None
    on_disable: Optional[HookFn] = None
    on_uninstall: Optional[HookFn] = None


class PluginManifest(BaseModel):
    """Static plugin descriptor, immutable once registered"""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    # Identity
    id: str
    name: str
    version: str
    description: Optional[str] = None
    author: Optional[str] = None
    homepage: Optional[str] = None

    # Ordering and graph
    priority: int = 0
    dependencies: List[PluginDependency] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)
    permissions: List[PluginPermission] = Field(default_factory=list)

    # UI contributions
    routes: List[PluginRoute] = Field(default_factory=list)
    navigation: List[PluginNavigationItem] = Field(default_factory=list)
    admin_navigation: List[PluginNavigationItem] = Field(default_factory=list)
    user_navigation: List[PluginNavigationItem] = Field(default_factory=list)
    settings: Optional[PluginSettingsPanel] = None
    components: List[PluginComponent] = Field(default_factory=list)

    # Backend contributions
    endpoints: List[PluginEndpoint] = Field(default_factory=list)
    migrations: List[PluginMigration] = Field(default_factory=list)
    tiers: List[PluginTierDefinition] = Field(default_factory=list)
    tenant_tables: List[str] = Field(default_factory=list)

    hooks: LifecycleHooks = Field(default_factory=LifecycleHooks, exclude=True)

    def navigation_for(self, scope: NavigationScope) -> List[PluginNavigationItem]:
        return getattr(self, scope.value)


class PluginState(BaseModel):
    """Runtime state of one plugin (per tenant on the backend)"""
    id: str
    status: PluginStatus
    version: str
    installed_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    enabled_at: Optional[datetime] = None
    disabled_at: Optional[datetime] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class PluginLoadResult(BaseModel):
    """Outcome of a registry operation; expected failures never raise"""
    success: bool
    plugin_id: str
    error: Optional[str] = None
    reason: Optional[PluginFailureReason] = None

    @classmethod
    def ok(cls, plugin_id: str) -> "PluginLoadResult":
        return cls(success=True, plugin_id=plugin_id)

    @classmethod
    def fail(cls, plugin_id: str, error: str, reason: PluginFailureReason) -> "PluginLoadResult":
        return cls(success=False, plugin_id=plugin_id, error=error, reason=reason)
