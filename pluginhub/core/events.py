"""
Plugin events system

Plugin lifecycle events are published by a registry and delivered to the
listeners subscribed to that event type. Every registry owns its own bus.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
import inspect
import uuid
import structlog

logger = structlog.get_logger(__name__)


class PluginEventType(str, Enum):
    """Closed set of plugin event kinds"""
    LOADED = "plugin.loaded"
    ENABLED = "plugin.enabled"
    DISABLED = "plugin.disabled"
    UNINSTALLED = "plugin.uninstalled"
    ERROR = "plugin.error"
    SETTINGS_CHANGED = "plugin.settings_changed"


class PluginEvent:
    """A lifecycle event for one plugin"""

    def __init__(
        self,
        type: PluginEventType,
        plugin_id: str,
        data: Optional[Dict[str, Any]] = None,
        event_id: uuid.UUID = None
    ):
        self.event_id = event_id or uuid.uuid4()
        self.occurred_at = datetime.utcnow()
        self.type = type
        self.plugin_id = plugin_id
        self.data = data or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        return {
            "event_id": str(self.event_id),
            "occurred_at": self.occurred_at.isoformat(),
            "event_type": self.type.value,
            "plugin_id": self.plugin_id,
            "data": self.data,
        }


PluginEventListener = Callable[[PluginEvent], Union[None, Awaitable[None]]]


class PluginEventBus:
    """In-memory pub/sub keyed by ``PluginEventType``"""

    def __init__(self):
        self._subscribers: Dict[PluginEventType, List[PluginEventListener]] = {}

    def on(self, event_type: PluginEventType, handler: PluginEventListener) -> Callable[[], None]:
        """Subscribe to an event type; returns a callable that unsubscribes"""
        if not isinstance(event_type, PluginEventType):
            raise TypeError(f"Unknown plugin event type: {event_type!r}")

        self._subscribers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed handler to event type: {event_type.value}")

        def unsubscribe() -> None:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                logger.debug(f"Unsubscribed handler from event type: {event_type.value}")

        return unsubscribe

    async def publish(self, event: PluginEvent):
        """Publish an event to all subscribers; handler errors are logged"""
        # Snapshot so handlers may unsubscribe while being called
        handlers = list(self._subscribers.get(event.type, []))
        if not handlers:
            return

        logger.debug(f"Publishing event {event.type.value} for {event.plugin_id}")

        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in event handler for {event.type.value}: {e}", exc_info=True)
