"""
Tenant-scoped plugin state persistence

The ``plugin_states`` table is the source of truth for installs; the
registry's in-memory state is reconciled from it at request time.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, select
import structlog

from pluginhub.models.plugin_state import PluginStateRecord
from pluginhub.plugins.base import BasePluginRegistry
from pluginhub.plugins.types import PluginState, PluginStatus

logger = structlog.get_logger(__name__)


def to_plugin_state(record: PluginStateRecord) -> PluginState:
    return PluginState(
        id=record.plugin_id,
        status=record.status,
        version=record.version,
        installed_at=record.installed_at,
        updated_at=record.updated_at,
        enabled_at=record.enabled_at,
        disabled_at=record.disabled_at,
        config=dict(record.config or {}),
        error=record.error,
    )


class PluginStateService:
    """Reads and writes ``plugin_states`` rows for one session"""

    def __init__(self, session: Session):
        self.session = session

    def get_state(self, tenant_id: str, plugin_id: str) -> Optional[PluginStateRecord]:
        return self.session.get(PluginStateRecord, (tenant_id, plugin_id))

    def list_states(self, tenant_id: str) -> List[PluginStateRecord]:
        return list(
            self.session.exec(
                select(PluginStateRecord).where(PluginStateRecord.tenant_id == tenant_id)
            ).all()
        )

    def save_state(self, tenant_id: str, state: PluginState) -> PluginStateRecord:
        """Upsert the row for ``(tenant_id, state.id)``"""
        record = self.get_state(tenant_id, state.id)
        if record is None:
            record = PluginStateRecord(
                tenant_id=tenant_id,
                plugin_id=state.id,
                version=state.version,
                installed_at=state.installed_at,
            )

        record.status = state.status
        record.version = state.version
        record.config = dict(state.config)
        record.error = state.error
        record.enabled_at = state.enabled_at
        record.disabled_at = state.disabled_at
        record.updated_at = datetime.utcnow()

        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        logger.debug(f"Persisted state {state.status.value} for {state.id} in tenant {tenant_id}")
        return record

    def mark_status(
        self,
        tenant_id: str,
        plugin_id: str,
        status: PluginStatus,
        error: Optional[str] = None,
    ) -> Optional[PluginStateRecord]:
        record = self.get_state(tenant_id, plugin_id)
        if record is None:
            return None

        now = datetime.utcnow()
        record.status = status
        record.error = error if status == PluginStatus.ERROR else None
        record.updated_at = now
        if status == PluginStatus.ENABLED:
            record.enabled_at = now
        elif status == PluginStatus.DISABLED:
            record.disabled_at = now

        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def delete_state(self, tenant_id: str, plugin_id: str) -> bool:
        record = self.get_state(tenant_id, plugin_id)
        if record is None:
            return False
        self.session.delete(record)
        self.session.commit()
        return True

    def count_installations(self, plugin_id: str) -> int:
        """Number of tenants that still have the plugin installed"""
        return self.session.exec(
            select(func.count()).select_from(PluginStateRecord).where(PluginStateRecord.plugin_id == plugin_id)
        ).one()

    def reconcile(self, registry: BasePluginRegistry, tenant_id: str, plugin_id: str) -> Optional[PluginState]:
        """
        Load the durable state for a tenant into the registry cache.

        Returns the cached object; lifecycle calls for the same tenant mutate it
        in place, so callers persist this object rather than re-reading the cache.
        """
        if registry.get_plugin(plugin_id) is None:
            return None

        record = self.get_state(tenant_id, plugin_id)
        state = to_plugin_state(record) if record else None
        registry.reconcile_state(plugin_id, state, tenant_id)
        return state
