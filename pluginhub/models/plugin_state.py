"""
Durable plugin state, one row per (tenant, plugin)
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON, UniqueConstraint
from datetime import datetime
from typing import Any, Dict, Optional

from pluginhub.plugins.types import PluginStatus


class PluginStateRecord(SQLModel, table=True):
    """Source of truth for tenant-scoped installs"""

    __tablename__ = "plugin_states"

    tenant_id: str = Field(primary_key=True, foreign_key="tenants.id")
    plugin_id: str = Field(primary_key=True)

    status: PluginStatus = Field(default=PluginStatus.INSTALLED, index=True)
    version: str
    config: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    error: Optional[str] = None

    installed_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    enabled_at: Optional[datetime] = None
    disabled_at: Optional[datetime] = None


class PluginMigrationRecord(SQLModel, table=True):
    """Append-only log of applied plugin migrations"""

    __tablename__ = "plugin_migrations"
    __table_args__ = (UniqueConstraint("plugin_id", "version", name="uq_plugin_migration_version"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    plugin_id: str = Field(index=True)
    version: str
    applied_at: datetime = Field(default_factory=datetime.utcnow)
