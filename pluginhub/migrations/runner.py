"""
Plugin migration runner

Migrations are applied per plugin, keyed by ``(plugin_id, version)`` in the
``plugin_migrations`` table. Statements run one at a time and each is
committed on its own: a failing statement aborts the migration, but the
statements before it stay applied and the version is not recorded.
"""

from typing import List
from sqlmodel import Session, select
import structlog

from pluginhub.migrations.sql_parser import split_sql_statements
from pluginhub.models.plugin_state import PluginMigrationRecord
from pluginhub.plugins.registry import PluginRegistry

logger = structlog.get_logger(__name__)


class MigrationError(Exception):
    """A migration statement failed"""

    def __init__(self, plugin_id: str, version: str, statement: str, cause: Exception):
        super().__init__(f"Migration {plugin_id}@{version} failed: {cause}")
        self.plugin_id = plugin_id
        self.version = version
        self.statement = statement
        self.cause = cause


def get_applied_versions(session: Session, plugin_id: str) -> List[str]:
    """Versions recorded as applied for a plugin, in application order"""
    records = session.exec(
        select(PluginMigrationRecord)
        .where(PluginMigrationRecord.plugin_id == plugin_id)
        .order_by(PluginMigrationRecord.id)
    ).all()
    return [record.version for record in records]


def _execute_script(session: Session, sql: str, plugin_id: str, version: str) -> int:
    statements = split_sql_statements(sql)
    for statement in statements:
        try:
            session.connection().exec_driver_sql(statement)
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Migration statement failed for {plugin_id}@{version}: {e}")
            raise MigrationError(plugin_id, version, statement, e) from e
    return len(statements)


def run_plugin_migrations(plugin_id: str, session: Session, registry: PluginRegistry) -> bool:
    """Apply pending migrations in declaration order"""
    migrations = registry.get_migrations(plugin_id)
    if not migrations:
        logger.debug(f"No migrations to run for {plugin_id}")
        return False

    applied = set(get_applied_versions(session, plugin_id))
    for migration in migrations:
        if migration.version in applied:
            continue

        logger.info(f"Applying migration {plugin_id}@{migration.version}: {migration.name}")
        count = _execute_script(session, migration.up, plugin_id, migration.version)

        session.add(PluginMigrationRecord(plugin_id=plugin_id, version=migration.version))
        session.commit()
        applied.add(migration.version)
        logger.info(f"Migration {plugin_id}@{migration.version} applied ({count} statements)")

    return True


def rollback_plugin_migrations(plugin_id: str, session: Session, registry: PluginRegistry) -> bool:
    """Run ``down`` scripts of applied migrations in reverse order"""
    migrations = registry.get_migrations(plugin_id)
    if not migrations:
        return False

    applied = set(get_applied_versions(session, plugin_id))
    for migration in reversed(migrations):
        if migration.version not in applied:
            continue

        logger.info(f"Rolling back migration {plugin_id}@{migration.version}: {migration.name}")
        _execute_script(session, migration.down, plugin_id, migration.version)

        record = session.exec(
            select(PluginMigrationRecord)
            .where(PluginMigrationRecord.plugin_id == plugin_id)
            .where(PluginMigrationRecord.version == migration.version)
        ).first()
        if record is not None:
            session.delete(record)
            session.commit()

    return True
