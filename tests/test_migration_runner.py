"""
Migration runner tests against an in-memory SQLite database
"""

import asyncio

import pytest
from sqlalchemy import inspect, text
from sqlmodel import Session, select

from pluginhub.migrations.runner import (
    MigrationError,
    get_applied_versions,
    rollback_plugin_migrations,
    run_plugin_migrations,
)
from pluginhub.models.plugin_state import PluginMigrationRecord
from pluginhub.plugins.blog import BLOG_PLUGIN_ID, build_manifest
from pluginhub.plugins.registry import PluginRegistry
from pluginhub.plugins.types import PluginManifest, PluginMigration


@pytest.fixture
def blog_registry() -> PluginRegistry:
    registry = PluginRegistry()
    asyncio.run(registry.register(build_manifest()))
    return registry


def _has_table(db: Session, name: str) -> bool:
    return inspect(db.connection()).has_table(name)


def _record_count(db: Session, plugin_id: str) -> int:
    return len(db.exec(select(PluginMigrationRecord).where(PluginMigrationRecord.plugin_id == plugin_id)).all())


def test_unknown_plugin_or_no_migrations_returns_false(db, blog_registry):
    assert run_plugin_migrations("acme/missing", db, blog_registry) is False

    asyncio.run(blog_registry.register(PluginManifest(id="acme/plain", name="Plain", version="1.0.0")))
    assert run_plugin_migrations("acme/plain", db, blog_registry) is False
    assert rollback_plugin_migrations("acme/plain", db, blog_registry) is False


def test_blog_migrations_apply_in_order(db, blog_registry):
    assert run_plugin_migrations(BLOG_PLUGIN_ID, db, blog_registry) is True

    assert get_applied_versions(db, BLOG_PLUGIN_ID) == ["1.0.0", "1.1.0"]
    assert _has_table(db, "blog_posts")
    titles = db.execute(text("SELECT title FROM blog_posts ORDER BY id")).scalars().all()
    assert titles == ["Getting Started with Plugins", "Licensing Tiers Explained"]
    content = db.execute(
        text("SELECT content FROM blog_posts WHERE slug = 'getting-started-with-plugins'")
    ).scalar_one()
    assert "You'll learn how to:" in content


def test_migrations_are_idempotent(db, blog_registry):
    run_plugin_migrations(BLOG_PLUGIN_ID, db, blog_registry)
    run_plugin_migrations(BLOG_PLUGIN_ID, db, blog_registry)

    assert _record_count(db, BLOG_PLUGIN_ID) == 2
    assert db.execute(text("SELECT COUNT(*) FROM blog_posts")).scalar_one() == 2


def test_only_pending_versions_run(db, blog_registry):
    db.add(PluginMigrationRecord(plugin_id=BLOG_PLUGIN_ID, version="1.0.0"))
    db.commit()
    db.execute(text("CREATE TABLE blog_posts (id INTEGER PRIMARY KEY, title TEXT)"))
    db.commit()

    # 1.0.0 is recorded, so its tables are never created and 1.1.0 fails
    with pytest.raises(MigrationError) as exc_info:
        run_plugin_migrations(BLOG_PLUGIN_ID, db, blog_registry)

    assert exc_info.value.version == "1.1.0"
    assert get_applied_versions(db, BLOG_PLUGIN_ID) == ["1.0.0"]
    assert not _has_table(db, "blog_categories")


def test_failed_statement_keeps_earlier_statements_and_skips_record(db):
    registry = PluginRegistry()
    manifest = PluginManifest(
        id="acme/broken",
        name="Broken",
        version="1.0.0",
        migrations=[
            PluginMigration(
                version="1.0.0",
                name="Half applied",
                up="CREATE TABLE broken_a (id INTEGER); THIS IS NOT SQL; CREATE TABLE broken_b (id INTEGER);",
                down="DROP TABLE IF EXISTS broken_a; DROP TABLE IF EXISTS broken_b;",
            )
        ],
    )
    asyncio.run(registry.register(manifest))

    with pytest.raises(MigrationError) as exc_info:
        run_plugin_migrations("acme/broken", db, registry)

    assert exc_info.value.plugin_id == "acme/broken"
    assert exc_info.value.statement == "THIS IS NOT SQL"
    assert _has_table(db, "broken_a")
    assert not _has_table(db, "broken_b")
    assert get_applied_versions(db, "acme/broken") == []


def test_rollback_runs_down_scripts_in_reverse(db, blog_registry):
    run_plugin_migrations(BLOG_PLUGIN_ID, db, blog_registry)

    assert rollback_plugin_migrations(BLOG_PLUGIN_ID, db, blog_registry) is True

    assert get_applied_versions(db, BLOG_PLUGIN_ID) == []
    for table in ("blog_posts", "blog_categories", "blog_tags", "blog_post_tags", "blog_post_categories"):
        assert not _has_table(db, table)


def test_rollback_skips_unapplied_versions(db, blog_registry):
    db.add(PluginMigrationRecord(plugin_id=BLOG_PLUGIN_ID, version="1.0.0"))
    db.commit()

    # Only 1.0.0's down script runs; it tolerates missing tables
    rollback_plugin_migrations(BLOG_PLUGIN_ID, db, blog_registry)

    assert get_applied_versions(db, BLOG_PLUGIN_ID) == []
