"""
Blog plugin manifest

Sample plugin exercising the registry: migrations, tiers, UI contributions
and lifecycle hooks. Blog tables share one schema across tenants and carry a
``tenant_id`` column; seed content belongs to the ``default`` tenant.
"""

import structlog

from pluginhub.plugins.types import (
    ComponentKind,
    ComponentRef,
    LifecycleHooks,
    PluginComponent,
    PluginEndpoint,
    PluginManifest,
    PluginMigration,
    PluginNavigationItem,
    PluginPermission,
    PluginRoute,
    PluginSettingsPanel,
    PluginTierDefinition,
)

logger = structlog.get_logger(__name__)

BLOG_PLUGIN_ID = "blog/blog"

BLOG_TABLES = [
    "blog_post_tags",
    "blog_post_categories",
    "blog_tags",
    "blog_categories",
    "blog_posts",
]

CREATE_TABLES_UP = """
-- Posts table
CREATE TABLE IF NOT EXISTS blog_posts (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  tenant_id TEXT NOT NULL DEFAULT 'default',
  title TEXT NOT NULL,
  slug TEXT NOT NULL,
  content TEXT NOT NULL,
  excerpt TEXT,
  author_id TEXT NOT NULL,
  status TEXT NOT NULL DEFAULT 'draft',
  featured_image TEXT,
  created_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now')),
  updated_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now')),
  published_at INTEGER,
  UNIQUE (tenant_id, slug)
);

-- Categories table
CREATE TABLE IF NOT EXISTS blog_categories (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  tenant_id TEXT NOT NULL DEFAULT 'default',
  name TEXT NOT NULL,
  slug TEXT NOT NULL,
  description TEXT,
  created_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now')),
  UNIQUE (tenant_id, slug)
);

-- Tags table
CREATE TABLE IF NOT EXISTS blog_tags (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  tenant_id TEXT NOT NULL DEFAULT 'default',
  name TEXT NOT NULL,
  slug TEXT NOT NULL,
  created_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now')),
  UNIQUE (tenant_id, slug)
);

CREATE TABLE IF NOT EXISTS blog_post_categories (
  tenant_id TEXT NOT NULL DEFAULT 'default',
  post_id INTEGER NOT NULL REFERENCES blog_posts(id) ON DELETE CASCADE,
  category_id INTEGER NOT NULL REFERENCES blog_categories(id) ON DELETE CASCADE,
  PRIMARY KEY (post_id, category_id)
);

CREATE TABLE IF NOT EXISTS blog_post_tags (
  tenant_id TEXT NOT NULL DEFAULT 'default',
  post_id INTEGER NOT NULL REFERENCES blog_posts(id) ON DELETE CASCADE,
  tag_id INTEGER NOT NULL REFERENCES blog_tags(id) ON DELETE CASCADE,
  PRIMARY KEY (post_id, tag_id)
);

CREATE INDEX IF NOT EXISTS idx_blog_posts_tenant ON blog_posts(tenant_id);
CREATE INDEX IF NOT EXISTS idx_blog_posts_status ON blog_posts(status);
CREATE INDEX IF NOT EXISTS idx_blog_posts_published ON blog_posts(published_at);
"""

CREATE_TABLES_DOWN = """
DROP INDEX IF EXISTS idx_blog_posts_published;
DROP INDEX IF EXISTS idx_blog_posts_status;
DROP INDEX IF EXISTS idx_blog_posts_tenant;
DROP TABLE IF EXISTS blog_post_tags;
DROP TABLE IF EXISTS blog_post_categories;
DROP TABLE IF EXISTS blog_tags;
DROP TABLE IF EXISTS blog_categories;
DROP TABLE IF EXISTS blog_posts;
"""

SEED_DATA_UP = """
INSERT OR IGNORE INTO blog_categories (tenant_id, name, slug, description) VALUES
('default', 'Technology', 'technology', 'Latest tech news and insights'),
('default', 'Programming', 'programming', 'Coding tutorials; tips and best practices');

INSERT OR IGNORE INTO blog_tags (tenant_id, name, slug) VALUES
('default', 'Python', 'python'),
('default', 'Tutorial', 'tutorial');

INSERT OR IGNORE INTO blog_posts (tenant_id, title, slug, content, excerpt, author_id, status, published_at) VALUES
(
  'default',
  'Getting Started with Plugins',
  'getting-started-with-plugins',
  'Plugins extend the platform without touching its core. You''ll learn how to:
- register a manifest;
- enable it for your workspace (migrations run automatically).',
  'A first look at the plugin system',
  'system',
  'published',
  strftime('%s', 'now', '-7 days')
),
(
  'default',
  'Licensing Tiers Explained',
  'licensing-tiers-explained',
  'Each plugin ships free, trial and paid tiers; features are copied onto your license when it is granted.',
  'How plugin tiers map to features',
  'system',
  'published',
  strftime('%s', 'now', '-3 days')
);

INSERT OR IGNORE INTO blog_post_categories (tenant_id, post_id, category_id)
SELECT 'default', p.id, c.id FROM blog_posts p
CROSS JOIN blog_categories c
WHERE p.tenant_id = 'default' AND c.tenant_id = 'default'
  AND ((p.slug = 'getting-started-with-plugins' AND c.slug = 'technology')
    OR (p.slug = 'licensing-tiers-explained' AND c.slug = 'programming'));

INSERT OR IGNORE INTO blog_post_tags (tenant_id, post_id, tag_id)
SELECT 'default', p.id, t.id FROM blog_posts p
CROSS JOIN blog_tags t
WHERE p.tenant_id = 'default' AND t.tenant_id = 'default'
  AND p.slug = 'getting-started-with-plugins' AND t.slug IN ('python', 'tutorial');
"""

SEED_DATA_DOWN = """
-- Remove sample data in reverse order of dependencies
DELETE FROM blog_post_tags WHERE tenant_id = 'default';
DELETE FROM blog_post_categories WHERE tenant_id = 'default';
DELETE FROM blog_posts WHERE tenant_id = 'default';
DELETE FROM blog_tags WHERE tenant_id = 'default';
DELETE FROM blog_categories WHERE tenant_id = 'default';
"""


def _on_load():
    logger.info("Blog plugin loaded")


def _on_enable():
    logger.info("Blog plugin enabled")


def _on_disable():
    logger.info("Blog plugin disabled")


def _on_uninstall():
    logger.info("Blog plugin uninstalled")


def _page(handle: str) -> ComponentRef:
    return ComponentRef(kind=ComponentKind.PAGE, handle=handle)


def build_manifest() -> PluginManifest:
    return PluginManifest(
        id=BLOG_PLUGIN_ID,
        name="Blog",
        version="1.1.0",
        description="Full-featured blog with posts, categories, and tags",
        author="System",
        priority=100,
        permissions=[
            PluginPermission(id="blog.posts.view", name="View Posts", category="Blog"),
            PluginPermission(id="blog.posts.create", name="Create Posts", category="Blog"),
            PluginPermission(id="blog.posts.edit", name="Edit Posts", category="Blog"),
            PluginPermission(id="blog.posts.delete", name="Delete Posts", category="Blog"),
            PluginPermission(id="blog.posts.publish", name="Publish Posts", category="Blog"),
        ],
        routes=[
            PluginRoute(path="/blog", component=_page("blog.BlogPostsList")),
            PluginRoute(path="/blog/new", component=_page("blog.BlogPostEditor")),
            PluginRoute(path="/blog/:id", component=_page("blog.BlogPostView")),
            PluginRoute(path="/blog/:id/edit", component=_page("blog.BlogPostEditor")),
        ],
        navigation=[PluginNavigationItem(label="Blog", path="/blog", order=10)],
        admin_navigation=[PluginNavigationItem(label="Blog", path="/admin/blog", order=20)],
        settings=PluginSettingsPanel(
            label="Blog",
            component=ComponentRef(kind=ComponentKind.PANEL, handle="blog.BlogSettings"),
            order=10,
        ),
        components=[
            PluginComponent(
                slot="dashboard.widgets",
                component=ComponentRef(kind=ComponentKind.WIDGET, handle="blog.RecentPosts"),
                props={"limit": 5},
            ),
        ],
        endpoints=[
            PluginEndpoint(method="GET", path="/blog/posts", permission="public"),
            PluginEndpoint(method="GET", path="/blog/export", permission="blog.posts.view", auth_required=True),
            PluginEndpoint(method="GET", path="/blog/stats", permission="blog.posts.view", auth_required=True),
        ],
        migrations=[
            PluginMigration(version="1.0.0", name="Create blog tables", up=CREATE_TABLES_UP, down=CREATE_TABLES_DOWN),
            PluginMigration(version="1.1.0", name="Insert sample data", up=SEED_DATA_UP, down=SEED_DATA_DOWN),
        ],
        tiers=[
            PluginTierDefinition(tier_id="free", name="Free", features=["posts"]),
            PluginTierDefinition(
                tier_id="trial",
                name="Trial",
                features=["posts", "categories", "tags", "export", "analytics"],
                trial_days=14,
            ),
            PluginTierDefinition(
                tier_id="monthly",
                name="Pro",
                features=["posts", "categories", "tags", "export", "analytics"],
                price_monthly=900,
            ),
            PluginTierDefinition(
                tier_id="yearly",
                name="Pro (yearly)",
                features=["posts", "categories", "tags", "export", "analytics"],
                price_yearly=9000,
            ),
        ],
        tenant_tables=list(BLOG_TABLES),
        hooks=LifecycleHooks(
            on_load=_on_load,
            on_enable=_on_enable,
            on_disable=_on_disable,
            on_uninstall=_on_uninstall,
        ),
    )
