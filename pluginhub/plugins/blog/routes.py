"""
Blog API endpoints guarded by tenant license and plugin state
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy import text
from sqlmodel import Session
import structlog

from pluginhub.core.database import get_session
from pluginhub.core.dependencies import get_current_user
from pluginhub.core.errors import PlatformError
from pluginhub.core.tenant_middleware import (
    TenantContext,
    plugin_enabled,
    require_feature,
    require_plugin,
    require_tenant,
)
from pluginhub.plugins.blog.manifest import BLOG_PLUGIN_ID
from pluginhub.schemas.token import TokenPayload
from pluginhub.services.entitlement import license_has_feature

logger = structlog.get_logger(__name__)
router = APIRouter()

# Seed content is visible to every tenant
SHARED_TENANT_ID = "default"


def require_blog_feature(feature: str):
    """Check a feature bundled in the tenant's blog license"""
    async def check_blog_feature(context: TenantContext = Depends(require_tenant)) -> TenantContext:
        license = next((lic for lic in context.licenses if lic.plugin_id == BLOG_PLUGIN_ID), None)
        if not license_has_feature(license, feature):
            raise PlatformError(
                status.HTTP_403_FORBIDDEN,
                "Feature not available",
                f'The "{feature}" feature requires a higher tier blog subscription.',
                feature=feature,
            )
        return context
    return check_blog_feature


def _fetch_posts(session: Session, tenant_id: str) -> list:
    rows = session.execute(
        text(
            "SELECT id, tenant_id, title, slug, excerpt, status, published_at "
            "FROM blog_posts "
            "WHERE tenant_id IN (:tenant_id, :shared) AND status = 'published' "
            "ORDER BY published_at DESC, id DESC"
        ),
        {"tenant_id": tenant_id, "shared": SHARED_TENANT_ID},
    ).mappings().all()
    return [dict(row) for row in rows]


@router.get(
    "/posts",
    dependencies=[Depends(require_plugin(BLOG_PLUGIN_ID)), Depends(plugin_enabled(BLOG_PLUGIN_ID))],
)
async def list_posts(
    context: TenantContext = Depends(require_tenant),
    session: Session = Depends(get_session),
):
    """Published posts visible to the tenant"""
    posts = _fetch_posts(session, context.tenant_id)
    return {"posts": posts, "total": len(posts)}


@router.get(
    "/export",
    dependencies=[Depends(plugin_enabled(BLOG_PLUGIN_ID)), Depends(require_blog_feature("export"))],
)
async def export_posts(
    context: TenantContext = Depends(require_tenant),
    user: TokenPayload = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Export the tenant's published posts"""
    posts = _fetch_posts(session, context.tenant_id)
    logger.info(f"Blog export of {len(posts)} posts by user {user.sub} in tenant {context.tenant_id}")
    return {"format": "json", "tenant_id": context.tenant_id, "posts": posts}


@router.get(
    "/stats",
    dependencies=[Depends(plugin_enabled(BLOG_PLUGIN_ID))],
)
async def post_stats(
    context: TenantContext = Depends(require_feature(BLOG_PLUGIN_ID, "analytics")),
    user: TokenPayload = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Post counts by status"""
    rows = session.execute(
        text(
            "SELECT status, COUNT(*) AS total FROM blog_posts "
            "WHERE tenant_id = :tenant_id GROUP BY status"
        ),
        {"tenant_id": context.tenant_id},
    ).all()
    return {"tenant_id": context.tenant_id, "by_status": {row[0]: row[1] for row in rows}}
