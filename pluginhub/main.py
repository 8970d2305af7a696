"""
PluginHub - Main Application Entry Point
Multi-tenant plugin platform with tenant-scoped licensing
"""

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import structlog

from pluginhub.core.config import get_settings
from pluginhub.core.database import init_db
from pluginhub.core.errors import register_exception_handlers
from pluginhub.core.logging import configure_logging
from pluginhub.core.tenant_middleware import detect_tenant
from pluginhub.api import plugins, saas
from pluginhub.plugins.blog import routes as blog_routes
from pluginhub.plugins.catalog import load_builtin_plugins
from pluginhub.plugins.registry import PluginRegistry

configure_logging()

logger = structlog.get_logger(__name__)
settings = get_settings()


def create_app(registry: Optional[PluginRegistry] = None, create_tables: Optional[bool] = None) -> FastAPI:
    """Build the application around one plugin registry"""
    registry = registry if registry is not None else PluginRegistry()
    if create_tables is None:
        create_tables = settings.AUTO_CREATE_TABLES

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        # Startup
        logger.info(f"Initializing {settings.APP_NAME} backend")
        if create_tables:
            init_db()
        if not registry.get_all_plugins():
            await load_builtin_plugins(registry)

        yield

        # Shutdown
        logger.info(f"Shutting down {settings.APP_NAME} backend")

    app = FastAPI(
        title="PluginHub API",
        description="Multi-tenant plugin platform with tenant-scoped licensing",
        version="1.0.0",
        lifespan=lifespan,
        dependencies=[Depends(detect_tenant)],
    )
    app.state.plugin_registry = registry

    # Configure middleware stack
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    # Include routers
    app.include_router(plugins.router, prefix="/api/plugins", tags=["plugins"])
    app.include_router(saas.router, prefix="/api", tags=["saas"])
    app.include_router(saas.admin_router, prefix="/api/admin/saas", tags=["admin"])
    app.include_router(blog_routes.router, prefix="/api/blog", tags=["blog"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "pluginhub-api"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pluginhub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )
