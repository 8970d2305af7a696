"""
Test configuration for pytest
"""

import os

# Test environment variables, set before any pluginhub import reads settings
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["BASE_DOMAIN"] = "localhost:8000"

from typing import Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session

import pluginhub.models  # noqa: F401
from pluginhub.core.auth import create_access_token
from pluginhub.core.database import get_session
from pluginhub.core.permissions import Role
from pluginhub.main import create_app
from pluginhub.models.tenant import Tenant
from pluginhub.plugins.registry import PluginRegistry
from pluginhub.services.license_service import LicenseService


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory SQLite database per test"""
    test_engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    """Create a clean database session for each test"""
    with Session(engine) as session:
        yield session


@pytest.fixture
def tenant(db: Session) -> Tenant:
    """Active tenant served at acme.localhost"""
    return LicenseService(db).create_tenant("Acme")


@pytest.fixture
def registry() -> PluginRegistry:
    return PluginRegistry()


@pytest.fixture
def make_client(db: Session, registry: PluginRegistry):
    """Factory for TestClients bound to the test session; built-ins load on startup"""
    clients = []

    def factory(host: str = "acme.localhost") -> TestClient:
        app = create_app(registry, create_tables=False)
        app.dependency_overrides[get_session] = lambda: db
        client = TestClient(app, base_url=f"http://{host}")
        client.__enter__()
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


@pytest.fixture
def auth_headers() -> Callable[..., dict]:
    """Bearer headers for a user of the given role, optionally bound to a tenant"""
    def build(role: Role = Role.ADMIN, tenant: Optional[Tenant] = None, user_id: str = "user-1") -> dict:
        token = create_access_token(
            user_id=user_id,
            email=f"{user_id}@example.com",
            role_id=int(role),
            tenant_id=tenant.id if tenant else None,
        )
        return {"Authorization": f"Bearer {token}"}
    return build
