"""
Authentication dependencies for FastAPI
"""

from fastapi import Depends, Request, status
from typing import Optional
import structlog

from pluginhub.core.auth import verify_token
from pluginhub.core.config import get_settings
from pluginhub.core.errors import PlatformError
from pluginhub.core.tenant_middleware import TenantContext, detect_tenant
from pluginhub.schemas.token import TokenPayload

logger = structlog.get_logger(__name__)
settings = get_settings()


def get_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the session cookie"""
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.SESSION_COOKIE_NAME) or None


def _check_token_tenant(user: TokenPayload, context: TenantContext) -> None:
    # Tokens without a tenant claim are not bound to a host
    if user.tenant_id is None:
        return
    if user.tenant_id != context.tenant_id:
        logger.warning(
            f"Tenant mismatch for user {user.sub}: token tenant {user.tenant_id}, "
            f"request tenant {context.tenant_id}"
        )
        raise PlatformError(
            status.HTTP_403_FORBIDDEN,
            "Forbidden",
            "Token was issued for a different tenant",
        )


async def get_current_user(
    request: Request,
    context: TenantContext = Depends(detect_tenant),
) -> TokenPayload:
    """Verified identity for the request; 401 without a valid token"""
    token = get_token(request)
    if not token:
        raise PlatformError(status.HTTP_401_UNAUTHORIZED, "Unauthorized", "Authentication required")

    user = verify_token(token)
    if user is None:
        raise PlatformError(status.HTTP_401_UNAUTHORIZED, "Unauthorized", "Invalid or expired token")

    _check_token_tenant(user, context)
    logger.debug(f"User authenticated: {user.sub}")
    return user
