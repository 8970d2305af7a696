"""
JWT authentication utilities

Tokens are opaque to the rest of the platform: callers only use
``issue_token`` and ``verify_token``.
"""

from datetime import datetime, timedelta
from jose import JWTError, jwt
from typing import Dict, Optional

from pluginhub.core.config import get_settings
from pluginhub.schemas.token import TokenPayload

settings = get_settings()


def create_access_token(
    user_id: str,
    email: str,
    role_id: Optional[int] = None,
    tenant_id: Optional[str] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create JWT access token with user claims"""
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(user_id),
        "email": email,
        "role_id": role_id,
        "exp": expire,
        "iat": datetime.utcnow(),
    }
    # Tokens minted on a tenant host carry that tenant
    if tenant_id is not None:
        to_encode["tenant_id"] = str(tenant_id)

    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return encoded_jwt


def decode_access_token(token: str) -> Optional[Dict]:
    """Decode and validate JWT token"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        return None


def issue_token(claims: TokenPayload, expires_delta: Optional[timedelta] = None) -> str:
    """Issue a bearer token for the given identity"""
    return create_access_token(
        user_id=claims.sub,
        email=claims.email,
        role_id=claims.role_id,
        tenant_id=claims.tenant_id,
        expires_delta=expires_delta,
    )


def verify_token(token: str) -> Optional[TokenPayload]:
    """Verify token and return its payload, or None if invalid"""
    payload = decode_access_token(token)
    if payload is None or not payload.get("sub"):
        return None

    return TokenPayload(
        sub=payload["sub"],
        email=payload.get("email") or "",
        role_id=payload.get("role_id"),
        tenant_id=payload.get("tenant_id"),
    )
