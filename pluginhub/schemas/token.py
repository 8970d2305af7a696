"""
Pydantic schemas for authentication and tokens
"""

from pydantic import BaseModel, Field
from typing import Optional


class TokenPayload(BaseModel):
    """Verified JWT claims"""
    sub: str = Field(..., description="User ID")
    email: str = Field(default="", description="User email")
    role_id: Optional[int] = Field(default=None, description="Role ID (1 = admin)")
    tenant_id: Optional[str] = Field(default=None, description="Tenant the token was issued under")
