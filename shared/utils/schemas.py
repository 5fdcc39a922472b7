"""
Shared Pydantic schemas used across the application.
"""

from pydantic import BaseModel, EmailStr


# =============================================================================
# Authentication Schemas
# =============================================================================


class LoginRequest(BaseModel):
    """Login request body."""

    email: EmailStr
    password: str


class UserInfo(BaseModel):
    """Basic user information included in auth responses."""

    id: int
    email: str
    tenant_id: int
    role: str
    plan: str


class LoginResponse(BaseModel):
    """Login response with JWT token."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int  # seconds
    user: UserInfo


class ErrorResponse(BaseModel):
    """Error body returned by AppException handlers."""

    detail: str
