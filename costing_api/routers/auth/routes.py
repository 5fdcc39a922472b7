"""
Authentication router.
Handles login and current user info.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from costing_api.models import Tenant, User
from shared.config.constants import SubscriptionPlan
from shared.config.logging import auth_logger as logger, mask_email
from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.auth import current_user_context, sign_jwt
from shared.security.password import verify_password
from shared.security.rate_limit import LOGIN_RATE_LIMIT, limiter
from shared.utils.schemas import LoginRequest, LoginResponse, UserInfo


router = APIRouter(prefix="/api/auth", tags=["auth"])


def _plan_of(db: Session, tenant_id: int) -> str:
    tenant = db.get(Tenant, tenant_id)
    return tenant.plan if tenant is not None else SubscriptionPlan.FREE


@router.post("/login", response_model=LoginResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)) -> LoginResponse:
    """
    Authenticate a user and return an access token.

    The access token contains:
    - sub: user ID
    - tenant_id: the user's tenant
    - role: OWNER, EDITOR or VIEWER
    - email: user's email

    Rate limited per client IP to slow down credential stuffing.
    """
    user = db.scalar(
        select(User).where(User.email == body.email, User.is_active.is_(True))
    )

    if not user:
        logger.warning("LOGIN_FAILED: User not found", email=mask_email(body.email))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not verify_password(body.password, user.password):
        logger.warning(
            "LOGIN_FAILED: Invalid password", email=mask_email(body.email), user_id=user.id
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    access_token = sign_jwt({
        "sub": str(user.id),
        "tenant_id": user.tenant_id,
        "role": user.role,
        "email": user.email,
    })

    logger.info("LOGIN_SUCCESS", email=mask_email(user.email), user_id=user.id, role=user.role)

    return LoginResponse(
        access_token=access_token,
        token_type="Bearer",
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=UserInfo(
            id=user.id,
            email=user.email,
            tenant_id=user.tenant_id,
            role=user.role,
            plan=_plan_of(db, user.tenant_id),
        ),
    )


@router.get("/me", response_model=UserInfo)
def get_current_user(
    db: Session = Depends(get_db),
    ctx: dict = Depends(current_user_context),
) -> UserInfo:
    """Get current authenticated user info."""
    return UserInfo(
        id=int(ctx["sub"]),
        email=ctx["email"],
        tenant_id=ctx["tenant_id"],
        role=ctx["role"],
        plan=_plan_of(db, ctx["tenant_id"]),
    )
