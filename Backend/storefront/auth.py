"""
Authentication and role checks.

Tokens are HS256 JWTs signed with ``JWT_SECRET`` carrying the user id
(``sub``) and role. Storefront login is bound to the resolved tenant: an
admin can only sign in through the subdomain or custom domain of their own
store.

USAGE:
    @router.get("/admin/domains")
    async def handler(admin: User = Depends(require_admin)):
        ...
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .core.config import Settings, settings_from_request
from .core.db import get_session
from .models import User, UserRole
from .subdomains import check_password
from .tenancy import TenantContext, require_tenant_context

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


class LoginRequest(BaseModel):
    email: str
    password: str


class UserOut(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    role: UserRole
    subdomain: Optional[str] = None
    store_name: Optional[str] = None

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


# ============================================================================
# TOKENS
# ============================================================================

def create_access_token(settings: Settings, user: User) -> str:
    secret = settings.require("jwt_secret")
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "role": user.role.value,
        "iat": now,
        "exp": now + timedelta(minutes=settings.access_token_expire_minutes),
    }
    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def decode_access_token(settings: Settings, token: str) -> dict:
    """
    Raises:
        ConfigurationError: JWT_SECRET is not set
        jwt.InvalidTokenError: bad signature, malformed or expired token
    """
    secret = settings.require("jwt_secret")
    return jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])


def _credentials_error(detail: str = "Invalid or expired token") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# ============================================================================
# DEPENDENCIES
# ============================================================================

async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise _credentials_error("Authentication required")

    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = decode_access_token(settings_from_request(request), token)
        user_id = int(payload["sub"])
    except jwt.ExpiredSignatureError:
        raise _credentials_error("Token has expired")
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        logger.debug(f"Rejected token: {e}")
        raise _credentials_error()

    user = await session.get(User, user_id)
    if user is None:
        raise _credentials_error()
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


async def require_superadmin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.SUPERADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Superadmin access required",
        )
    return user


# ============================================================================
# LOGIN
# ============================================================================

async def _authenticate(session: AsyncSession, email: str, password: str) -> User:
    result = await session.execute(select(User).where(User.email == email.strip().lower()))
    user = result.scalar_one_or_none()
    if user is None or not check_password(password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )
    return user


@router.post("/auth/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    tenant: TenantContext = Depends(require_tenant_context),
    session: AsyncSession = Depends(get_session),
):
    """Sign in to the store resolved from the request host."""
    user = await _authenticate(session, payload.email, payload.password)

    if user.is_admin and user.id != tenant.admin_id:
        logger.warning(
            f"Admin {user.id} attempted login on store of admin {tenant.admin_id}"
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access denied: this admin account does not belong to this store",
        )

    token = create_access_token(settings_from_request(request), user)
    return LoginResponse(access_token=token, user=UserOut.model_validate(user))


@router.post("/superadmin/login", response_model=LoginResponse)
async def superadmin_login(
    payload: LoginRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    user = await _authenticate(session, payload.email, payload.password)
    if user.role != UserRole.SUPERADMIN:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    token = create_access_token(settings_from_request(request), user)
    return LoginResponse(access_token=token, user=UserOut.model_validate(user))
