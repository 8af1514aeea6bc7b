"""
Store Registry API.

Public lookups used by the frontend and the edge layer to map a subdomain or
hostname to the admin that owns the storefront.

    GET /subdomains/{subdomain}   -> admin owning the subdomain
    GET /subdomains/host/{host}   -> custom domain first, then subdomain
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .core.db import get_session
from .models import CustomDomain, User, UserRole
from .tenancy import extract_subdomain, normalize_host
from .tenancy.config import RESERVED_SUBDOMAINS


router = APIRouter(prefix="/subdomains", tags=["registry"])


# ────────────────────────────────────────────────────────────────
# Response Models
# ────────────────────────────────────────────────────────────────

class SubdomainInfo(BaseModel):
    admin_id: int
    role: UserRole

    class Config:
        json_schema_extra = {"example": {"admin_id": 7, "role": "ADMIN"}}


class HostInfo(BaseModel):
    """Store owning a hostname."""

    admin_id: int
    role: UserRole
    subdomain: Optional[str] = None
    custom_domain: Optional[str] = None
    is_custom_domain: bool
    is_admin_subdomain: bool
    store_name: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "admin_id": 7,
                "role": "ADMIN",
                "subdomain": "johndoe",
                "custom_domain": "shop.example.com",
                "is_custom_domain": True,
                "is_admin_subdomain": False,
                "store_name": "John's Store",
            }
        }


def _require_admin_owner(user: Optional[User], not_found: str, not_admin: str) -> User:
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=not_found)
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=not_admin)
    return user


# ────────────────────────────────────────────────────────────────
# Endpoints
# ────────────────────────────────────────────────────────────────

@router.get("/host/{host}", response_model=HostInfo)
async def resolve_host(host: str, session: AsyncSession = Depends(get_session)):
    """
    Resolve a hostname to its store.

    Unlike request resolution this reports any registered custom domain,
    whether or not it is active yet.
    """
    hostname = normalize_host(host)

    result = await session.execute(select(CustomDomain).where(CustomDomain.domain == hostname))
    domain = result.scalar_one_or_none()
    if domain is not None:
        admin = await session.get(User, domain.admin_id)
        admin = _require_admin_owner(
            admin, "Custom domain owner not found", "User for custom domain is not an admin"
        )
        return HostInfo(
            admin_id=admin.id,
            role=admin.role,
            subdomain=admin.subdomain,
            custom_domain=domain.domain,
            is_custom_domain=True,
            is_admin_subdomain=False,
            store_name=admin.store_name,
        )

    subdomain = extract_subdomain(hostname)
    if not subdomain or subdomain in RESERVED_SUBDOMAINS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No custom domain or valid subdomain found",
        )

    result = await session.execute(select(User).where(User.subdomain == subdomain))
    admin = _require_admin_owner(
        result.scalar_one_or_none(), "Subdomain not found", "Subdomain does not belong to an admin"
    )
    return HostInfo(
        admin_id=admin.id,
        role=admin.role,
        subdomain=subdomain,
        custom_domain=None,
        is_custom_domain=False,
        is_admin_subdomain=True,
        store_name=admin.store_name,
    )


@router.get("/{subdomain}", response_model=SubdomainInfo)
async def get_subdomain(subdomain: str, session: AsyncSession = Depends(get_session)):
    result = await session.execute(select(User).where(User.subdomain == subdomain.lower()))
    admin = _require_admin_owner(
        result.scalar_one_or_none(), "Subdomain not found", "Subdomain does not belong to an admin"
    )
    return SubdomainInfo(admin_id=admin.id, role=admin.role)
