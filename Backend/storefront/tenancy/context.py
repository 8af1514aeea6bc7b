"""
Multi-tenancy context module.

This module provides the TenantContext abstraction for storefront isolation.

Resolution order for an inbound request (first match wins):
    1. Pre-resolved X-Tenant-* headers, only when the TCP peer is a trusted edge proxy
    2. ACTIVE custom domain matching the host exactly
    3. Subdomain label of the host, owned by an ADMIN account
    4. No tenant (global / superadmin view)

Resolution is best-effort routing: store failures are logged and degrade to
"no tenant" instead of failing the request.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings_from_request
from ..core.db import get_session
from ..models import CustomDomain, DomainStatus, User, UserRole
from .config import (
    DEV_HOST_MARKER,
    EDGE_HEADERS,
    ORIGINAL_HOST_HEADER,
    RESERVED_SUBDOMAINS,
    TENANT_ADMIN_ID_HEADER,
    TENANT_DOMAIN_HEADER,
    TENANT_KIND_HEADER,
)


logger = logging.getLogger(__name__)


class ResolutionKind(str, Enum):
    """How the tenant was determined."""

    CUSTOM_DOMAIN = "custom_domain"
    SUBDOMAIN = "subdomain"
    NONE = "none"


@dataclass(frozen=True)
class TenantContext:
    """
    Immutable context representing the storefront a request belongs to.

    Attributes:
        admin_id: Owning admin (users.id); None when no tenant matched
        kind: Which resolution path matched
        domain_identifier: The matched hostname (custom domain) or subdomain label
    """

    admin_id: Optional[int] = None
    kind: ResolutionKind = ResolutionKind.NONE
    domain_identifier: Optional[str] = None

    def __post_init__(self):
        if self.kind == ResolutionKind.NONE:
            if self.admin_id is not None:
                raise ValueError("admin_id must be empty when no tenant was resolved")
        elif self.admin_id is None or self.admin_id <= 0:
            raise ValueError(f"admin_id must be positive for {self.kind.value} resolution, got {self.admin_id}")

    @classmethod
    def none(cls) -> "TenantContext":
        return cls()

    @property
    def is_resolved(self) -> bool:
        return self.admin_id is not None

    def to_headers(self) -> dict[str, str]:
        """Encode for forwarding. The edge layer must write exactly this."""
        if not self.is_resolved:
            return {TENANT_KIND_HEADER: ResolutionKind.NONE.value}
        return {
            TENANT_KIND_HEADER: self.kind.value,
            TENANT_ADMIN_ID_HEADER: str(self.admin_id),
            TENANT_DOMAIN_HEADER: self.domain_identifier or "",
        }

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> Optional["TenantContext"]:
        """
        Decode forwarded tenant headers.

        Returns None when no tenant header is present.

        Raises:
            ValueError: headers are present but malformed
        """
        kind_value = headers.get(TENANT_KIND_HEADER)
        if kind_value is None:
            return None

        kind = ResolutionKind(kind_value.strip().lower())
        if kind == ResolutionKind.NONE:
            return cls.none()

        admin_id_value = (headers.get(TENANT_ADMIN_ID_HEADER) or "").strip()
        if not admin_id_value.isdigit():
            raise ValueError(f"Invalid {TENANT_ADMIN_ID_HEADER}: {admin_id_value!r}")

        domain = (headers.get(TENANT_DOMAIN_HEADER) or "").strip() or None
        return cls(admin_id=int(admin_id_value), kind=kind, domain_identifier=domain)


# ────────────────────────────────────────────────────────────────
# Host Helpers
# ────────────────────────────────────────────────────────────────

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def normalize_host(host: str) -> str:
    """
    Reduce a Host header (or URL) to a bare lowercase hostname.

    Examples:
        "Shop.Example.com:8080" -> "shop.example.com"
        "https://example.com/path" -> "example.com"
        "[::1]:8000" -> "::1"
    """
    if not host:
        return ""
    value = _SCHEME_RE.sub("", host.strip())
    value = value.split("/", 1)[0]

    if value.startswith("["):
        # Bracketed IPv6 literal, optionally with a port
        return value[1:].split("]", 1)[0].lower()

    value = value.split(":", 1)[0]
    return value.rstrip(".").lower()


def extract_subdomain(host: str) -> Optional[str]:
    """
    Extract the candidate subdomain label from a hostname.

    Development hosts (containing "localhost") yield the first label when
    there is more than one; production hosts only when there are more than
    two labels, so a bare "example.com" has none. Reserved labels such as
    "www" are returned here and rejected by the resolver.
    """
    host = normalize_host(host)
    if not host:
        return None

    parts = host.split(".")
    if DEV_HOST_MARKER in host:
        return parts[0] if len(parts) > 1 else None

    if len(parts) > 2:
        return parts[0]
    return None


# ────────────────────────────────────────────────────────────────
# Store Lookups
# ────────────────────────────────────────────────────────────────

async def find_active_custom_domain(session: AsyncSession, host: str) -> Optional[CustomDomain]:
    """Exact-match custom domain that is currently serving traffic."""
    result = await session.execute(
        select(CustomDomain).where(
            CustomDomain.domain == host,
            CustomDomain.status == DomainStatus.ACTIVE,
            CustomDomain.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def find_admin_by_subdomain(session: AsyncSession, subdomain: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.subdomain == subdomain))
    user = result.scalar_one_or_none()
    if user is None or user.role != UserRole.ADMIN:
        return None
    return user


# ────────────────────────────────────────────────────────────────
# Resolution
# ────────────────────────────────────────────────────────────────

async def resolve_tenant_from_host(session: AsyncSession, host_header: str) -> TenantContext:
    """
    Resolve the storefront for a hostname.

    Custom domains take precedence over subdomains. Never raises for store
    failures: they are logged and resolve to no tenant.
    """
    host = normalize_host(host_header)
    if not host:
        return TenantContext.none()

    try:
        domain = await find_active_custom_domain(session, host)
        if domain:
            logger.debug(f"Resolved custom domain {host} -> admin_id={domain.admin_id}")
            return TenantContext(
                admin_id=domain.admin_id,
                kind=ResolutionKind.CUSTOM_DOMAIN,
                domain_identifier=host,
            )

        subdomain = extract_subdomain(host)
        if not subdomain or subdomain in RESERVED_SUBDOMAINS:
            return TenantContext.none()

        admin = await find_admin_by_subdomain(session, subdomain)
        if admin:
            logger.debug(f"Resolved subdomain {subdomain} -> admin_id={admin.id}")
            return TenantContext(
                admin_id=admin.id,
                kind=ResolutionKind.SUBDOMAIN,
                domain_identifier=subdomain,
            )
    except (SQLAlchemyError, OSError):
        logger.exception(f"Tenant resolution failed for host {host!r}; continuing without tenant")

    return TenantContext.none()


def is_trusted_peer(request: Request) -> bool:
    if request.client is None:
        return False
    return request.client.host in settings_from_request(request).trusted_proxy_ip_set


async def resolve_request_tenant(request: Request, session: AsyncSession) -> TenantContext:
    """
    Resolve the TenantContext for a request.

    Forwarded headers are trusted only from configured edge proxies; from any
    other peer they are ignored and the Host header is resolved instead.
    """
    host = request.headers.get("host", "")

    if is_trusted_peer(request):
        try:
            forwarded = TenantContext.from_headers(request.headers)
        except ValueError as e:
            logger.warning(f"Ignoring malformed tenant headers from edge: {e}")
            forwarded = None
        if forwarded is not None:
            return forwarded
        host = request.headers.get(ORIGINAL_HOST_HEADER) or host
    elif any(name in request.headers for name in EDGE_HEADERS):
        peer = request.client.host if request.client else "unknown"
        logger.warning(f"Ignoring tenant headers from untrusted peer {peer}")

    return await resolve_tenant_from_host(session, host)


# ────────────────────────────────────────────────────────────────
# FastAPI Dependencies
# ────────────────────────────────────────────────────────────────

async def get_tenant_context(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> TenantContext:
    """
    FastAPI dependency returning the request's TenantContext.

    Uses the context attached by TenantResolutionMiddleware; resolves on the
    spot when the middleware is not installed.

    Usage:
        @router.get("/products")
        async def list_products(
            tenant: TenantContext = Depends(get_tenant_context),
            session: AsyncSession = Depends(get_session),
        ):
            repo = ScopedRepository(session, tenant)
    """
    ctx = getattr(request.state, "tenant", None)
    if ctx is None:
        ctx = await resolve_request_tenant(request, session)
        request.state.tenant = ctx
    return ctx


async def require_tenant_context(
    ctx: TenantContext = Depends(get_tenant_context),
) -> TenantContext:
    """
    Strict tenant context - rejects with 403 when no storefront resolved.

    Use for endpoints that only make sense within a store (e.g. admin login).
    """
    if not ctx.is_resolved:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: no store could be resolved for this host",
        )
    return ctx
