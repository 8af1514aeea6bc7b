"""
Multi-tenancy package.

This package provides tenant isolation primitives for the storefront platform.

Modules:
    context: TenantContext, host resolution, FastAPI dependencies
    middleware: per-request resolution and the current_tenant context variable
    queries: ScopedRepository and tenant-scoped query helpers
    config: header names and reserved labels
"""

from .context import (
    ResolutionKind,
    TenantContext,
    extract_subdomain,
    find_active_custom_domain,
    find_admin_by_subdomain,
    get_tenant_context,
    normalize_host,
    require_tenant_context,
    resolve_request_tenant,
    resolve_tenant_from_host,
)
from .middleware import TenantResolutionMiddleware, current_tenant, get_current_tenant
from .queries import (
    UNSCOPED,
    CategoryInUseError,
    ProductInUseError,
    ProductPage,
    Scope,
    ScopedRepository,
    require_owned,
    scope_admin_id,
    scoped_select,
    tenant_filter,
)

__all__ = [
    # Context
    "ResolutionKind",
    "TenantContext",
    "extract_subdomain",
    "find_active_custom_domain",
    "find_admin_by_subdomain",
    "get_tenant_context",
    "normalize_host",
    "require_tenant_context",
    "resolve_request_tenant",
    "resolve_tenant_from_host",
    # Middleware
    "TenantResolutionMiddleware",
    "current_tenant",
    "get_current_tenant",
    # Query helpers
    "UNSCOPED",
    "CategoryInUseError",
    "ProductInUseError",
    "ProductPage",
    "Scope",
    "ScopedRepository",
    "require_owned",
    "scope_admin_id",
    "scoped_select",
    "tenant_filter",
]
