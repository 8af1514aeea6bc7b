"""
Tenancy configuration constants.

Header names shared by the edge layer and the in-process resolver. The edge
writes exactly what ``TenantContext.to_headers`` produces, so a handler
cannot tell an edge-resolved tenant from one resolved here.
"""

TENANT_KIND_HEADER = "X-Tenant-Kind"
TENANT_ADMIN_ID_HEADER = "X-Tenant-Admin-Id"
TENANT_DOMAIN_HEADER = "X-Tenant-Domain"

# Host the edge received before rewriting the request
ORIGINAL_HOST_HEADER = "X-Original-Host"

EDGE_HEADERS = (
    TENANT_KIND_HEADER,
    TENANT_ADMIN_ID_HEADER,
    TENANT_DOMAIN_HEADER,
    ORIGINAL_HOST_HEADER,
)

# Labels that never identify a storefront
RESERVED_SUBDOMAINS = frozenset({"www"})

DEV_HOST_MARKER = "localhost"
