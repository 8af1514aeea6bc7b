"""
Tenant Resolution Middleware

Resolves the TenantContext once per request from the Host header (or trusted
edge headers) and attaches it to ``request.state.tenant`` and the
``current_tenant`` context variable for downstream handlers.
"""

import logging
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..core.db import sessionmaker_from_request
from .context import TenantContext, resolve_request_tenant

logger = logging.getLogger(__name__)

current_tenant: ContextVar[Optional[TenantContext]] = ContextVar("current_tenant", default=None)


def get_current_tenant() -> TenantContext:
    """Tenant of the request being served; no tenant outside a request."""
    return current_tenant.get() or TenantContext.none()


class TenantResolutionMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        async with sessionmaker_from_request(request)() as session:
            tenant = await resolve_request_tenant(request, session)

        request.state.tenant = tenant
        token = current_tenant.set(tenant)
        try:
            return await call_next(request)
        finally:
            current_tenant.reset(token)
