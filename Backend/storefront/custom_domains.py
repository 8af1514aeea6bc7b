"""
Custom Domain Management API

Lets an admin attach their own hostname to their storefront:
  1. Add a domain (returns the TXT and CNAME records to publish)
  2. Verify DNS (TXT token + CNAME to the platform, retried)
  3. Activate / deactivate a verified domain
  4. List / delete domains

Every operation is scoped to the authenticated admin.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import require_admin
from .core.config import settings_from_request
from .core.db import get_session
from .domains import (
    DnsPythonResolver,
    DnsResolver,
    DomainAlreadyExistsError,
    DomainError,
    DomainNotFoundError,
    DomainService,
    InvalidDomainError,
    InvalidDomainTransition,
    format_dns_instructions,
)
from .domains.verification import DnsRecord
from .models import CustomDomain, DomainStatus, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/domains", tags=["custom-domains"])


# ── Schemas ──

class DomainCreate(BaseModel):
    domain: str


class DnsRecordOut(BaseModel):
    type: str
    name: str
    value: str
    ttl: Optional[int] = None


class DomainOut(BaseModel):
    id: int
    domain: str
    status: DomainStatus
    is_active: bool
    verification_token: str
    dns_records: List[DnsRecordOut]
    error_message: Optional[str] = None
    last_verified: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DomainCreated(BaseModel):
    domain: DomainOut
    instructions: str


class DomainVerifyResult(BaseModel):
    domain: DomainOut
    verified: bool
    errors: List[str]
    records: List[DnsRecordOut]


# ── Dependencies ──

def get_dns_resolver(request: Request) -> DnsResolver:
    resolver = getattr(request.app.state, "dns_resolver", None)
    if resolver is None:
        settings = settings_from_request(request)
        resolver = DnsPythonResolver(timeout=settings.dns_lookup_timeout_seconds)
        request.app.state.dns_resolver = resolver
    return resolver


def get_domain_service(
    request: Request,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> DomainService:
    settings = settings_from_request(request)
    return DomainService(session, admin.id, settings.platform_domain)


def _to_http(exc: DomainError) -> HTTPException:
    if isinstance(exc, DomainNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, InvalidDomainError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, (DomainAlreadyExistsError, InvalidDomainTransition)):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=exc.message)


def _records(record: CustomDomain) -> List[DnsRecord]:
    return [DnsRecord(**r) for r in record.dns_records or []]


# ── Endpoints ──

@router.get("", response_model=List[DomainOut])
async def list_domains(service: DomainService = Depends(get_domain_service)):
    return await service.list_domains()


@router.post("", response_model=DomainCreated, status_code=status.HTTP_201_CREATED)
async def add_domain(
    body: DomainCreate,
    service: DomainService = Depends(get_domain_service),
):
    try:
        record = await service.add_domain(body.domain)
    except DomainError as e:
        raise _to_http(e)

    return DomainCreated(
        domain=DomainOut.model_validate(record),
        instructions=format_dns_instructions(_records(record)),
    )


@router.get("/{domain_id}", response_model=DomainOut)
async def get_domain(domain_id: int, service: DomainService = Depends(get_domain_service)):
    try:
        return await service.get_domain(domain_id)
    except DomainError as e:
        raise _to_http(e)


@router.post("/{domain_id}/verify", response_model=DomainVerifyResult)
async def verify_domain(
    domain_id: int,
    request: Request,
    service: DomainService = Depends(get_domain_service),
    resolver: DnsResolver = Depends(get_dns_resolver),
):
    """
    Check DNS for the domain's TXT token and CNAME.

    Retries ``VERIFY_MAX_ATTEMPTS`` times, ``VERIFY_RETRY_DELAY_SECONDS``
    apart, so this request can take a while on failure.
    """
    settings = settings_from_request(request)
    try:
        record, result = await service.verify_domain(
            domain_id,
            resolver,
            max_attempts=settings.verify_max_attempts,
            delay_seconds=settings.verify_retry_delay_seconds,
        )
    except DomainError as e:
        raise _to_http(e)

    return DomainVerifyResult(
        domain=DomainOut.model_validate(record),
        verified=result.verified,
        errors=result.errors,
        records=[DnsRecordOut(**r.to_dict()) for r in result.records],
    )


@router.post("/{domain_id}/activate", response_model=DomainOut)
async def activate_domain(domain_id: int, service: DomainService = Depends(get_domain_service)):
    try:
        return await service.activate_domain(domain_id)
    except InvalidDomainTransition as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Domain must be verified before activation" if e.current != DomainStatus.ACTIVE else e.message,
        )
    except DomainError as e:
        raise _to_http(e)


@router.post("/{domain_id}/deactivate", response_model=DomainOut)
async def deactivate_domain(domain_id: int, service: DomainService = Depends(get_domain_service)):
    try:
        return await service.deactivate_domain(domain_id)
    except DomainError as e:
        raise _to_http(e)


@router.delete("/{domain_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_domain(domain_id: int, service: DomainService = Depends(get_domain_service)):
    try:
        await service.delete_domain(domain_id)
    except DomainError as e:
        raise _to_http(e)
