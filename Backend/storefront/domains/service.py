"""
Custom domain lifecycle for one admin.

``DomainService`` is always bound to the calling admin: every lookup filters
on ``admin_id`` so an admin can never read or change another admin's domain.

Verification commits VERIFYING before polling DNS so no transaction is held
open across the retry waits. The VERIFYING claim is a conditional UPDATE on
the stored status, and a run that raises or is cancelled leaves the domain
FAILED with its token intact.
"""

import logging
from typing import Awaitable, Callable, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import CustomDomain, DomainStatus
from .dns_lookup import DnsResolver
from .errors import (
    DomainAlreadyExistsError,
    DomainNotFoundError,
    InvalidDomainError,
    InvalidDomainTransition,
)
from .verification import (
    TRANSITIONS,
    VerificationResult,
    auto_verify,
    ensure_transition,
    generate_dns_records,
    generate_verification_token,
    is_valid_domain,
)

logger = logging.getLogger(__name__)

VERIFIABLE_STATUSES = tuple(
    status for status, targets in TRANSITIONS.items() if DomainStatus.VERIFYING in targets
)


def normalize_domain(domain: str) -> str:
    return (domain or "").strip().rstrip(".").lower()


async def is_domain_available(session: AsyncSession, domain: str) -> bool:
    result = await session.execute(
        select(CustomDomain.id).where(CustomDomain.domain == normalize_domain(domain))
    )
    return result.scalar_one_or_none() is None


class DomainService:
    def __init__(self, session: AsyncSession, admin_id: int, target_domain: str):
        self.session = session
        self.admin_id = admin_id
        self.target_domain = target_domain

    async def list_domains(self) -> Sequence[CustomDomain]:
        result = await self.session.execute(
            select(CustomDomain)
            .where(CustomDomain.admin_id == self.admin_id)
            .order_by(CustomDomain.created_at.desc(), CustomDomain.id.desc())
        )
        return result.scalars().all()

    async def get_domain(self, domain_id: int) -> CustomDomain:
        result = await self.session.execute(
            select(CustomDomain).where(
                CustomDomain.id == domain_id,
                CustomDomain.admin_id == self.admin_id,
            )
        )
        domain = result.scalar_one_or_none()
        if domain is None:
            raise DomainNotFoundError(domain_id)
        return domain

    async def add_domain(self, domain: str) -> CustomDomain:
        """
        Register a domain in PENDING with its token and required records.

        Raises:
            InvalidDomainError: malformed hostname
            DomainAlreadyExistsError: another record already claims the hostname
        """
        name = normalize_domain(domain)
        if not is_valid_domain(name):
            raise InvalidDomainError("Invalid domain format")

        if not await is_domain_available(self.session, name):
            raise DomainAlreadyExistsError(name)

        token = generate_verification_token()
        record = CustomDomain(
            domain=name,
            admin_id=self.admin_id,
            status=DomainStatus.PENDING,
            verification_token=token,
            dns_records=[r.to_dict() for r in generate_dns_records(name, token, self.target_domain)],
            is_active=False,
        )
        self.session.add(record)
        try:
            await self.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent add of the same hostname
            await self.session.rollback()
            raise DomainAlreadyExistsError(name)

        await self.session.refresh(record)
        logger.info(f"Admin {self.admin_id} added domain {name}")
        return record

    async def verify_domain(
        self,
        domain_id: int,
        resolver: DnsResolver,
        max_attempts: int,
        delay_seconds: float,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> tuple[CustomDomain, VerificationResult]:
        """
        Run DNS verification with retries and persist the outcome.

        Raises:
            DomainNotFoundError: no such domain for this admin
            InvalidDomainTransition: the domain is not PENDING or FAILED
        """
        record = await self.get_domain(domain_id)
        domain_pk = record.id
        await self._claim_for_verification(record)
        await self.session.refresh(record)

        try:
            result = await auto_verify(
                record.domain,
                record.verification_token,
                self.target_domain,
                resolver,
                max_attempts=max_attempts,
                delay_seconds=delay_seconds,
                sleep=sleep,
            )

            now = CustomDomain.now_utc()
            if result.verified:
                ensure_transition(record.status, DomainStatus.VERIFIED)
                record.status = DomainStatus.VERIFIED
                record.verified_at = now
                record.error_message = None
            else:
                ensure_transition(record.status, DomainStatus.FAILED)
                record.status = DomainStatus.FAILED
                record.error_message = result.error_message
            record.last_verified = now

            await self.session.commit()
        except BaseException as exc:
            await self._fail_interrupted(domain_pk, exc)
            raise

        await self.session.refresh(record)
        logger.info(f"Domain {record.domain} verification finished: {record.status.value}")
        return record, result

    async def _claim_for_verification(self, record: CustomDomain) -> None:
        """
        Move the domain to VERIFYING only if it is still verifiable in the
        store, so two concurrent requests cannot both run verification.
        """
        ensure_transition(record.status, DomainStatus.VERIFYING)
        claimed = await self.session.execute(
            update(CustomDomain)
            .where(
                CustomDomain.id == record.id,
                CustomDomain.admin_id == self.admin_id,
                CustomDomain.status.in_(VERIFIABLE_STATUSES),
            )
            .values(status=DomainStatus.VERIFYING)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            await self.session.rollback()
            raise InvalidDomainTransition(
                DomainStatus.VERIFYING,
                DomainStatus.VERIFYING,
                "Domain verification is already in progress",
            )
        await self.session.commit()

    async def _fail_interrupted(self, domain_id: int, exc: BaseException) -> None:
        """Record FAILED for a run that raised, was cancelled, or could not commit."""
        message = f"Verification interrupted: {type(exc).__name__}"
        if str(exc):
            message = f"{message} ({exc})"
        try:
            await self.session.rollback()
            await self.session.execute(
                update(CustomDomain)
                .where(CustomDomain.id == domain_id, CustomDomain.status == DomainStatus.VERIFYING)
                .values(
                    status=DomainStatus.FAILED,
                    error_message=message,
                    last_verified=CustomDomain.now_utc(),
                )
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except Exception:
            logger.exception(f"Could not mark domain {domain_id} FAILED after an interrupted verification")
            return
        logger.warning(f"Domain {domain_id} verification interrupted: {message}")

    async def activate_domain(self, domain_id: int) -> CustomDomain:
        record = await self.get_domain(domain_id)
        ensure_transition(record.status, DomainStatus.ACTIVE)
        record.status = DomainStatus.ACTIVE
        record.is_active = True
        await self.session.commit()
        await self.session.refresh(record)
        logger.info(f"Domain {record.domain} activated for admin {self.admin_id}")
        return record

    async def deactivate_domain(self, domain_id: int) -> CustomDomain:
        record = await self.get_domain(domain_id)
        ensure_transition(record.status, DomainStatus.INACTIVE)
        record.status = DomainStatus.INACTIVE
        record.is_active = False
        await self.session.commit()
        await self.session.refresh(record)
        logger.info(f"Domain {record.domain} deactivated for admin {self.admin_id}")
        return record

    async def delete_domain(self, domain_id: int) -> None:
        record = await self.get_domain(domain_id)
        await self.session.delete(record)
        await self.session.commit()
        logger.info(f"Domain {record.domain} deleted by admin {self.admin_id}")
