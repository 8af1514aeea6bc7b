"""
Subdomain allocation for admin storefronts.

Each admin gets one subdomain derived from their name at creation time:
"John Doe" -> "johndoe", then "johndoe1", "johndoe2", ... when taken.

The availability probe is advisory. The unique constraint on
``users.subdomain`` is what guarantees uniqueness, so account creation
retries allocation when a concurrent insert wins the race.
"""

import logging
import re
from typing import Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import User, UserRole

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

MAX_SUBDOMAIN_LENGTH = 63


class InvalidSubdomainError(ValueError):
    """No usable subdomain can be derived from the given name."""


class AdminEmailTakenError(ValueError):
    pass


def generate_base_subdomain(first_name: str, last_name: str) -> str:
    base = f"{first_name or ''}{last_name or ''}".lower()
    return _NON_ALNUM_RE.sub("", base)


async def subdomain_exists(session: AsyncSession, subdomain: str) -> bool:
    result = await session.execute(select(User.id).where(User.subdomain == subdomain))
    return result.scalar_one_or_none() is not None


async def email_exists(session: AsyncSession, email: str) -> bool:
    result = await session.execute(select(User.id).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none() is not None


async def allocate_subdomain(session: AsyncSession, first_name: str, last_name: str) -> str:
    """
    Return the first free candidate: base, base1, base2, ...

    Raises:
        InvalidSubdomainError: the name has no letters or digits to build from
    """
    base = generate_base_subdomain(first_name, last_name)
    if not base:
        raise InvalidSubdomainError(
            f"Cannot derive a subdomain from {first_name!r} {last_name!r}"
        )

    candidate = base[:MAX_SUBDOMAIN_LENGTH]
    counter = 1
    while await subdomain_exists(session, candidate):
        suffix = str(counter)
        candidate = f"{base[:MAX_SUBDOMAIN_LENGTH - len(suffix)]}{suffix}"
        counter += 1
    return candidate


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored hash is not a bcrypt hash
        return False


async def create_admin_account(
    session: AsyncSession,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    store_name: Optional[str] = None,
    retries: int = 3,
) -> User:
    """
    Create an ADMIN user with a freshly allocated subdomain.

    Allocation is retried up to ``retries`` times when the insert hits a
    unique violation on the subdomain.

    Raises:
        InvalidSubdomainError: no subdomain can be derived from the name
        AdminEmailTakenError: the email already belongs to a user
        IntegrityError: subdomain races were lost on every attempt
    """
    email = email.strip().lower()
    if await email_exists(session, email):
        raise AdminEmailTakenError(f"User with email {email} already exists")

    password_hash = hash_password(password)

    for attempt in range(1, retries + 1):
        subdomain = await allocate_subdomain(session, first_name, last_name)
        admin = User(
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=UserRole.ADMIN,
            subdomain=subdomain,
            store_name=store_name,
        )
        session.add(admin)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            if await email_exists(session, email):
                # A concurrent signup took the email, not the subdomain
                raise AdminEmailTakenError(f"User with email {email} already exists")
            if attempt == retries:
                raise
            logger.warning(f"Subdomain {subdomain} taken concurrently, retrying ({attempt}/{retries})")
            continue

        await session.refresh(admin)
        logger.info(f"Created admin {admin.id} ({email}) with subdomain {subdomain}")
        return admin

    raise ValueError("retries must be at least 1")


async def update_admin_account(
    session: AsyncSession,
    admin: User,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
    store_name: Optional[str] = None,
) -> User:
    """
    Update an admin's profile. The subdomain stays as allocated.

    Raises:
        AdminEmailTakenError: the new email belongs to another user
    """
    if email is not None:
        email = email.strip().lower()
        if email != admin.email and await email_exists(session, email):
            raise AdminEmailTakenError(f"User with email {email} already exists")
        admin.email = email
    if first_name is not None:
        admin.first_name = first_name
    if last_name is not None:
        admin.last_name = last_name
    if store_name is not None:
        admin.store_name = store_name
    if password:
        admin.password_hash = hash_password(password)

    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise AdminEmailTakenError(f"User with email {email} already exists")

    await session.refresh(admin)
    logger.info(f"Updated admin {admin.id}")
    return admin
