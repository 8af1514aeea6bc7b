"""
Pytest configuration and fixtures for async database testing.

Every test gets a fresh in-memory SQLite database (aiosqlite) with the full
schema, an app built with test settings, and a fake DNS resolver so nothing
touches the network.
"""
import itertools

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from storefront.auth import create_access_token
from storefront.core.config import Settings
from storefront.core.db import Base
from storefront.domains.dns_lookup import DnsLookup, LookupStatus
from storefront.main import create_app
from storefront.domains.verification import generate_dns_records, generate_verification_token
from storefront.models import CustomDomain, DomainStatus, User, UserRole
from storefront.subdomains import create_admin_account, hash_password

TEST_DATABASE_URL = "sqlite+aiosqlite://"

# Peer address the edge proxy connects from in tests
EDGE_PROXY_IP = "10.0.0.1"
# Any other client
PUBLIC_CLIENT_IP = "203.0.113.5"


class FakeDnsResolver:
    """
    In-memory DNS. ``txt`` and ``cname`` map names to published values;
    ``errors`` maps names to a transient failure reason.
    """

    def __init__(self):
        self.txt: dict[str, list[str]] = {}
        self.cname: dict[str, list[str]] = {}
        self.errors: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []

    def _lookup(self, records: dict[str, list[str]], name: str) -> DnsLookup:
        if name in self.errors:
            return DnsLookup.failed(self.errors[name])
        values = records.get(name)
        if not values:
            return DnsLookup.not_found(f"No records for {name}")
        return DnsLookup(status=LookupStatus.FOUND, values=list(values))

    async def resolve_txt(self, name: str) -> DnsLookup:
        self.calls.append(("TXT", name))
        return self._lookup(self.txt, name)

    async def resolve_cname(self, name: str) -> DnsLookup:
        self.calls.append(("CNAME", name))
        return self._lookup(self.cname, name)


@pytest.fixture
def settings():
    return Settings(
        database_url=TEST_DATABASE_URL,
        jwt_secret="test-secret",
        platform_domain="codeopx.com",
        verify_max_attempts=2,
        verify_retry_delay_seconds=0,
        trusted_proxy_ips=EDGE_PROXY_IP,
        allowed_origins="http://localhost:3000",
    )


@pytest.fixture
async def async_engine():
    """
    One in-memory database per test. StaticPool keeps every session on the
    same connection so they all see the same data.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def async_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def fake_dns():
    return FakeDnsResolver()


@pytest.fixture
def app(settings, session_maker, fake_dns):
    application = create_app(settings)
    application.state.sessionmaker = session_maker
    application.state.dns_resolver = fake_dns
    return application


@pytest.fixture
async def client(app):
    """Client connecting from an untrusted public address."""
    async with AsyncClient(
        transport=ASGITransport(app=app, client=(PUBLIC_CLIENT_IP, 40000)),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def edge_client(app):
    """Client connecting from the trusted edge proxy."""
    async with AsyncClient(
        transport=ASGITransport(app=app, client=(EDGE_PROXY_IP, 40000)),
        base_url="http://test",
    ) as ac:
        yield ac


# ────────────────────────────────────────────────────────────────
# Data helpers
# ────────────────────────────────────────────────────────────────

@pytest.fixture
def create_admin(session_maker):
    emails = itertools.count(1)

    async def _create(first_name="John", last_name="Doe", email=None, password="password123", store_name=None):
        email = email or f"admin{next(emails)}@example.com"
        async with session_maker() as session:
            return await create_admin_account(
                session,
                first_name=first_name,
                last_name=last_name,
                email=email,
                password=password,
                store_name=store_name,
            )

    return _create


@pytest.fixture
def create_user(session_maker):
    async def _create(email, role=UserRole.USER, password="password123", subdomain=None):
        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name="Test",
            last_name="User",
            role=role,
            subdomain=subdomain,
        )
        async with session_maker() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)
        return user

    return _create


@pytest.fixture
def auth_headers(settings):
    def _headers(user, host=None):
        headers = {"Authorization": f"Bearer {create_access_token(settings, user)}"}
        if host:
            headers["Host"] = host
        return headers

    return _headers


@pytest.fixture
def create_domain(session_maker, settings):
    async def _create(admin_id, domain, status=DomainStatus.PENDING, is_active=False):
        token = generate_verification_token()
        record = CustomDomain(
            domain=domain,
            admin_id=admin_id,
            status=status,
            verification_token=token,
            dns_records=[r.to_dict() for r in generate_dns_records(domain, token, settings.platform_domain)],
            is_active=is_active,
        )
        async with session_maker() as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
        return record

    return _create
