"""
Custom domain verification.

An admin proves control of a domain by publishing two records:

    TXT    _ecommerce-verify.<domain>  ->  ecommerce-verification=<token>
    CNAME  <domain>                    ->  <platform domain>

Both checks must pass. DNS failures are never raised; each failed check adds
one human-readable entry to ``VerificationResult.errors``. ``auto_verify``
retries to ride out propagation delay.
"""

import asyncio
import logging
import re
import secrets
from dataclasses import asdict, dataclass, field
from typing import Awaitable, Callable, Optional

from ..models import DomainStatus
from ..tenancy.context import normalize_host
from .dns_lookup import DnsLookup, DnsResolver
from .errors import InvalidDomainTransition

logger = logging.getLogger(__name__)

TXT_RECORD_PREFIX = "_ecommerce-verify"
TXT_VALUE_PREFIX = "ecommerce-verification="
DEFAULT_RECORD_TTL = 300
TOKEN_BYTES = 32  # 256 bits

_DOMAIN_RE = re.compile(
    r"^[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9](?:\.[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9])*$"
)


@dataclass(frozen=True)
class DnsRecord:
    type: str
    name: str
    value: str
    ttl: Optional[int] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.ttl is None:
            data.pop("ttl")
        return data


@dataclass
class VerificationResult:
    verified: bool
    errors: list[str] = field(default_factory=list)
    # Records currently published, for display next to the required ones
    records: list[DnsRecord] = field(default_factory=list)

    @property
    def error_message(self) -> Optional[str]:
        return ", ".join(self.errors) if self.errors else None


# ────────────────────────────────────────────────────────────────
# Tokens and Records
# ────────────────────────────────────────────────────────────────

def generate_verification_token() -> str:
    """Random hex token, generated once per domain and never regenerated."""
    return secrets.token_hex(TOKEN_BYTES)


def txt_record_name(domain: str) -> str:
    return f"{TXT_RECORD_PREFIX}.{domain}"


def expected_txt_value(token: str) -> str:
    return f"{TXT_VALUE_PREFIX}{token}"


def generate_dns_records(domain: str, token: str, target_domain: str) -> list[DnsRecord]:
    """The records an admin must publish. Same inputs, same records."""
    return [
        DnsRecord(type="TXT", name=txt_record_name(domain), value=expected_txt_value(token), ttl=DEFAULT_RECORD_TTL),
        DnsRecord(type="CNAME", name=domain, value=target_domain, ttl=DEFAULT_RECORD_TTL),
    ]


def is_valid_domain(domain: str) -> bool:
    return bool(domain) and len(domain) <= 253 and bool(_DOMAIN_RE.match(domain))


def extract_domain_from_host(host: str) -> Optional[str]:
    """Bare hostname from a Host header or URL; None when empty."""
    return normalize_host(host) or None


def format_dns_instructions(records: list[DnsRecord]) -> str:
    return "\n".join(f"{r.type} {r.name} {r.value}" for r in records)


# ────────────────────────────────────────────────────────────────
# Checks
# ────────────────────────────────────────────────────────────────

def txt_matches(lookup: DnsLookup, token: str) -> bool:
    expected = expected_txt_value(token)
    return lookup.found and any(value == expected for value in lookup.values)


def cname_matches(lookup: DnsLookup, target_domain: str) -> bool:
    accepted = {target_domain, f"{target_domain}."}
    return lookup.found and any(value in accepted for value in lookup.values)


async def verify_domain(
    domain: str,
    token: str,
    target_domain: str,
    resolver: DnsResolver,
) -> VerificationResult:
    """Run the TXT and CNAME checks once."""
    txt_lookup, cname_lookup = await asyncio.gather(
        resolver.resolve_txt(txt_record_name(domain)),
        resolver.resolve_cname(domain),
    )

    errors = []
    if not txt_matches(txt_lookup, token):
        message = "TXT record verification failed. Please ensure the TXT record is properly configured."
        if txt_lookup.error:
            message = f"{message} ({txt_lookup.error})"
        errors.append(message)

    if not cname_matches(cname_lookup, target_domain):
        message = "CNAME record verification failed. Please ensure the domain points to our servers."
        if cname_lookup.error:
            message = f"{message} ({cname_lookup.error})"
        errors.append(message)

    records = []
    if txt_lookup.found:
        records.append(DnsRecord(type="TXT", name=txt_record_name(domain), value=", ".join(txt_lookup.values)))
    if cname_lookup.found:
        records.append(DnsRecord(type="CNAME", name=domain, value=", ".join(cname_lookup.values)))

    return VerificationResult(verified=not errors, errors=errors, records=records)


async def auto_verify(
    domain: str,
    token: str,
    target_domain: str,
    resolver: DnsResolver,
    max_attempts: int = 3,
    delay_seconds: float = 5.0,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> VerificationResult:
    """
    Verify with retries, stopping at the first success.

    Sleeps ``delay_seconds`` between attempts (not after the last) and
    returns the last attempt's result when every attempt fails.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    sleep = sleep or asyncio.sleep

    result = VerificationResult(verified=False, errors=["Verification not started"])
    for attempt in range(1, max_attempts + 1):
        logger.info(f"Domain verification attempt {attempt}/{max_attempts} for {domain}")
        result = await verify_domain(domain, token, target_domain, resolver)

        if result.verified:
            logger.info(f"Domain {domain} verified on attempt {attempt}")
            return result

        if attempt < max_attempts:
            await sleep(delay_seconds)

    logger.info(f"Domain verification failed for {domain} after {max_attempts} attempts")
    return result


# ────────────────────────────────────────────────────────────────
# State Machine
# ────────────────────────────────────────────────────────────────

TRANSITIONS: dict[DomainStatus, frozenset[DomainStatus]] = {
    DomainStatus.PENDING: frozenset({DomainStatus.VERIFYING}),
    DomainStatus.FAILED: frozenset({DomainStatus.VERIFYING}),
    DomainStatus.VERIFYING: frozenset({DomainStatus.VERIFIED, DomainStatus.FAILED}),
    DomainStatus.VERIFIED: frozenset({DomainStatus.ACTIVE}),
    DomainStatus.ACTIVE: frozenset({DomainStatus.INACTIVE}),
    DomainStatus.INACTIVE: frozenset({DomainStatus.ACTIVE}),
}


def can_transition(current: DomainStatus, target: DomainStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: DomainStatus, target: DomainStatus) -> None:
    if not can_transition(current, target):
        raise InvalidDomainTransition(current, target)
