"""
Custom domain package.

Modules:
    dns_lookup: DNS adapter over dnspython returning typed lookup outcomes
    verification: tokens, required records, TXT/CNAME checks, retries, state machine
    service: DomainService driving persisted domain state for one admin
    errors: DomainError hierarchy
"""

from .dns_lookup import DnsLookup, DnsPythonResolver, DnsResolver, LookupStatus
from .errors import (
    DomainAlreadyExistsError,
    DomainError,
    DomainNotFoundError,
    InvalidDomainError,
    InvalidDomainTransition,
)
from .service import DomainService, is_domain_available, normalize_domain
from .verification import (
    TRANSITIONS,
    DnsRecord,
    VerificationResult,
    auto_verify,
    can_transition,
    ensure_transition,
    extract_domain_from_host,
    format_dns_instructions,
    generate_dns_records,
    generate_verification_token,
    is_valid_domain,
    verify_domain,
)

__all__ = [
    # DNS
    "DnsLookup",
    "DnsPythonResolver",
    "DnsResolver",
    "LookupStatus",
    # Errors
    "DomainAlreadyExistsError",
    "DomainError",
    "DomainNotFoundError",
    "InvalidDomainError",
    "InvalidDomainTransition",
    # Service
    "DomainService",
    "is_domain_available",
    "normalize_domain",
    # Verification
    "TRANSITIONS",
    "DnsRecord",
    "VerificationResult",
    "auto_verify",
    "can_transition",
    "ensure_transition",
    "extract_domain_from_host",
    "format_dns_instructions",
    "generate_dns_records",
    "generate_verification_token",
    "is_valid_domain",
    "verify_domain",
]
