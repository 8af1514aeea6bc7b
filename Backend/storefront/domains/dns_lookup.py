"""
DNS lookups for custom-domain verification.

Lookups never raise: every outcome is a ``DnsLookup`` whose status separates
"record does not exist" (NXDOMAIN / no answer) from transient failures
(timeouts, unreachable nameservers, malformed responses).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

import dns.asyncresolver
import dns.exception
import dns.resolver

logger = logging.getLogger(__name__)


class LookupStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class DnsLookup:
    status: LookupStatus
    values: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.FOUND

    @classmethod
    def not_found(cls, reason: str) -> "DnsLookup":
        return cls(status=LookupStatus.NOT_FOUND, error=reason)

    @classmethod
    def failed(cls, reason: str) -> "DnsLookup":
        return cls(status=LookupStatus.ERROR, error=reason)


class DnsResolver(Protocol):
    async def resolve_txt(self, name: str) -> DnsLookup: ...

    async def resolve_cname(self, name: str) -> DnsLookup: ...


class DnsPythonResolver:
    """DnsResolver backed by dnspython's asyncio resolver."""

    def __init__(self, timeout: float = 5.0, resolver: Optional[dns.asyncresolver.Resolver] = None):
        self.timeout = timeout
        self._resolver = resolver or dns.asyncresolver.Resolver()

    async def _query(self, name: str, rdtype: str) -> tuple[Optional[dns.resolver.Answer], Optional[DnsLookup]]:
        try:
            answer = await self._resolver.resolve(name, rdtype, lifetime=self.timeout)
            return answer, None
        except dns.resolver.NXDOMAIN:
            return None, DnsLookup.not_found(f"{name} does not exist")
        except dns.resolver.NoAnswer:
            return None, DnsLookup.not_found(f"No {rdtype} record at {name}")
        except dns.exception.Timeout:
            logger.info(f"{rdtype} lookup for {name} timed out after {self.timeout}s")
            return None, DnsLookup.failed(f"{rdtype} lookup for {name} timed out")
        except dns.resolver.NoNameservers as e:
            logger.info(f"{rdtype} lookup for {name} failed: {e}")
            return None, DnsLookup.failed(f"No nameserver answered the {rdtype} lookup for {name}")
        except dns.exception.DNSException as e:
            logger.info(f"{rdtype} lookup for {name} failed: {e}")
            return None, DnsLookup.failed(f"{rdtype} lookup for {name} failed: {e}")

    async def resolve_txt(self, name: str) -> DnsLookup:
        answer, failure = await self._query(name, "TXT")
        if failure:
            return failure
        # A TXT record may be split into several character-strings
        values = [
            b"".join(rdata.strings).decode("utf-8", errors="replace")
            for rdata in answer
        ]
        return DnsLookup(status=LookupStatus.FOUND, values=values)

    async def resolve_cname(self, name: str) -> DnsLookup:
        answer, failure = await self._query(name, "CNAME")
        if failure:
            return failure
        values = [rdata.target.to_text() for rdata in answer]
        return DnsLookup(status=LookupStatus.FOUND, values=values)
