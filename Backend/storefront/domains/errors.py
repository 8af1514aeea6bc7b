from typing import Optional

from ..models import DomainStatus


class DomainError(Exception):
    """Base class for custom-domain failures reported to the caller."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidDomainError(DomainError):
    pass


class DomainAlreadyExistsError(DomainError):
    def __init__(self, domain: str):
        self.domain = domain
        super().__init__(f"Domain {domain} already exists")


class DomainNotFoundError(DomainError):
    def __init__(self, domain_id: Optional[int] = None):
        self.domain_id = domain_id
        super().__init__("Domain not found")


class InvalidDomainTransition(DomainError):
    def __init__(self, current: DomainStatus, target: DomainStatus, message: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot move domain from {current.value} to {target.value}")
