"""
Identity / session interface.

The auth provider is external; the engine only sees the acting user's role
and tenant scope and checks it before mutating anything.
"""

from dataclasses import dataclass
from typing import Optional

from .errors import PermissionDeniedError

SUPER_ADMIN = "super_admin"
COMPANY_ADMIN = "company_admin"
SITE_MANAGER = "site_manager"
SECURITY_OFFICER = "security_officer"

ROLES = (SUPER_ADMIN, COMPANY_ADMIN, SITE_MANAGER, SECURITY_OFFICER)

# Profiles in this role are the billable guards.
BILLABLE_ROLE = SECURITY_OFFICER


@dataclass(frozen=True)
class Actor:
    """The acting user as reported by the identity provider."""

    user_id: str
    role: str
    company_id: Optional[str] = None

    @property
    def is_platform_admin(self) -> bool:
        return self.role == SUPER_ADMIN

    def can_administer(self, company_id: str) -> bool:
        if self.is_platform_admin:
            return True
        return self.role == COMPANY_ADMIN and company_id is not None and self.company_id == company_id

    @classmethod
    def from_headers(cls, headers) -> Optional["Actor"]:
        """Build an Actor from the headers set by the upstream auth gateway."""
        user_id = headers.get("X-User-Id")
        role = headers.get("X-User-Role")
        if not user_id or not role:
            return None
        return cls(user_id=user_id, role=role, company_id=headers.get("X-Company-Id") or None)


def require_platform_admin(actor: Optional[Actor]) -> Actor:
    if actor is None or not actor.is_platform_admin:
        raise PermissionDeniedError("Platform administrator access required")
    return actor


def require_company_admin(actor: Optional[Actor], company_id: str) -> Actor:
    if actor is None or not actor.can_administer(company_id):
        raise PermissionDeniedError(f"Administrator access to company {company_id} required")
    return actor
