"""
Identity Schemas

The resolved view of a requester: platform role plus a single list of
company affiliations tagged primary / secondary / pending.
"""

import uuid
from typing import Optional

from pydantic import BaseModel, Field

from schemas.enums import AffiliationKind, CompanyRole, PlatformRole


class Affiliation(BaseModel):
    """One relationship between a user and a company."""
    company_id: uuid.UUID
    kind: AffiliationKind
    role: Optional[str] = Field(
        default=None,
        description="Company role for primary affiliations, 'collaborator' for secondary"
    )


class Identity(BaseModel):
    """A requester, possibly anonymous."""
    user_id: Optional[uuid.UUID] = None
    email: Optional[str] = None
    platform_role: Optional[PlatformRole] = None
    affiliations: list[Affiliation] = Field(default_factory=list)

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls()

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.platform_role == PlatformRole.ADMIN

    @property
    def is_reviewer(self) -> bool:
        """Admins and client reviewers may countersign and reject NDAs."""
        return self.platform_role in (PlatformRole.ADMIN, PlatformRole.CLIENT_REVIEWER)

    @property
    def primary(self) -> Optional[Affiliation]:
        for affiliation in self.affiliations:
            if affiliation.kind == AffiliationKind.PRIMARY:
                return affiliation
        return None

    @property
    def primary_company_id(self) -> Optional[uuid.UUID]:
        primary = self.primary
        return primary.company_id if primary else None

    @property
    def primary_company_role(self) -> Optional[str]:
        primary = self.primary
        return primary.role if primary else None

    @property
    def secondary_company_ids(self) -> set[uuid.UUID]:
        return {
            a.company_id for a in self.affiliations
            if a.kind == AffiliationKind.SECONDARY
        }

    def is_company_admin(self, company_id: uuid.UUID) -> bool:
        """True when the requester is a primary admin of the company."""
        primary = self.primary
        return (
            primary is not None
            and primary.company_id == company_id
            and primary.role == CompanyRole.ADMIN.value
        )

    def can_manage_company(self, company_id: uuid.UUID) -> bool:
        return self.is_admin or self.is_company_admin(company_id)
