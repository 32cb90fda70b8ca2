"""
RFP Portal - Pydantic Schemas

Identity, access decisions, operation results and shared enumerations.
"""

from schemas.enums import (
    PlatformRole,
    CompanyRole,
    AffiliationKind,
    RFPStatus,
    Visibility,
    NdaStatus,
    NdaKind,
    ApprovalStatus,
)
from schemas.identity import Affiliation, Identity
from schemas.access import (
    AccessReason,
    AccessDecision,
    DocumentAccess,
    AccessContext,
)
from schemas.results import ErrorKind, OperationResult, ClientInfo

__all__ = [
    # Enums
    "PlatformRole",
    "CompanyRole",
    "AffiliationKind",
    "RFPStatus",
    "Visibility",
    "NdaStatus",
    "NdaKind",
    "ApprovalStatus",
    # Identity
    "Affiliation",
    "Identity",
    # Access
    "AccessReason",
    "AccessDecision",
    "DocumentAccess",
    "AccessContext",
    # Results
    "ErrorKind",
    "OperationResult",
    "ClientInfo",
]
