"""
Access Decision Schemas

Inputs and outputs of the document access evaluator.
"""

import uuid
from enum import Enum

from pydantic import BaseModel, Field


class AccessReason(str, Enum):
    ADMIN_OVERRIDE = "admin_override"
    RFP_NOT_VISIBLE = "rfp_not_visible"
    NO_RESTRICTION = "no_restriction"
    NDA_REQUIRED = "nda_required"
    APPROVAL_REQUIRED = "approval_required"
    CONDITIONS_MET = "conditions_met"


class AccessDecision(BaseModel):
    """An allow/deny answer. Denial is a value, not an error."""
    allowed: bool
    reason: AccessReason


class DocumentAccess(AccessDecision):
    """Decision for one document in a batch."""
    document_id: uuid.UUID


class AccessContext(BaseModel):
    """
    Requester state relevant to access decisions, keyed by RFP id.

    Loaded once per request for any number of RFPs so that evaluating a
    document list needs no per-document queries.
    """
    nda_rfp_ids: set[uuid.UUID] = Field(
        default_factory=set,
        description="RFPs with a signed/approved NDA (individual or primary company)"
    )
    registration_rfp_ids: set[uuid.UUID] = Field(
        default_factory=set,
        description="RFPs with an approved interest registration for the primary company"
    )
    access_grant_rfp_ids: set[uuid.UUID] = Field(
        default_factory=set,
        description="RFPs with an approved individual rfp_access grant"
    )
