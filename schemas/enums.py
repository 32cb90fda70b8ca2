"""
Domain Enumerations

String enums shared by the models, services and API schemas. Values are
the literal strings stored in the database.
"""

from enum import Enum


class PlatformRole(str, Enum):
    """Platform-wide role of a user."""
    ADMIN = "admin"
    CLIENT_REVIEWER = "client_reviewer"
    BIDDER = "bidder"


class CompanyRole(str, Enum):
    """Role of a user inside their primary company."""
    ADMIN = "admin"
    MEMBER = "member"
    PENDING = "pending"


class AffiliationKind(str, Enum):
    """How a user relates to a company."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    PENDING = "pending"


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class JoinMethod(str, Enum):
    """How a membership came to exist."""
    AUTO_DOMAIN = "auto_domain"
    INVITATION = "invitation"
    MANUAL_REQUEST = "manual_request"
    ADMIN_ADDED = "admin_added"
    ADMIN_ACTION = "admin_action"


class VerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class RFPStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"


class Visibility(str, Enum):
    PUBLIC = "public"
    CONFIDENTIAL = "confidential"


class NdaStatus(str, Enum):
    SIGNED = "signed"
    APPROVED = "approved"
    REJECTED = "rejected"


class NdaKind(str, Enum):
    INDIVIDUAL = "individual"
    COMPANY = "company"


class ApprovalStatus(str, Enum):
    """Lifecycle shared by registrations, join requests and access grants."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class QuestionStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    PUBLISHED = "published"


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class SubmissionMethod(str, Enum):
    UPLOAD = "upload"
    MANUAL = "manual"
