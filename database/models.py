"""
Database Models

SQLAlchemy models for the RFP Portal: identities and companies, RFPs and
their documents, and the NDA / registration / membership state machines
that drive access decisions.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import (
    JSON, String, Text, Integer, BigInteger, Boolean, DateTime, Uuid,
    ForeignKey, Index, UniqueConstraint, text
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def _pk() -> Mapped[uuid.UUID]:
    return mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now()
    )


# ============================================================================
# IDENTITY & COMPANIES
# ============================================================================

class User(Base):
    """
    Platform user (profile).

    Authentication lives with the identity provider; this row carries the
    platform role and the primary company affiliation.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = _pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    role: Mapped[str] = mapped_column(String(30), default="bidder", nullable=False)
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="SET NULL")
    )
    # admin, member, pending
    company_role: Mapped[Optional[str]] = mapped_column(String(20))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_users_company", "company_id"),
    )

    @property
    def full_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or self.email


class Company(Base):
    """Bidding company."""
    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = _pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    website: Mapped[Optional[str]] = mapped_column(String(255))
    industry: Mapped[Optional[str]] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(Text)
    # unverified, pending, verified, rejected
    verification_status: Mapped[str] = mapped_column(String(20), default="unverified")
    verification_requested_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    verified_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id", use_alter=True))
    verification_notes: Mapped[Optional[str]] = mapped_column(Text)
    email_domain: Mapped[Optional[str]] = mapped_column(String(255))
    verified_domain: Mapped[Optional[str]] = mapped_column(String(255))
    auto_join_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    blocked_domains: Mapped[list] = mapped_column(JSONType, default=list)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id", use_alter=True))
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_companies_verified_domain", "verified_domain"),
    )


class CompanyMembership(Base):
    """
    Secondary (collaborator) membership.

    Independent of the primary affiliation stored on the user row.
    """
    __tablename__ = "company_memberships"

    id: Mapped[uuid.UUID] = _pk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), default="collaborator")
    status: Mapped[str] = mapped_column(String(20), default="active")
    joined_via: Mapped[str] = mapped_column(String(30), default="manual_request")
    invited_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    joined_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("user_id", "company_id", name="uq_membership_user_company"),
    )


class CompanyJoinRequest(Base):
    """A user's request to join a company as a primary member."""
    __tablename__ = "company_join_requests"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), default="pending")
    message: Mapped[Optional[str]] = mapped_column(Text)
    response_message: Mapped[Optional[str]] = mapped_column(Text)
    responded_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow
    )

    __table_args__ = (
        Index(
            "uq_join_request_pending",
            "company_id",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )


class CompanyInvitation(Base):
    """Emailed invitation to join a company."""
    __tablename__ = "company_invitations"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    inviter_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="member")
    status: Mapped[str] = mapped_column(String(20), default="pending")
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("company_id", "email", name="uq_company_invitation_email"),
    )


class CompanyJoinAudit(Base):
    """Audit trail of affiliation changes."""
    __tablename__ = "company_join_audit"

    id: Mapped[uuid.UUID] = _pk()
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL")
    )
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="SET NULL")
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    join_method: Mapped[Optional[str]] = mapped_column(String(30))
    from_role: Mapped[Optional[str]] = mapped_column(String(20))
    to_role: Mapped[Optional[str]] = mapped_column(String(20))
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    details: Mapped[dict] = mapped_column("metadata", JSONType, default=dict)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_join_audit_company", "company_id"),
        Index("idx_join_audit_user", "user_id"),
    )


# ============================================================================
# RFP MODELS
# ============================================================================

class RFP(Base):
    """Request for proposal published by the administering organization."""
    __tablename__ = "rfps"

    id: Mapped[uuid.UUID] = _pk()
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    client_name: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    # public, confidential
    visibility: Mapped[str] = mapped_column(String(20), default="public")
    # draft, active, closed (persisted value is a cache, see services.rfp_status)
    status: Mapped[str] = mapped_column(String(20), default="draft")
    closing_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    categories: Mapped[list] = mapped_column(JSONType, default=list)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow
    )

    documents: Mapped[List["Document"]] = relationship(
        back_populates="rfp",
        passive_deletes=True
    )

    __table_args__ = (
        Index("idx_rfps_status", "status"),
        Index("idx_rfps_closing_date", "closing_date"),
    )


class Document(Base):
    """File attached to an RFP, optionally gated by NDA and/or approval."""
    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = _pk()
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    content_type: Mapped[Optional[str]] = mapped_column(String(100))
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger)
    requires_nda: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    uploaded_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    created_at: Mapped[datetime] = _created_at()

    rfp: Mapped["RFP"] = relationship(back_populates="documents")

    __table_args__ = (
        Index("idx_documents_rfp", "rfp_id"),
    )


class RFPAccess(Base):
    """Individual access grant for one user on one RFP."""
    __tablename__ = "rfp_access"

    id: Mapped[uuid.UUID] = _pk()
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), default="pending")
    granted_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("rfp_id", "user_id", name="uq_rfp_access_user"),
    )


class RFPInvitation(Base):
    """Invitation for a recipient to participate in an RFP."""
    __tablename__ = "rfp_invitations"

    id: Mapped[uuid.UUID] = _pk()
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    invited_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    recipient_company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("companies.id")
    )
    # user, company, email
    invitation_type: Mapped[str] = mapped_column(String(20), default="email")
    status: Mapped[str] = mapped_column(String(20), default="pending")
    message: Mapped[Optional[str]] = mapped_column(Text)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_rfp_invitations_rfp", "rfp_id"),
        Index("idx_rfp_invitations_email", "recipient_email"),
    )


# ============================================================================
# NDA MODELS
# ============================================================================

class NdaRecord(Base):
    """Individual NDA signature for one user on one RFP."""
    __tablename__ = "rfp_nda_access"

    id: Mapped[uuid.UUID] = _pk()
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), default="signed")
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(255))
    company: Mapped[Optional[str]] = mapped_column(String(255))
    signature_data: Mapped[Optional[dict]] = mapped_column(JSONType)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64))
    user_agent: Mapped[Optional[str]] = mapped_column(String(500))
    signed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    countersigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    countersigned_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    countersigner_name: Mapped[Optional[str]] = mapped_column(String(255))
    countersigner_title: Mapped[Optional[str]] = mapped_column(String(255))
    countersignature_data: Mapped[Optional[dict]] = mapped_column(JSONType)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejected_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))

    __table_args__ = (
        UniqueConstraint("rfp_id", "user_id", name="uq_nda_rfp_user"),
    )


class CompanyNda(Base):
    """NDA signed by a company's primary admin on behalf of the company."""
    __tablename__ = "company_ndas"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False
    )
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    signed_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="signed")
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(255))
    signature_data: Mapped[Optional[dict]] = mapped_column(JSONType)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64))
    user_agent: Mapped[Optional[str]] = mapped_column(String(500))
    signed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    countersigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    countersigned_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    countersigner_name: Mapped[Optional[str]] = mapped_column(String(255))
    countersigner_title: Mapped[Optional[str]] = mapped_column(String(255))
    countersignature_data: Mapped[Optional[dict]] = mapped_column(JSONType)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejected_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))

    __table_args__ = (
        UniqueConstraint("company_id", "rfp_id", name="uq_company_nda_rfp"),
    )


class NdaAuditTrail(Base):
    """Append-only log of NDA lifecycle events."""
    __tablename__ = "nda_audit_trail"

    id: Mapped[uuid.UUID] = _pk()
    nda_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    # individual, company
    nda_kind: Mapped[str] = mapped_column(String(20), default="individual")
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    details: Mapped[dict] = mapped_column("metadata", JSONType, default=dict)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_nda_audit_nda", "nda_id"),
    )


# ============================================================================
# REGISTRATION, Q&A, SUBMISSIONS
# ============================================================================

class RfpInterestRegistration(Base):
    """A company's formal registration of interest in an RFP."""
    __tablename__ = "rfp_interest_registrations"

    id: Mapped[uuid.UUID] = _pk()
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejected_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("rfp_id", "company_id", name="uq_registration_rfp_company"),
    )


class Question(Base):
    """Bidder question on an RFP, answered and published by an admin."""
    __tablename__ = "questions"

    id: Mapped[uuid.UUID] = _pk()
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    topic: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(20), default="pending")
    answer: Mapped[Optional[str]] = mapped_column(Text)
    answered_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    answered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_questions_rfp", "rfp_id"),
    )


class ProposalSubmission(Base):
    """Record of a proposal submitted against an RFP."""
    __tablename__ = "proposal_submissions"

    id: Mapped[uuid.UUID] = _pk()
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("companies.id"))
    submission_method: Mapped[str] = mapped_column(String(20), default="upload")
    status: Mapped[str] = mapped_column(String(20), default="submitted")
    file_count: Mapped[int] = mapped_column(Integer, default=0)
    total_file_size: Mapped[int] = mapped_column(BigInteger, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_submissions_rfp", "rfp_id"),
        Index(
            "uq_submissions_rfp_company",
            "rfp_id",
            "company_id",
            unique=True,
            postgresql_where=text("company_id IS NOT NULL"),
            sqlite_where=text("company_id IS NOT NULL"),
        ),
        Index(
            "uq_submissions_rfp_user",
            "rfp_id",
            "user_id",
            unique=True,
            postgresql_where=text("company_id IS NULL"),
            sqlite_where=text("company_id IS NULL"),
        ),
    )


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class Notification(Base):
    """User-facing notification (the notification store)."""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = _pk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_notifications_user", "user_id"),
    )
