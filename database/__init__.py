"""
Database Package

SQLAlchemy models and connection management.
"""

from database.connection import (
    get_db,
    get_db_context,
    init_db,
    close_db,
    get_engine,
    get_session_factory,
    configure_session_factory
)

from database.models import (
    Base,
    User,
    Company,
    CompanyMembership,
    CompanyJoinRequest,
    CompanyInvitation,
    CompanyJoinAudit,
    RFP,
    Document,
    RFPAccess,
    RFPInvitation,
    NdaRecord,
    CompanyNda,
    NdaAuditTrail,
    RfpInterestRegistration,
    Question,
    ProposalSubmission,
    Notification
)

__all__ = [
    # Connection
    "get_db",
    "get_db_context",
    "init_db",
    "close_db",
    "get_engine",
    "get_session_factory",
    "configure_session_factory",
    # Models
    "Base",
    "User",
    "Company",
    "CompanyMembership",
    "CompanyJoinRequest",
    "CompanyInvitation",
    "CompanyJoinAudit",
    "RFP",
    "Document",
    "RFPAccess",
    "RFPInvitation",
    "NdaRecord",
    "CompanyNda",
    "NdaAuditTrail",
    "RfpInterestRegistration",
    "Question",
    "ProposalSubmission",
    "Notification"
]
