"""
Document access evaluator tests.

The evaluator is exercised as a pure function over transient models,
then through load_access_context against the database.

Usage:
    pytest tests/test_access.py -v
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from database.models import Document, RFP, NdaRecord, CompanyNda, RfpInterestRegistration, RFPAccess
from schemas.access import AccessContext, AccessReason
from schemas.enums import AffiliationKind, CompanyRole, PlatformRole
from schemas.identity import Affiliation, Identity
from services.access import (
    can_access_document, can_view_rfp, evaluate_documents, load_access_context
)


def make_rfp(status="active", visibility="public"):
    return RFP(
        id=uuid.uuid4(),
        title="Bridge Maintenance",
        status=status,
        visibility=visibility,
        closing_date=datetime.now(timezone.utc) + timedelta(days=10)
    )


def make_document(rfp, requires_nda=False, requires_approval=False):
    return Document(
        id=uuid.uuid4(),
        rfp_id=rfp.id,
        title="Drawings",
        file_path=f"{rfp.id}/drawings.pdf",
        requires_nda=requires_nda,
        requires_approval=requires_approval
    )


def bidder(company_id=None):
    affiliations = []
    if company_id:
        affiliations.append(Affiliation(
            company_id=company_id, kind=AffiliationKind.PRIMARY, role=CompanyRole.MEMBER.value
        ))
    return Identity(
        user_id=uuid.uuid4(),
        email="bidder@acme.com",
        platform_role=PlatformRole.BIDDER,
        affiliations=affiliations
    )


ADMIN = Identity(user_id=uuid.uuid4(), email="admin@portal.io", platform_role=PlatformRole.ADMIN)


# =========================================================================
# RFP VISIBILITY
# =========================================================================
class TestRfpVisibility:

    def test_public_active_rfp_visible_to_anonymous(self):
        decision = can_view_rfp(Identity.anonymous(), make_rfp(), AccessContext())
        assert decision.allowed
        assert decision.reason == AccessReason.NO_RESTRICTION

    def test_draft_hidden_from_non_admins(self):
        rfp = make_rfp(status="draft")
        assert not can_view_rfp(Identity.anonymous(), rfp, AccessContext()).allowed
        assert not can_view_rfp(bidder(), rfp, AccessContext()).allowed

    def test_admin_sees_drafts(self):
        decision = can_view_rfp(ADMIN, make_rfp(status="draft"), AccessContext())
        assert decision.allowed
        assert decision.reason == AccessReason.ADMIN_OVERRIDE

    def test_confidential_requires_access_grant(self):
        rfp = make_rfp(visibility="confidential")
        assert not can_view_rfp(bidder(), rfp, AccessContext()).allowed

        context = AccessContext(access_grant_rfp_ids={rfp.id})
        assert can_view_rfp(bidder(), rfp, context).allowed


# =========================================================================
# DOCUMENT GATING
# =========================================================================
class TestDocumentGating:

    def test_unrestricted_document_visible_to_anonymous(self):
        rfp = make_rfp()
        document = make_document(rfp)
        decision = can_access_document(Identity.anonymous(), document, rfp, AccessContext())
        assert decision.allowed
        assert decision.reason == AccessReason.NO_RESTRICTION

    def test_anonymous_gets_nda_reason_for_nda_document(self):
        rfp = make_rfp()
        decision = can_access_document(
            Identity.anonymous(), make_document(rfp, requires_nda=True), rfp, AccessContext()
        )
        assert not decision.allowed
        assert decision.reason == AccessReason.NDA_REQUIRED

    def test_anonymous_gets_approval_reason_for_approval_document(self):
        rfp = make_rfp()
        decision = can_access_document(
            Identity.anonymous(), make_document(rfp, requires_approval=True), rfp, AccessContext()
        )
        assert decision.reason == AccessReason.APPROVAL_REQUIRED

    def test_nda_document_needs_nda(self):
        rfp = make_rfp()
        document = make_document(rfp, requires_nda=True)

        denied = can_access_document(bidder(), document, rfp, AccessContext())
        assert denied.reason == AccessReason.NDA_REQUIRED

        allowed = can_access_document(
            bidder(), document, rfp, AccessContext(nda_rfp_ids={rfp.id})
        )
        assert allowed.allowed
        assert allowed.reason == AccessReason.CONDITIONS_MET

    def test_both_flags_require_both_conditions(self):
        rfp = make_rfp()
        document = make_document(rfp, requires_nda=True, requires_approval=True)

        nda_only = AccessContext(nda_rfp_ids={rfp.id})
        decision = can_access_document(bidder(), document, rfp, nda_only)
        assert not decision.allowed
        assert decision.reason == AccessReason.APPROVAL_REQUIRED

        approval_only = AccessContext(registration_rfp_ids={rfp.id})
        decision = can_access_document(bidder(), document, rfp, approval_only)
        assert decision.reason == AccessReason.NDA_REQUIRED

        both = AccessContext(nda_rfp_ids={rfp.id}, registration_rfp_ids={rfp.id})
        assert can_access_document(bidder(), document, rfp, both).allowed

    def test_individual_grant_satisfies_approval(self):
        rfp = make_rfp()
        document = make_document(rfp, requires_approval=True)
        context = AccessContext(access_grant_rfp_ids={rfp.id})
        assert can_access_document(bidder(), document, rfp, context).allowed

    def test_document_of_hidden_rfp_is_denied(self):
        rfp = make_rfp(status="draft")
        decision = can_access_document(bidder(), make_document(rfp), rfp, AccessContext())
        assert decision.reason == AccessReason.RFP_NOT_VISIBLE

    def test_admin_overrides_everything(self):
        rfp = make_rfp(status="draft", visibility="confidential")
        document = make_document(rfp, requires_nda=True, requires_approval=True)
        decision = can_access_document(ADMIN, document, rfp, AccessContext())
        assert decision.allowed
        assert decision.reason == AccessReason.ADMIN_OVERRIDE

    def test_batch_evaluation_keeps_order(self):
        rfp_a, rfp_b = make_rfp(), make_rfp()
        documents = [
            make_document(rfp_a),
            make_document(rfp_b, requires_nda=True),
            make_document(rfp_a, requires_nda=True),
        ]
        context = AccessContext(nda_rfp_ids={rfp_a.id})

        decisions = evaluate_documents(
            bidder(), documents, {rfp_a.id: rfp_a, rfp_b.id: rfp_b}, context
        )

        assert [d.document_id for d in decisions] == [d.id for d in documents]
        assert [d.allowed for d in decisions] == [True, False, True]


# =========================================================================
# ACCESS CONTEXT LOADING
# =========================================================================
class TestAccessContext:

    async def test_anonymous_context_is_empty(self, db):
        context = await load_access_context(db, Identity.anonymous())
        assert context == AccessContext()

    async def test_loads_individual_state(self, factory, db):
        user = await factory.user()
        rfp = await factory.rfp()
        other = await factory.rfp(title="Other")
        db.add_all([
            NdaRecord(rfp_id=rfp.id, user_id=user.id, status="signed", full_name="T U",
                      signed_at=datetime.now(timezone.utc)),
            RFPAccess(rfp_id=other.id, user_id=user.id, status="approved"),
        ])
        await db.commit()

        context = await load_access_context(db, await factory.identity(user))

        assert context.nda_rfp_ids == {rfp.id}
        assert context.access_grant_rfp_ids == {other.id}

    async def test_rejected_nda_does_not_count(self, factory, db):
        user = await factory.user()
        rfp = await factory.rfp()
        db.add(NdaRecord(rfp_id=rfp.id, user_id=user.id, status="rejected", full_name="T U",
                         signed_at=datetime.now(timezone.utc)))
        await db.commit()

        context = await load_access_context(db, await factory.identity(user))
        assert rfp.id not in context.nda_rfp_ids

    async def test_company_nda_and_registration_cover_primary_members(self, factory, db):
        company = await factory.company()
        admin = await factory.user(company=company, company_role=CompanyRole.ADMIN)
        member = await factory.user(company=company)
        rfp = await factory.rfp()
        db.add_all([
            CompanyNda(company_id=company.id, rfp_id=rfp.id, signed_by=admin.id,
                       status="approved", full_name="Admin", signed_at=datetime.now(timezone.utc)),
            RfpInterestRegistration(rfp_id=rfp.id, company_id=company.id,
                                    user_id=admin.id, status="approved"),
        ])
        await db.commit()

        context = await load_access_context(db, await factory.identity(member))

        assert context.nda_rfp_ids == {rfp.id}
        assert context.registration_rfp_ids == {rfp.id}

    async def test_pending_members_are_not_covered(self, factory, db):
        company = await factory.company()
        admin = await factory.user(company=company, company_role=CompanyRole.ADMIN)
        pending = await factory.user(company=company, company_role=CompanyRole.PENDING)
        rfp = await factory.rfp()
        db.add(CompanyNda(company_id=company.id, rfp_id=rfp.id, signed_by=admin.id,
                          status="signed", full_name="Admin", signed_at=datetime.now(timezone.utc)))
        await db.commit()

        context = await load_access_context(db, await factory.identity(pending))
        assert context.nda_rfp_ids == set()

    async def test_scoped_to_requested_rfps(self, factory, db):
        user = await factory.user()
        rfp = await factory.rfp()
        other = await factory.rfp(title="Other")
        db.add_all([
            NdaRecord(rfp_id=rfp.id, user_id=user.id, status="signed", full_name="T U",
                      signed_at=datetime.now(timezone.utc)),
            NdaRecord(rfp_id=other.id, user_id=user.id, status="signed", full_name="T U",
                      signed_at=datetime.now(timezone.utc)),
        ])
        await db.commit()

        context = await load_access_context(db, await factory.identity(user), [rfp.id])
        assert context.nda_rfp_ids == {rfp.id}
