"""
NDA state machine tests: signing, countersigning, rejection, re-signing
and the effect of each state on document access.
"""

from sqlalchemy import func, select

from database.models import CompanyNda, NdaAuditTrail, NdaRecord
from schemas.access import AccessReason
from schemas.enums import CompanyRole, NdaStatus, PlatformRole
from schemas.results import ClientInfo, ErrorKind
from services.access import can_access_document, load_access_context
from services.nda import (
    countersign_company_nda, countersign_nda, get_nda_status, reject_nda,
    sign_company_nda, sign_nda
)


async def document_decision(db, identity, document, rfp):
    context = await load_access_context(db, identity, [rfp.id])
    return can_access_document(identity, document, rfp, context)


# =========================================================================
# INDIVIDUAL NDA
# =========================================================================
class TestIndividualNda:

    async def test_nda_unlocks_document_and_countersign_keeps_access(self, factory, db, notifications):
        rfp = await factory.rfp()
        document = await factory.document(rfp, requires_nda=True)
        user = await factory.user()
        admin = await factory.user(role=PlatformRole.ADMIN)
        identity = await factory.identity(user)

        denied = await document_decision(db, identity, document, rfp)
        assert not denied.allowed
        assert denied.reason == AccessReason.NDA_REQUIRED

        signed = await sign_nda(
            db, identity, rfp.id, "Una User", title="CTO",
            client=ClientInfo(ip_address="10.0.0.1", user_agent="pytest")
        )
        assert signed.success
        assert signed.data.status == NdaStatus.SIGNED.value
        assert signed.data.ip_address == "10.0.0.1"
        assert (await document_decision(db, identity, document, rfp)).allowed

        approved = await countersign_nda(
            db, await factory.identity(admin), signed.data.id, "Alex Admin", "Procurement Lead"
        )
        assert approved.success
        assert approved.data.status == NdaStatus.APPROVED.value
        assert approved.data.countersigner_name == "Alex Admin"
        assert (await document_decision(db, identity, document, rfp)).allowed

        events = notifications.of_type("nda_approved")
        assert [e.user_id for e in events] == [user.id]
        assert events[0].reference_id == rfp.id

    async def test_signing_twice_keeps_one_row(self, factory, db):
        rfp = await factory.rfp()
        user = await factory.user()
        identity = await factory.identity(user)

        first = await sign_nda(db, identity, rfp.id, "Una User")
        second = await sign_nda(db, identity, rfp.id, "Una Q. User")

        assert first.data.id == second.data.id
        count = await db.scalar(select(func.count(NdaRecord.id)))
        assert count == 1

    async def test_rejection_revokes_access_and_resign_resets(self, factory, db, notifications):
        rfp = await factory.rfp()
        document = await factory.document(rfp, requires_nda=True)
        user = await factory.user()
        reviewer = await factory.user(role=PlatformRole.CLIENT_REVIEWER)
        identity = await factory.identity(user)

        signed = await sign_nda(db, identity, rfp.id, "Una User")
        rejected = await reject_nda(
            db, await factory.identity(reviewer), signed.data.id, "Signature illegible"
        )
        assert rejected.success
        assert rejected.data.rejection_reason == "Signature illegible"
        assert not (await document_decision(db, identity, document, rfp)).allowed
        assert len(notifications.of_type("nda_rejected")) == 1

        resigned = await sign_nda(db, identity, rfp.id, "Una User")
        assert resigned.data.status == NdaStatus.SIGNED.value
        assert resigned.data.rejection_reason is None
        assert resigned.data.rejected_at is None
        assert (await document_decision(db, identity, document, rfp)).allowed

    async def test_only_reviewers_countersign(self, factory, db):
        rfp = await factory.rfp()
        user = await factory.user()
        signed = await sign_nda(db, await factory.identity(user), rfp.id, "Una User")

        other = await factory.user()
        result = await countersign_nda(db, await factory.identity(other), signed.data.id, "Nope")

        assert not result.success
        assert result.error == ErrorKind.FORBIDDEN

    async def test_cannot_countersign_twice(self, factory, db):
        rfp = await factory.rfp()
        user = await factory.user()
        admin_identity = await factory.identity(await factory.user(role=PlatformRole.ADMIN))
        signed = await sign_nda(db, await factory.identity(user), rfp.id, "Una User")

        await countersign_nda(db, admin_identity, signed.data.id, "Alex Admin")
        again = await countersign_nda(db, admin_identity, signed.data.id, "Alex Admin")

        assert again.error == ErrorKind.INVALID_STATE

    async def test_reject_requires_reason(self, factory, db):
        rfp = await factory.rfp()
        user = await factory.user()
        admin_identity = await factory.identity(await factory.user(role=PlatformRole.ADMIN))
        signed = await sign_nda(db, await factory.identity(user), rfp.id, "Una User")

        result = await reject_nda(db, admin_identity, signed.data.id, "   ")
        assert result.error == ErrorKind.VALIDATION

    async def test_cannot_sign_for_hidden_rfp(self, factory, db):
        from schemas.enums import RFPStatus

        rfp = await factory.rfp(status=RFPStatus.DRAFT)
        user = await factory.user()

        result = await sign_nda(db, await factory.identity(user), rfp.id, "Una User")
        assert result.error == ErrorKind.NOT_FOUND

    async def test_transitions_are_audited(self, factory, db):
        rfp = await factory.rfp()
        user = await factory.user()
        admin_identity = await factory.identity(await factory.user(role=PlatformRole.ADMIN))
        signed = await sign_nda(db, await factory.identity(user), rfp.id, "Una User")
        await countersign_nda(db, admin_identity, signed.data.id, "Alex Admin")

        rows = await db.execute(
            select(NdaAuditTrail.action)
            .where(NdaAuditTrail.nda_id == signed.data.id)
            .order_by(NdaAuditTrail.created_at)
        )
        assert list(rows.scalars().all()) == ["signed", "countersigned"]


# =========================================================================
# COMPANY NDA
# =========================================================================
class TestCompanyNda:

    async def test_member_cannot_sign_for_company(self, factory, db):
        company = await factory.company()
        member = await factory.user(company=company)
        rfp = await factory.rfp()

        result = await sign_company_nda(
            db, await factory.identity(member), company.id, rfp.id, "Mia Member"
        )

        assert not result.success
        assert result.error == ErrorKind.INVARIANT_VIOLATION

    async def test_company_nda_covers_members_not_collaborators(self, factory, db, notifications):
        from services.membership import upsert_secondary
        from schemas.enums import JoinMethod

        company = await factory.company()
        admin = await factory.user(company=company, company_role=CompanyRole.ADMIN)
        member = await factory.user(company=company)
        collaborator = await factory.user()
        await upsert_secondary(db, collaborator.id, company.id, JoinMethod.ADMIN_ADDED, admin.id)
        await db.commit()

        rfp = await factory.rfp()
        document = await factory.document(rfp, requires_nda=True)

        signed = await sign_company_nda(
            db, await factory.identity(admin), company.id, rfp.id, "Ada Admin", "CEO"
        )
        assert signed.success

        assert (await document_decision(db, await factory.identity(member), document, rfp)).allowed
        assert not (await document_decision(
            db, await factory.identity(collaborator), document, rfp
        )).allowed

        reviewer = await factory.identity(await factory.user(role=PlatformRole.ADMIN))
        approved = await countersign_company_nda(db, reviewer, signed.data.id, "Alex Admin")
        assert approved.data.status == NdaStatus.APPROVED.value
        recipients = {e.user_id for e in notifications.of_type("nda_approved")}
        assert recipients == {admin.id, member.id}

    async def test_status_reports_both_records(self, factory, db):
        company = await factory.company()
        admin = await factory.user(company=company, company_role=CompanyRole.ADMIN)
        rfp = await factory.rfp()
        identity = await factory.identity(admin)

        await sign_nda(db, identity, rfp.id, "Ada Admin")
        await sign_company_nda(db, identity, company.id, rfp.id, "Ada Admin")

        status = await get_nda_status(db, identity, rfp.id)
        assert isinstance(status["individual"], NdaRecord)
        assert isinstance(status["company"], CompanyNda)
