"""
Company lifecycle tests: creation with domain claim, verification,
auto-join settings and invitations.
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from database.models import CompanyInvitation, RFPAccess, RfpInterestRegistration
from schemas.enums import (
    ApprovalStatus, CompanyRole, InvitationStatus, PlatformRole, VerificationStatus
)
from schemas.results import ErrorKind
from services.companies import (
    admin_create_company, create_company, reject_verification, request_verification,
    update_autojoin_settings, verify_company
)
from services.invitations import (
    accept_company_invitation, accept_rfp_invitation, decline_company_invitation,
    invite_to_company, send_rfp_invitation
)


# =========================================================================
# CREATION
# =========================================================================
class TestCreateCompany:

    async def test_creator_becomes_admin_and_claims_domain(self, factory, db):
        user = await factory.user(email="founder@acme.com")

        result = await create_company(db, await factory.identity(user), "  Acme Corp ")

        assert result.success
        company = result.data
        assert company.name == "Acme Corp"
        assert company.verified_domain == "acme.com"
        assert company.auto_join_enabled
        assert (await factory.identity(user)).is_company_admin(company.id)

    async def test_consumer_domain_is_not_claimed(self, factory, db):
        user = await factory.user(email="founder@gmail.com")

        result = await create_company(db, await factory.identity(user), "Solo Consulting")

        assert result.data.verified_domain is None
        assert not result.data.auto_join_enabled

    async def test_domain_already_verified_elsewhere(self, factory, db):
        await factory.company(name="Acme Holdings", verified_domain="acme.com")
        user = await factory.user(email="founder@acme.com")

        result = await create_company(db, await factory.identity(user), "Acme Labs")

        assert result.data.verified_domain is None
        assert not result.data.auto_join_enabled

    async def test_existing_member_cannot_create(self, factory, db):
        company = await factory.company()
        user = await factory.user(company=company)

        result = await create_company(db, await factory.identity(user), "Second Co")
        assert result.error == ErrorKind.INVARIANT_VIOLATION

    async def test_blank_name_rejected(self, factory, db):
        user = await factory.user()
        result = await create_company(db, await factory.identity(user), "   ")
        assert result.error == ErrorKind.VALIDATION

    async def test_admin_create_requires_platform_admin(self, factory, db):
        bidder = await factory.identity(await factory.user())
        admin = await factory.identity(await factory.user(role=PlatformRole.ADMIN))

        denied = await admin_create_company(db, bidder, "Acme")
        assert denied.error == ErrorKind.FORBIDDEN

        created = await admin_create_company(db, admin, "Acme", verified_domain="ACME.com")
        assert created.data.verified_domain == "acme.com"
        assert admin.primary_company_id is None


# =========================================================================
# VERIFICATION
# =========================================================================
class TestVerification:

    async def test_request_then_verify(self, factory, db, notifications):
        company = await factory.company()
        company_admin = await factory.user(company=company, company_role=CompanyRole.ADMIN)
        platform_admin = await factory.user(role=PlatformRole.ADMIN)

        requested = await request_verification(
            db, await factory.identity(company_admin), company.id, "Registered in 2010"
        )
        assert requested.data.verification_status == VerificationStatus.PENDING.value
        assert [e.user_id for e in notifications.of_type("verification_requested")] == [platform_admin.id]

        again = await request_verification(db, await factory.identity(company_admin), company.id)
        assert again.error == ErrorKind.INVALID_STATE

        verified = await verify_company(db, await factory.identity(platform_admin), company.id)
        assert verified.data.verification_status == VerificationStatus.VERIFIED.value
        assert verified.data.verified_by == platform_admin.id
        assert [e.user_id for e in notifications.of_type("company_verified")] == [company_admin.id]

    async def test_rejection_needs_reason(self, factory, db):
        company = await factory.company()
        platform_admin = await factory.identity(await factory.user(role=PlatformRole.ADMIN))

        missing = await reject_verification(db, platform_admin, company.id, " ")
        assert missing.error == ErrorKind.VALIDATION

        rejected = await reject_verification(db, platform_admin, company.id, "Documents unclear")
        assert rejected.data.verification_status == VerificationStatus.REJECTED.value
        assert rejected.data.verified_at is None

    async def test_members_cannot_request_verification(self, factory, db):
        company = await factory.company()
        member = await factory.user(company=company)

        result = await request_verification(db, await factory.identity(member), company.id)
        assert result.error == ErrorKind.FORBIDDEN


# =========================================================================
# AUTO-JOIN SETTINGS
# =========================================================================
class TestAutoJoinSettings:

    async def test_company_admin_toggles_and_blocks(self, factory, db):
        company = await factory.company(verified_domain="acme.com")
        admin = await factory.user(company=company, company_role=CompanyRole.ADMIN)

        result = await update_autojoin_settings(
            db, await factory.identity(admin), company.id, True,
            blocked_domains=[" Contractors.Acme.com", "contractors.acme.com", ""]
        )

        assert result.data.auto_join_enabled
        assert result.data.blocked_domains == ["contractors.acme.com"]

    async def test_only_platform_admin_changes_domain(self, factory, db):
        company = await factory.company(verified_domain="acme.com")
        admin = await factory.user(company=company, company_role=CompanyRole.ADMIN)
        platform_admin = await factory.identity(await factory.user(role=PlatformRole.ADMIN))

        denied = await update_autojoin_settings(
            db, await factory.identity(admin), company.id, False, verified_domain="acme.io"
        )
        assert denied.error == ErrorKind.FORBIDDEN

        consumer = await update_autojoin_settings(
            db, platform_admin, company.id, False, verified_domain="gmail.com"
        )
        assert consumer.error == ErrorKind.VALIDATION

        changed = await update_autojoin_settings(
            db, platform_admin, company.id, False, verified_domain="Acme.io"
        )
        assert changed.data.verified_domain == "acme.io"

    async def test_enabling_needs_verified_domain(self, factory, db):
        company = await factory.company()
        admin = await factory.user(company=company, company_role=CompanyRole.ADMIN)

        result = await update_autojoin_settings(db, await factory.identity(admin), company.id, True)
        assert result.error == ErrorKind.VALIDATION

    async def test_domain_contested_by_another_company(self, factory, db):
        await factory.company(name="Acme East", verified_domain="acme.com", auto_join_enabled=True)
        company = await factory.company(name="Acme West", verified_domain="acme.com")
        admin = await factory.user(company=company, company_role=CompanyRole.ADMIN)

        result = await update_autojoin_settings(db, await factory.identity(admin), company.id, True)
        assert result.error == ErrorKind.FORBIDDEN


# =========================================================================
# COMPANY INVITATIONS
# =========================================================================
class TestCompanyInvitations:

    async def test_invite_queues_email_and_accept_joins(self, factory, db, queue):
        company = await factory.company()
        admin = await factory.user(company=company, company_role=CompanyRole.ADMIN)
        invitee = await factory.user(email="new@partner.com")

        sent = await invite_to_company(db, await factory.identity(admin), company.id, "New@Partner.com")
        assert sent.success
        assert sent.data.email == "new@partner.com"

        function, args, _ = queue.jobs[-1]
        assert function == "send_email"
        assert args[0] == "new@partner.com"
        assert sent.data.token in args[2]

        accepted = await accept_company_invitation(db, await factory.identity(invitee), sent.data.token)
        assert accepted.data.status == InvitationStatus.ACCEPTED.value
        assert (await factory.identity(invitee)).primary_company_id == company.id

    async def test_reinvite_refreshes_token(self, factory, db):
        company = await factory.company()
        admin = await factory.identity(
            await factory.user(company=company, company_role=CompanyRole.ADMIN)
        )

        first = await invite_to_company(db, admin, company.id, "new@partner.com")
        first_token = first.data.token
        second = await invite_to_company(db, admin, company.id, "new@partner.com")

        assert second.data.token != first_token
        rows = await db.execute(select(CompanyInvitation).where(CompanyInvitation.company_id == company.id))
        assert len(rows.scalars().all()) == 1

    async def test_accept_by_member_elsewhere_makes_collaborator(self, factory, db):
        company = await factory.company()
        admin = await factory.identity(
            await factory.user(company=company, company_role=CompanyRole.ADMIN)
        )
        home = await factory.company(name="Home Co")
        invitee = await factory.user(email="dev@home.com", company=home)

        sent = await invite_to_company(db, admin, company.id, "dev@home.com")
        await accept_company_invitation(db, await factory.identity(invitee), sent.data.token)

        identity = await factory.identity(invitee)
        assert identity.primary_company_id == home.id
        assert identity.secondary_company_ids == {company.id}

    async def test_wrong_email_forbidden(self, factory, db):
        company = await factory.company()
        admin = await factory.identity(
            await factory.user(company=company, company_role=CompanyRole.ADMIN)
        )
        stranger = await factory.user(email="other@elsewhere.com")

        sent = await invite_to_company(db, admin, company.id, "new@partner.com")
        result = await accept_company_invitation(db, await factory.identity(stranger), sent.data.token)
        assert result.error == ErrorKind.FORBIDDEN

    async def test_expired_invitation(self, factory, db):
        company = await factory.company()
        admin = await factory.identity(
            await factory.user(company=company, company_role=CompanyRole.ADMIN)
        )
        invitee = await factory.user(email="late@partner.com")

        sent = await invite_to_company(db, admin, company.id, "late@partner.com")
        sent.data.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        await db.commit()

        result = await accept_company_invitation(db, await factory.identity(invitee), sent.data.token)
        assert result.error == ErrorKind.INVALID_STATE
        assert sent.data.status == InvitationStatus.EXPIRED.value

    async def test_decline_then_accept_is_invalid(self, factory, db):
        company = await factory.company()
        admin = await factory.identity(
            await factory.user(company=company, company_role=CompanyRole.ADMIN)
        )
        invitee = await factory.identity(await factory.user(email="no@partner.com"))

        sent = await invite_to_company(db, admin, company.id, "no@partner.com")
        await decline_company_invitation(db, invitee, sent.data.token)

        result = await accept_company_invitation(db, invitee, sent.data.token)
        assert result.error == ErrorKind.INVALID_STATE


# =========================================================================
# RFP INVITATIONS
# =========================================================================
class TestRfpInvitations:

    async def test_accept_grants_access_and_registration(self, factory, db, queue, notifications):
        company = await factory.company()
        invitee = await factory.user(email="bid@acme.com", company=company, company_role=CompanyRole.ADMIN)
        platform_admin = await factory.identity(await factory.user(role=PlatformRole.ADMIN))
        rfp = await factory.rfp()

        sent = await send_rfp_invitation(db, platform_admin, rfp.id, "bid@acme.com", "Please bid")
        assert sent.data.invitation_type == "user"
        assert queue.jobs[-1][0] == "send_email"
        assert [e.user_id for e in notifications.of_type("rfp_invitation")] == [invitee.id]

        accepted = await accept_rfp_invitation(db, await factory.identity(invitee), sent.data.token)
        assert accepted.data.status == InvitationStatus.ACCEPTED.value

        grant = await db.execute(select(RFPAccess).where(RFPAccess.rfp_id == rfp.id))
        assert grant.scalar_one().status == ApprovalStatus.APPROVED.value
        registration = await db.execute(
            select(RfpInterestRegistration).where(RfpInterestRegistration.rfp_id == rfp.id)
        )
        registration = registration.scalar_one()
        assert registration.company_id == company.id
        assert registration.status == ApprovalStatus.APPROVED.value

    async def test_only_admins_invite_to_rfps(self, factory, db):
        bidder = await factory.identity(await factory.user())
        rfp = await factory.rfp()

        result = await send_rfp_invitation(db, bidder, rfp.id, "x@acme.com")
        assert result.error == ErrorKind.FORBIDDEN

    async def test_unknown_recipient_is_email_invitation(self, factory, db):
        platform_admin = await factory.identity(await factory.user(role=PlatformRole.ADMIN))
        rfp = await factory.rfp()

        first = await send_rfp_invitation(db, platform_admin, rfp.id, "nobody@acme.com")
        second = await send_rfp_invitation(db, platform_admin, rfp.id, "nobody@acme.com")

        assert first.data.invitation_type == "email"
        assert second.data.id == first.data.id
