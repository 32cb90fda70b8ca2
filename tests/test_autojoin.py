"""
Auto-join engine tests.

Usage:
    pytest tests/test_autojoin.py -v
"""

import uuid

from sqlalchemy import select

from database.models import CompanyJoinAudit, User
from schemas.enums import CompanyRole, JoinMethod
from schemas.results import ErrorKind
from services.autojoin import (
    auto_join, email_domain, find_autojoin_companies, is_corporate_domain
)
from services.signup import handle_signup


class TestDomainHelpers:

    def test_email_domain_is_lowercased(self):
        assert email_domain("Jane@Acme.COM") == "acme.com"

    def test_email_domain_missing(self):
        assert email_domain("not-an-email") is None
        assert email_domain("trailing@") is None

    def test_consumer_domains_are_not_corporate(self):
        assert not is_corporate_domain("gmail.com")
        assert not is_corporate_domain(None)
        assert is_corporate_domain("acme.com")


# =========================================================================
# SIGNUP AUTO-JOIN
# =========================================================================
class TestSignupAutoJoin:

    async def test_single_match_joins_as_member(self, factory, db, notifications):
        company = await factory.company(verified_domain="acme.com", auto_join_enabled=True)
        admin = await factory.user(company=company, company_role=CompanyRole.ADMIN)

        user_id = uuid.uuid4()
        check = await handle_signup(db, user_id, "new.hire@acme.com", "New", "Hire")

        assert check.auto_joined
        assert check.company_id == company.id

        identity = await factory.identity(await db.get(User, user_id))
        assert identity.primary_company_id == company.id
        assert identity.primary_company_role == CompanyRole.MEMBER.value

        audit = await db.execute(
            select(CompanyJoinAudit).where(CompanyJoinAudit.user_id == user_id)
        )
        rows = audit.scalars().all()
        assert [(r.action, r.join_method) for r in rows] == [
            ("auto_joined", JoinMethod.AUTO_DOMAIN.value)
        ]

        events = notifications.of_type("auto_join_notification")
        assert [e.user_id for e in events] == [admin.id]
        assert "new.hire@acme.com" in events[0].message

    async def test_consumer_domain_never_joins(self, factory, db):
        await factory.company(verified_domain="gmail.com", auto_join_enabled=True)

        check = await handle_signup(db, uuid.uuid4(), "someone@gmail.com")

        assert not check.auto_joined
        assert check.lookup.reason == "consumer_domain"
        assert check.lookup.matches == []

    async def test_blocked_domain_never_joins(self, factory, db):
        await factory.company(
            verified_domain="acme.com", auto_join_enabled=True, blocked_domains=["ACME.com"]
        )

        check = await handle_signup(db, uuid.uuid4(), "x@acme.com")
        assert not check.auto_joined

    async def test_disabled_company_is_not_matched(self, factory, db):
        await factory.company(verified_domain="acme.com", auto_join_enabled=False)

        lookup = await find_autojoin_companies(db, "x@acme.com")
        assert lookup.is_corporate
        assert lookup.matches == []

    async def test_multiple_matches_wait_for_choice(self, factory, db):
        first = await factory.company(name="Acme East", verified_domain="acme.com", auto_join_enabled=True)
        second = await factory.company(name="Acme West", verified_domain="acme.com", auto_join_enabled=True)

        user_id = uuid.uuid4()
        check = await handle_signup(db, user_id, "x@acme.com")

        assert not check.auto_joined
        assert [m.id for m in check.lookup.matches] == [first.id, second.id]

        chosen = await auto_join(db, user_id, second.id)
        assert chosen.success
        joined = await factory.identity(await db.get(User, user_id))
        assert joined.primary_company_id == second.id

    async def test_repeat_signup_is_idempotent(self, factory, db):
        company = await factory.company(verified_domain="acme.com", auto_join_enabled=True)
        user_id = uuid.uuid4()

        await handle_signup(db, user_id, "x@acme.com")
        again = await auto_join(db, user_id, company.id)

        assert again.success
        assert again.duplicate
        audit = await db.execute(
            select(CompanyJoinAudit).where(CompanyJoinAudit.user_id == user_id)
        )
        assert len(audit.scalars().all()) == 1


# =========================================================================
# EXPLICIT AUTO-JOIN
# =========================================================================
class TestAutoJoin:

    async def test_domain_mismatch_forbidden(self, factory, db):
        company = await factory.company(verified_domain="acme.com", auto_join_enabled=True)
        user = await factory.user(email="x@other.com")

        result = await auto_join(db, user.id, company.id)
        assert result.error == ErrorKind.FORBIDDEN

    async def test_member_elsewhere_cannot_auto_join(self, factory, db):
        company = await factory.company(verified_domain="acme.com", auto_join_enabled=True)
        other = await factory.company(name="Other Co")
        user = await factory.user(email="x@acme.com", company=other)

        result = await auto_join(db, user.id, company.id)
        assert result.error == ErrorKind.INVARIANT_VIOLATION
