"""
HTTP tests through the ASGI app: authentication, error mapping,
document listing and download.

Usage:
    pytest tests/test_api.py -v
"""

import uuid
from datetime import datetime, timedelta, timezone

from config.settings import settings
from schemas.enums import CompanyRole, PlatformRole, RFPStatus


# =========================================================================
# AUTHENTICATION
# =========================================================================
class TestAuth:

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert "X-Correlation-ID" in response.headers

    async def test_signup_hook_requires_secret(self, client):
        body = {"type": "SIGNED_UP", "user": {"id": str(uuid.uuid4()), "email": "x@acme.com"}}

        response = await client.post("/api/v1/auth/hooks", json=body)
        assert response.status_code == 401

        response = await client.post(
            "/api/v1/auth/hooks", json=body, headers={"X-Auth-Hook-Secret": "wrong"}
        )
        assert response.status_code == 401

    async def test_non_ascii_hook_secret_is_401(self, client):
        body = {"type": "SIGNED_UP", "user": {"id": str(uuid.uuid4()), "email": "x@acme.com"}}

        response = await client.post(
            "/api/v1/auth/hooks", json=body,
            headers={"X-Auth-Hook-Secret": "sécret".encode("latin-1")}
        )
        assert response.status_code == 401

    async def test_signup_hook_auto_joins(self, client, factory):
        company = await factory.company(verified_domain="acme.com", auto_join_enabled=True)
        body = {"type": "SIGNED_UP", "user": {"id": str(uuid.uuid4()), "email": "x@acme.com"}}

        response = await client.post(
            "/api/v1/auth/hooks", json=body,
            headers={"X-Auth-Hook-Secret": settings.auth_hook_secret}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["auto_joined"] is True
        assert data["company_id"] == str(company.id)

    async def test_unsupported_hook_event(self, client):
        body = {"type": "SIGNED_IN", "user": {"id": str(uuid.uuid4()), "email": "x@acme.com"}}
        response = await client.post(
            "/api/v1/auth/hooks", json=body,
            headers={"X-Auth-Hook-Secret": settings.auth_hook_secret}
        )
        assert response.status_code == 400

    async def test_me(self, client, factory, auth):
        company = await factory.company()
        user = await factory.user(company=company, company_role=CompanyRole.ADMIN)

        response = await client.get("/api/v1/auth/me", headers=auth(user))

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == str(user.id)
        assert data["primary_company_id"] == str(company.id)
        assert data["primary_company_role"] == "admin"

    async def test_bad_token_is_401(self, client):
        response = await client.get(
            "/api/v1/auth/me", headers={"Authorization": "Bearer not-a-token"}
        )
        assert response.status_code == 401
        assert response.json()["error"]["code"]

    async def test_missing_token_is_401(self, client):
        response = await client.get("/api/v1/auth/me")
        assert response.status_code == 401


# =========================================================================
# RFPS
# =========================================================================
class TestRfpEndpoints:

    async def test_admin_creates_rfp(self, client, factory, auth):
        admin = await factory.user(role=PlatformRole.ADMIN)
        body = {"title": "Fleet Telematics", "closing_date": "2099-01-01T12:00:00Z", "status": "active"}

        response = await client.post("/api/v1/rfps", json=body, headers=auth(admin))

        assert response.status_code == 201
        data = response.json()
        assert data["effective_status"] == "active"
        assert data["open_for_submissions"] is True

    async def test_bidder_cannot_create_rfp(self, client, factory, auth):
        bidder = await factory.user()
        body = {"title": "Fleet Telematics", "closing_date": "2099-01-01T12:00:00Z"}

        response = await client.post("/api/v1/rfps", json=body, headers=auth(bidder))
        assert response.status_code == 403

    async def test_draft_is_not_found_for_anonymous(self, client, factory):
        draft = await factory.rfp(status=RFPStatus.DRAFT)

        response = await client.get(f"/api/v1/rfps/{draft.id}")
        assert response.status_code == 404

        listing = await client.get("/api/v1/rfps")
        assert str(draft.id) not in {r["id"] for r in listing.json()}

    async def test_company_nda_by_member_is_409(self, client, factory, auth):
        company = await factory.company()
        await factory.user(company=company, company_role=CompanyRole.ADMIN)
        member = await factory.user(company=company)
        rfp = await factory.rfp()

        response = await client.post(
            f"/api/v1/rfps/{rfp.id}/company-nda",
            json={"full_name": "Member Person"},
            headers=auth(member)
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVARIANT_VIOLATION"

    async def test_status_filter_uses_effective_status(self, client, factory):
        stale = await factory.rfp(closing_date=datetime.now(timezone.utc) - timedelta(days=1))
        live = await factory.rfp()

        closed = await client.get("/api/v1/rfps", params={"status": "closed"})
        closed_ids = {r["id"] for r in closed.json()}
        assert str(stale.id) in closed_ids
        assert str(live.id) not in closed_ids

        active = await client.get("/api/v1/rfps", params={"status": "active"})
        active_ids = {r["id"] for r in active.json()}
        assert str(live.id) in active_ids
        assert str(stale.id) not in active_ids

    async def test_null_for_required_field_is_400(self, client, factory, auth):
        admin = await factory.user(role=PlatformRole.ADMIN)
        rfp = await factory.rfp()

        response = await client.patch(
            f"/api/v1/rfps/{rfp.id}", json={"status": None}, headers=auth(admin)
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

        fetched = await client.get(f"/api/v1/rfps/{rfp.id}", headers=auth(admin))
        assert fetched.json()["status"] == "active"

    async def test_null_clears_optional_field(self, client, factory, auth):
        admin = await factory.user(role=PlatformRole.ADMIN)
        rfp = await factory.rfp()

        response = await client.patch(
            f"/api/v1/rfps/{rfp.id}", json={"description": None}, headers=auth(admin)
        )
        assert response.status_code == 200
        assert response.json()["description"] is None

    async def test_grant_and_invite_require_admin(self, client, factory, auth):
        bidder = await factory.user()
        rfp = await factory.rfp()

        grant = await client.put(
            f"/api/v1/rfps/{rfp.id}/access",
            json={"user_id": str(bidder.id), "status": "approved"},
            headers=auth(bidder)
        )
        assert grant.status_code == 403
        assert "Requires one of these roles" in grant.json()["error"]["message"]

        invite = await client.post(
            f"/api/v1/rfps/{rfp.id}/invitations",
            json={"email": "someone@example.com"},
            headers=auth(bidder)
        )
        assert invite.status_code == 403
        assert "Requires one of these roles" in invite.json()["error"]["message"]


# =========================================================================
# DOCUMENTS
# =========================================================================
class TestDocumentEndpoints:

    async def test_anonymous_listing_shows_reasons(self, client, factory):
        rfp = await factory.rfp()
        open_doc = await factory.document(rfp, title="Overview")
        gated = await factory.document(rfp, title="Drawings", requires_nda=True)

        response = await client.get(f"/api/v1/rfps/{rfp.id}/documents")

        assert response.status_code == 200
        by_id = {d["id"]: d for d in response.json()}
        assert by_id[str(open_doc.id)]["can_access"] is True
        assert by_id[str(gated.id)]["can_access"] is False
        assert by_id[str(gated.id)]["reason"] == "nda_required"

    async def test_download_allowed_and_denied(self, client, factory, storage):
        rfp = await factory.rfp()
        key = storage.save(rfp.id, "scope.txt", b"scope of work")
        open_doc = await factory.document(rfp, file_path=key)
        gated = await factory.document(rfp, requires_nda=True, file_path=key)

        response = await client.get(f"/api/v1/documents/{open_doc.id}/download")
        assert response.status_code == 200
        assert response.content == b"scope of work"

        denied = await client.get(f"/api/v1/documents/{gated.id}/download")
        assert denied.status_code == 403

    async def test_missing_file_is_404(self, client, factory):
        rfp = await factory.rfp()
        document = await factory.document(rfp)

        response = await client.get(f"/api/v1/documents/{document.id}/download")
        assert response.status_code == 404

    async def test_batch_access_reports_missing(self, client, factory, auth):
        user = await factory.user()
        rfp = await factory.rfp()
        document = await factory.document(rfp, requires_approval=True)
        unknown = uuid.uuid4()

        response = await client.post(
            "/api/v1/documents/access",
            json={"document_ids": [str(document.id), str(unknown)]},
            headers=auth(user)
        )

        data = response.json()
        assert [d["reason"] for d in data["decisions"]] == ["approval_required"]
        assert data["missing"] == [str(unknown)]
