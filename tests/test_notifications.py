"""
Notification dispatch, worker jobs, email relay client, and the
question and submission flows that raise notifications.
"""

import json
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from arq.worker import Retry
from sqlalchemy import false
from sqlalchemy.exc import IntegrityError

from config.settings import settings
from database.models import RFP, ProposalSubmission
from schemas.enums import PlatformRole, QuestionStatus, RFPStatus, SubmissionStatus
from schemas.results import ErrorKind
from services.email import EmailClient, EmailDeliveryError
from services.notifications import (
    NotificationDispatcher, configure_dispatcher, dispatch, fan_out,
    list_notifications, mark_read
)
from services.questions import answer_question, ask_question, list_questions
from services import submissions
from services.submissions import list_submissions, submit_proposal, update_submission_status
from workers.jobs import deliver_notifications, reconcile_rfp_statuses, send_email


# =========================================================================
# DISPATCH
# =========================================================================
class TestDispatch:

    def test_fan_out_deduplicates_recipients(self):
        user_id = uuid.uuid4()
        events = fan_out([user_id, user_id], "Title", "Body", "test")
        assert len(events) == 1

    async def test_store_failure_queues_retry(self, notifications, queue):
        notifications.fail = True
        user_id = uuid.uuid4()

        await dispatch(fan_out([user_id], "Title", "Body", "test"))

        function, args, _ = queue.jobs[-1]
        assert function == "deliver_notifications"
        assert args[0][0]["user_id"] == str(user_id)

    async def test_database_store_and_inbox(self, factory, db):
        user = await factory.user()
        configure_dispatcher(NotificationDispatcher())

        await dispatch(fan_out([user.id], "First", "One", "test"))
        await dispatch(fan_out([user.id], "Second", "Two", "test"))

        inbox = await list_notifications(db, user.id)
        assert {n.title for n in inbox} == {"First", "Second"}

        updated = await mark_read(db, user.id, [inbox[0].id])
        assert updated == 1
        unread = await list_notifications(db, user.id, unread_only=True)
        assert len(unread) == 1

        assert await mark_read(db, user.id) == 1
        assert await list_notifications(db, user.id, unread_only=True) == []


# =========================================================================
# WORKER JOBS
# =========================================================================
class TestWorkerJobs:

    async def test_redelivery_saves_events(self, notifications):
        event = fan_out([uuid.uuid4()], "Title", "Body", "test")[0]

        await deliver_notifications({"job_try": 2}, [event.model_dump(mode="json")])

        assert notifications.events == [event]

    async def test_redelivery_retries_then_gives_up(self, notifications):
        notifications.fail = True
        payload = [fan_out([uuid.uuid4()], "Title", "Body", "test")[0].model_dump(mode="json")]

        with pytest.raises(Retry):
            await deliver_notifications({"job_try": 1}, payload)

        with pytest.raises(ConnectionError):
            await deliver_notifications({"job_try": settings.notification_max_tries}, payload)

    async def test_send_email_without_relay_is_skipped(self, monkeypatch):
        monkeypatch.setattr(settings, "email_relay_url", None)
        result = await send_email({}, "x@acme.com", "Subject", "Body")
        assert result == {"sent": False, "to": "x@acme.com"}

    async def test_reconcile_job_closes_expired_rfps(self, factory, db):
        rfp = await factory.rfp(closing_date=datetime.now(timezone.utc) - timedelta(hours=1))

        result = await reconcile_rfp_statuses({})

        assert result == {"reconciled": 1}
        await db.refresh(rfp)
        assert rfp.status == RFPStatus.CLOSED.value


# =========================================================================
# EMAIL RELAY CLIENT
# =========================================================================
class TestEmailClient:

    async def test_retries_until_success(self):
        calls = []

        def handler(request):
            calls.append(json.loads(request.content))
            if len(calls) < 2:
                return httpx.Response(503)
            return httpx.Response(202)

        client = EmailClient(
            relay_url="https://relay.test/send",
            token="secret",
            max_attempts=3,
            backoff_base=0,
            transport=httpx.MockTransport(handler)
        )

        assert await client.send("x@acme.com", "Hello", "Body")
        assert len(calls) == 2
        assert calls[0]["to"] == "x@acme.com"

    async def test_gives_up_after_max_attempts(self):
        client = EmailClient(
            relay_url="https://relay.test/send",
            max_attempts=2,
            backoff_base=0,
            transport=httpx.MockTransport(lambda request: httpx.Response(500))
        )

        with pytest.raises(EmailDeliveryError):
            await client.send("x@acme.com", "Hello", "Body")


# =========================================================================
# QUESTIONS
# =========================================================================
class TestQuestions:

    async def test_answer_publishes_and_notifies(self, factory, db, notifications):
        asker = await factory.user()
        other = await factory.user()
        admin = await factory.identity(await factory.user(role=PlatformRole.ADMIN))
        rfp = await factory.rfp()

        asked = await ask_question(db, await factory.identity(asker), rfp.id, "Is there a site visit?")
        assert asked.data.status == QuestionStatus.PENDING.value

        hidden = await list_questions(db, await factory.identity(other), rfp.id)
        assert hidden.data == []

        answered = await answer_question(db, admin, asked.data.id, "Yes, on the 5th.")
        assert answered.data.status == QuestionStatus.PUBLISHED.value
        assert [e.user_id for e in notifications.of_type("question_answered")] == [asker.id]

        visible = await list_questions(db, await factory.identity(other), rfp.id)
        assert [q.id for q in visible.data] == [asked.data.id]

    async def test_bidders_cannot_answer(self, factory, db):
        bidder = await factory.identity(await factory.user())
        rfp = await factory.rfp()
        asked = await ask_question(db, bidder, rfp.id, "Budget?")

        result = await answer_question(db, bidder, asked.data.id, "Unlimited")
        assert result.error == ErrorKind.FORBIDDEN


# =========================================================================
# SUBMISSIONS
# =========================================================================
class TestSubmissions:

    async def test_submit_and_resubmit(self, factory, db):
        company = await factory.company()
        user = await factory.user(company=company)
        rfp = await factory.rfp()
        identity = await factory.identity(user)

        first = await submit_proposal(db, identity, rfp.id, file_count=2)
        second = await submit_proposal(db, identity, rfp.id, file_count=3)

        assert second.data.id == first.data.id
        assert second.data.company_id == company.id
        assert second.message == "Submission updated"
        assert [s.id for s in await list_submissions(db, identity)] == [first.data.id]

    async def test_closed_by_date_rejects_submission(self, factory, db):
        user = await factory.user()
        rfp = await factory.rfp(closing_date=datetime.now(timezone.utc) - timedelta(minutes=5))

        result = await submit_proposal(db, await factory.identity(user), rfp.id)

        assert result.error == ErrorKind.INVALID_STATE
        assert (await db.get(RFP, rfp.id)).status == RFPStatus.ACTIVE.value

    async def test_owner_may_only_withdraw(self, factory, db):
        user = await factory.user()
        identity = await factory.identity(user)
        admin = await factory.identity(await factory.user(role=PlatformRole.ADMIN))
        rfp = await factory.rfp()
        submitted = await submit_proposal(db, identity, rfp.id)

        denied = await update_submission_status(db, identity, submitted.data.id, SubmissionStatus.ACCEPTED)
        assert denied.error == ErrorKind.FORBIDDEN

        withdrawn = await update_submission_status(db, identity, submitted.data.id, SubmissionStatus.WITHDRAWN)
        assert withdrawn.data.status == SubmissionStatus.WITHDRAWN.value

        accepted = await update_submission_status(db, admin, submitted.data.id, SubmissionStatus.ACCEPTED)
        assert accepted.success

    async def test_one_row_per_rfp_and_owner(self, factory, db):
        company = await factory.company()
        user = await factory.user(company=company)
        loner = await factory.user()
        rfp = await factory.rfp()
        rfp_id, company_id, user_id, loner_id = rfp.id, company.id, user.id, loner.id

        db.add_all([
            ProposalSubmission(rfp_id=rfp_id, user_id=user_id, company_id=company_id),
            ProposalSubmission(rfp_id=rfp_id, user_id=loner_id, company_id=company_id),
        ])
        with pytest.raises(IntegrityError):
            await db.commit()
        await db.rollback()

        db.add_all([
            ProposalSubmission(rfp_id=rfp_id, user_id=loner_id),
            ProposalSubmission(rfp_id=rfp_id, user_id=loner_id),
        ])
        with pytest.raises(IntegrityError):
            await db.commit()
        await db.rollback()

    async def test_racing_first_submission_updates_existing_row(self, factory, db, monkeypatch):
        company = await factory.company()
        first = await factory.user(company=company)
        second = await factory.user(company=company)
        rfp = await factory.rfp()
        rfp_id = rfp.id
        second_identity = await factory.identity(second)
        existing = await submit_proposal(db, await factory.identity(first), rfp_id, file_count=1)
        existing_id = existing.data.id

        owner_filter = submissions._owner_filter
        lookups = []

        def miss_first_lookup(identity):
            lookups.append(identity.user_id)
            if len(lookups) == 1:
                return false()
            return owner_filter(identity)

        monkeypatch.setattr(submissions, "_owner_filter", miss_first_lookup)

        result = await submit_proposal(db, second_identity, rfp_id, file_count=4)

        assert len(lookups) == 2
        assert result.data.id == existing_id
        assert result.data.file_count == 4
        assert result.message == "Submission updated"
