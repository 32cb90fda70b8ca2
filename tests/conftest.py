"""Shared test fixtures for the RFP Portal test suite."""

import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Add project root to path
BASE_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BASE_DIR))

from database.connection import configure_session_factory, get_db
from database.models import Base, Company, Document, RFP, User
from schemas.enums import CompanyRole, PlatformRole, RFPStatus, Visibility
from services.identity import resolve_identity
from services.notifications import NotificationDispatcher, configure_dispatcher
from services.storage import StorageService, configure_storage


class RecordingStore:
    """Notification store that keeps events in memory."""

    def __init__(self):
        self.events = []
        self.fail = False

    async def save(self, events):
        if self.fail:
            raise ConnectionError("notification store unavailable")
        self.events.extend(events)

    def of_type(self, type_):
        return [e for e in self.events if e.type == type_]


class FakeJob:
    def __init__(self, job_id):
        self.job_id = job_id


class FakeRedis:
    """Stands in for the arq pool; records enqueued jobs."""

    def __init__(self):
        self.jobs = []

    async def enqueue_job(self, function, *args, **kwargs):
        self.jobs.append((function, args, kwargs))
        return FakeJob(f"job-{len(self.jobs)}")

    async def close(self):
        pass


class Factory:
    """Creates committed rows for tests."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def user(
        self,
        email=None,
        role=PlatformRole.BIDDER,
        company=None,
        company_role=CompanyRole.MEMBER,
        first_name="Test",
        last_name="User"
    ) -> User:
        user = User(
            email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            first_name=first_name,
            last_name=last_name,
            role=role.value,
            company_id=company.id if company else None,
            company_role=company_role.value if company else None
        )
        self.db.add(user)
        await self.db.commit()
        return user

    async def company(
        self,
        name="Acme Corp",
        verified_domain=None,
        auto_join_enabled=False,
        blocked_domains=None
    ) -> Company:
        company = Company(
            name=name,
            verified_domain=verified_domain,
            auto_join_enabled=auto_join_enabled,
            blocked_domains=blocked_domains or []
        )
        self.db.add(company)
        await self.db.commit()
        return company

    async def rfp(
        self,
        title="Network Upgrade",
        status=RFPStatus.ACTIVE,
        visibility=Visibility.PUBLIC,
        closing_date=None
    ) -> RFP:
        rfp = RFP(
            title=title,
            status=status.value,
            visibility=visibility.value,
            closing_date=closing_date or datetime.now(timezone.utc) + timedelta(days=30),
            categories=[]
        )
        self.db.add(rfp)
        await self.db.commit()
        return rfp

    async def document(
        self,
        rfp,
        title="Specification",
        requires_nda=False,
        requires_approval=False,
        file_path=None
    ) -> Document:
        document = Document(
            rfp_id=rfp.id,
            title=title,
            file_path=file_path or f"{rfp.id}/missing.pdf",
            content_type="application/pdf",
            requires_nda=requires_nda,
            requires_approval=requires_approval
        )
        self.db.add(document)
        await self.db.commit()
        return document

    async def identity(self, user):
        return await resolve_identity(self.db, user.id)


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite database with the full schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test_rfp_portal.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )
    configure_session_factory(factory)
    yield factory
    configure_session_factory(None)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifications():
    """Recording notification store installed as the dispatcher's store."""
    store = RecordingStore()
    configure_dispatcher(NotificationDispatcher(store=store))
    yield store
    configure_dispatcher(None)


@pytest.fixture
def queue():
    """Fake arq pool installed in the queue module."""
    import workers.queue

    fake = FakeRedis()
    workers.queue._redis_pool = fake
    yield fake
    workers.queue._redis_pool = None


@pytest.fixture
def storage(tmp_path):
    service = StorageService(tmp_path / "documents")
    configure_storage(service)
    yield service
    configure_storage(None)


@pytest.fixture
def factory(db, notifications, queue):
    return Factory(db)


@pytest.fixture
async def client(session_factory, notifications, queue, storage):
    """HTTP client over ASGI with the test database."""
    import httpx
    from api.main import create_app

    app = create_app(rate_limit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


@pytest.fixture
def auth():
    """Build bearer headers for a user, carrying their platform role claim."""
    from api.auth.jwt import create_access_token

    def headers(user) -> dict:
        token = create_access_token(str(user.id), user.email, user.role)
        return {"Authorization": f"Bearer {token}"}

    return headers
