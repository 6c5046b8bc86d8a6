from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from config import settings
from database import create_engine, create_schema, create_session_maker
from models.store import Store
from services.audit import AuditService
from services.audit_queue import AuditJob, JobRunner
from services.cache import MemoryCache
from services.content import ContentSnapshot, ContentSource, StoreCredentials


class FakeContentSource(ContentSource):
    def __init__(self, snapshot: Optional[ContentSnapshot] = None, error: Optional[Exception] = None):
        self.snapshot = snapshot or ContentSnapshot()
        self.error = error
        self.calls: List[StoreCredentials] = []

    async def fetch(self, store: StoreCredentials) -> ContentSnapshot:
        self.calls.append(store)
        if self.error is not None:
            raise self.error
        return self.snapshot


class RecordingJobRunner(JobRunner):
    """Accepts jobs without running them."""

    name = "recording"

    def __init__(self):
        self.jobs: List[AuditJob] = []
        self.cancelled: List[str] = []

    async def submit(self, job: AuditJob) -> str:
        self.jobs.append(job)
        return f"audit:{job.audit_id}"

    async def cancel(self, job_id: str) -> bool:
        self.cancelled.append(job_id)
        return True


@pytest.fixture(autouse=True)
def disable_link_probing(monkeypatch):
    """Keep the broken link check off the network unless a test opts in."""
    monkeypatch.setattr(settings, "LINK_CHECK_ENABLED", False)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'seo_audit_test.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest_asyncio.fixture
async def store(session_maker):
    async with session_maker() as db:
        store = Store(shop_domain="test-shop.myshopify.com", access_token="shpat_test_token")
        db.add(store)
        await db.commit()
    return store


@pytest.fixture
def cache():
    return MemoryCache(max_entries=100, default_ttl_seconds=60)


@pytest.fixture
def make_content_source():
    def _make(
        products: Optional[List[Dict[str, Any]]] = None,
        collections: Optional[List[Dict[str, Any]]] = None,
        pages: Optional[List[Dict[str, Any]]] = None,
        error: Optional[Exception] = None,
    ) -> FakeContentSource:
        snapshot = ContentSnapshot(
            products=list(products or []),
            collections=list(collections or []),
            pages=list(pages or []),
        )
        return FakeContentSource(snapshot=snapshot, error=error)

    return _make


@pytest.fixture
def recording_runner():
    return RecordingJobRunner()


@pytest.fixture
def make_service(session_maker, cache, recording_runner, make_content_source):
    def _make(content_source: Optional[ContentSource] = None, job_runner: Optional[JobRunner] = None, **kwargs):
        return AuditService(
            session_maker=session_maker,
            job_runner=job_runner or recording_runner,
            content_source=content_source or make_content_source(),
            cache=cache,
            **kwargs,
        )

    return _make
