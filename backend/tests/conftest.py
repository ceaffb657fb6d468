"""Shared fixtures: temporary databases, a scriptable signer and seeding helpers."""
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

import vaultshare.models  # noqa: F401
from vaultshare.core.database import Base
from vaultshare.core.errors import SignerUnavailable
from vaultshare.core.security import get_password_hash
from vaultshare.models import (
    BundleDocument,
    DocumentBundle,
    SecureDocument,
    SecureFolder,
    SecureLink,
)
from vaultshare.services.signer import SignedUrl, UrlRequest
from vaultshare.services.url_cache import UrlCache
from vaultshare.services.url_orchestrator import UrlOrchestrator


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSigner:
    """Signer double that records every exchange.

    ``batch_fails`` makes every batch call raise; ``missing`` paths are left out
    of batch answers; ``single_failures`` maps a path to how many single calls
    fail before one succeeds (``None`` fails forever).
    """

    def __init__(self, batch_fails=False, missing=(), single_failures=None, ttl=None):
        self.batch_fails = batch_fails
        self.missing = set(missing)
        self.single_failures = dict(single_failures or {})
        self.ttl = ttl
        self.batch_calls: list[list[str]] = []
        self.single_calls: list[str] = []

    def _sign(self, request: UrlRequest) -> SignedUrl:
        return SignedUrl(
            storage_path=request.storage_path,
            url=f"https://storage.test/{request.storage_path}?sig=abc",
            expires_in=self.ttl if self.ttl is not None else request.ttl_hint,
            is_video=request.is_video,
        )

    async def sign_batch(self, requests):
        self.batch_calls.append([r.storage_path for r in requests])
        if self.batch_fails:
            raise SignerUnavailable("batch endpoint down")
        return [self._sign(r) for r in requests if r.storage_path not in self.missing]

    async def sign_one(self, request):
        self.single_calls.append(request.storage_path)
        remaining = self.single_failures.get(request.storage_path, 0)
        if remaining is None:
            raise SignerUnavailable("always failing")
        if remaining > 0:
            self.single_failures[request.storage_path] = remaining - 1
            raise SignerUnavailable("transient")
        return self._sign(request)


async def _no_sleep(_seconds):
    return None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return UrlCache(safety_margin=60, max_entries=0, clock=clock)


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def orchestrator(signer, cache):
    return UrlOrchestrator(signer, cache=cache, retry_attempts=3, retry_backoff=0.0, sleep=_no_sleep)


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def make_document(db, name="report.pdf", file_type="application/pdf", folder=None, **kwargs):
    doc = SecureDocument(
        storage_path=kwargs.pop("storage_path", f"docs/{name}"),
        file_name=name,
        file_type=file_type,
        file_size=kwargs.pop("file_size", 1024),
        folder_id=folder.id if folder is not None else None,
        **kwargs,
    )
    db.add(doc)
    await db.flush()
    return doc


async def make_folder(db, name, parent=None, **kwargs):
    folder = SecureFolder(name=name, parent_folder_id=parent.id if parent is not None else None, **kwargs)
    db.add(folder)
    await db.flush()
    return folder


async def make_bundle(db, name, documents):
    bundle = DocumentBundle(name=name)
    db.add(bundle)
    await db.flush()
    for order, doc in enumerate(documents):
        db.add(BundleDocument(bundle_id=bundle.id, document_id=doc.id, display_order=order))
    await db.flush()
    return bundle


async def make_link(db, token="tok-123", document=None, bundle=None, folder=None, password=None, **kwargs):
    link = SecureLink(
        link_token=token,
        document_id=document.id if document is not None else None,
        bundle_id=bundle.id if bundle is not None else None,
        folder_id=folder.id if folder is not None else None,
        password_hash=get_password_hash(password) if password else None,
        **kwargs,
    )
    db.add(link)
    await db.commit()
    return link


def hours_from_now(hours: float) -> datetime:
    return datetime.utcnow() + timedelta(hours=hours)
