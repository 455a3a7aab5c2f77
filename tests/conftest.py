# tests/conftest.py
from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Generator, Iterator
from datetime import datetime
from itertools import count
from typing import Any, TypeVar

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "relay-test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from clearlot_relay.api.v1.dependencies import get_relay_services  # noqa: E402
from clearlot_relay.core.clock import FakeClock  # noqa: E402
from clearlot_relay.core.security import create_access_token  # noqa: E402
from clearlot_relay.core.settings import settings  # noqa: E402
from clearlot_relay.db.session import Base  # noqa: E402
from clearlot_relay.main import app as fastapi_app  # noqa: E402
from clearlot_relay.models import Offer, Purchase, UserProfile, WatchlistEntry  # noqa: E402
from clearlot_relay.services.blob_store import BlobStore, BlobStoreError, UploadedBlob  # noqa: E402
from clearlot_relay.services.dedup import SqlDedupStore  # noqa: E402
from clearlot_relay.services.runtime import RelayServices, build_services, reset_services  # noqa: E402
from clearlot_relay.services.scheduler import ManualScheduler  # noqa: E402

TEST_DB_URL = "sqlite://"

_ID_COUNTER = count(1)

ModelT = TypeVar("ModelT")


class FakeBlobStore(BlobStore):
    """In-memory blob store that records calls and can be told to fail."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_deletes = False

    async def upload(self, path: str, filename: str, data: bytes) -> UploadedBlob:
        url = f"https://blobs.test/{path}"
        self.blobs[url] = data
        return UploadedBlob(url=url, name=filename, size=len(data))

    async def delete(self, url: str) -> None:
        if self.fail_deletes:
            raise BlobStoreError("blob store unavailable")
        self.deleted.append(url)
        self.blobs.pop(url, None)


class CommitFailures:
    """Session factory whose next `pending` commits raise `OperationalError`."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        self.pending = 0

    def __call__(self) -> Session:
        session = self._session_factory()
        commit = session.commit

        def maybe_fail() -> None:
            if self.pending:
                self.pending -= 1
                raise OperationalError("COMMIT", {}, Exception("database is locked"))
            commit()

        session.commit = maybe_fail  # type: ignore[method-assign]
        return session


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def failing_commits(session_factory: sessionmaker[Session]) -> CommitFailures:
    return CommitFailures(session_factory)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """Session used by tests to seed records."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def scheduler(clock: FakeClock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture()
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture()
def services(
    session_factory: sessionmaker[Session],
    clock: FakeClock,
    scheduler: ManualScheduler,
    blob_store: FakeBlobStore,
) -> RelayServices:
    """Fully wired relay running on the test database and a fake clock."""
    return build_services(
        session_factory,
        clock=clock,
        scheduler=scheduler,
        blob_store=blob_store,
        dedup_store=SqlDedupStore(session_factory, clock=clock),
    )


@pytest.fixture()
def app(services: RelayServices) -> Iterator[FastAPI]:
    reset_services(services)
    fastapi_app.dependency_overrides[get_relay_services] = lambda: services
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.pop(get_relay_services, None)
        reset_services(None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def auth_headers() -> Callable[[str], dict[str, str]]:
    """Return a builder of authorization headers for a user id."""

    def build(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return build


@pytest.fixture()
def service_headers() -> Callable[[str], dict[str, str]]:
    """Return a builder of headers for a marketplace service allowed to submit events."""

    def build(service_id: str) -> dict[str, str]:
        token = create_access_token(service_id, {"scope": settings.event_scope})
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture()
def make_profile(db_session: Session) -> Callable[..., UserProfile]:
    def build(user_id: str, **fields: Any) -> UserProfile:
        profile = UserProfile(id=user_id, **fields)
        db_session.add(profile)
        db_session.commit()
        return profile

    return build


@pytest.fixture()
def make_offer(db_session: Session) -> Callable[..., Offer]:
    def build(
        *,
        seller_id: str = "seller",
        title: str = "Surplus LED panels",
        price: float = 100.0,
        previous_price: float | None = None,
        watchers: tuple[str, ...] = (),
    ) -> Offer:
        offer = Offer(
            id=f"offer{next(_ID_COUNTER)}",
            seller_id=seller_id,
            title=title,
            price=price,
            previous_price=previous_price,
        )
        db_session.add(offer)
        for watcher in watchers:
            db_session.add(WatchlistEntry(user_id=watcher, offer_id=offer.id))
        db_session.commit()
        return offer

    return build


@pytest.fixture()
def make_purchase(
    db_session: Session, clock: FakeClock, make_offer: Callable[..., Offer]
) -> Callable[..., Purchase]:
    def build(
        *,
        buyer_id: str = "buyer",
        seller_id: str = "seller",
        status: str = "pending",
        previous_status: str | None = None,
        shipped_at: datetime | None = None,
        offer: Offer | None = None,
        final_amount: float = 250.0,
    ) -> Purchase:
        offer = offer or make_offer(seller_id=seller_id)
        purchase = Purchase(
            id=f"purchase{next(_ID_COUNTER)}",
            offer_id=offer.id,
            buyer_id=buyer_id,
            seller_id=seller_id,
            final_amount=final_amount,
            status=status,
            previous_status=previous_status,
            purchase_date=clock.now(),
            shipped_at=shipped_at,
        )
        db_session.add(purchase)
        db_session.commit()
        return purchase

    return build


@pytest.fixture()
def fetch(session_factory: sessionmaker[Session]) -> Callable[[type[ModelT], Any], ModelT | None]:
    """Read a record through a fresh session, bypassing any cached state."""

    def load(model: type[ModelT], key: Any) -> ModelT | None:
        with session_factory() as db:
            return db.get(model, key)

    return load


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until `predicate` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture()
def eventually() -> Callable[..., Any]:
    """Expose `wait_until` to async tests."""
    return wait_until
