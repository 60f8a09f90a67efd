# tests/conftest.py
from __future__ import annotations

import os
import tempfile
from collections.abc import Generator, Iterator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import socketio
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REALTIME_DB_ADAPTER_ENABLED", "false")
os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="tourhub-media-"))

from tourhub.api.v1.dependencies import get_gateway  # noqa: E402
from tourhub.api.v1.endpoints import messages as messages_endpoints  # noqa: E402
from tourhub.core.security import create_access_token  # noqa: E402
from tourhub.db.session import Base  # noqa: E402
from tourhub.db.session import get_db as app_get_session  # noqa: E402
from tourhub.main import app as fastapi_app  # noqa: E402
from tourhub.models import User  # noqa: E402
from tourhub.realtime.gateway import RealtimeGateway  # noqa: E402
from tourhub.services.media import LocalMediaStorage  # noqa: E402

TEST_DB_URL = "sqlite://"


@pytest.fixture(scope="session")
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
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def file_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """Engine on a file database, for tests that need independent connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'tourhub-test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def sio_server() -> AsyncMock:
    """Socket.IO server double recording enter_room/emit calls."""
    return AsyncMock(spec=socketio.AsyncServer)


@pytest.fixture()
def gateway(app: FastAPI, sio_server: AsyncMock) -> Iterator[RealtimeGateway]:
    """Gateway bound to the server double and installed into the app."""
    realtime_gateway = RealtimeGateway(sio_server, require_token=False)
    app.dependency_overrides[get_gateway] = lambda: realtime_gateway
    try:
        yield realtime_gateway
    finally:
        app.dependency_overrides.pop(get_gateway, None)


@pytest.fixture()
def media_storage(app: FastAPI, tmp_path: Path) -> Iterator[LocalMediaStorage]:
    storage = LocalMediaStorage(root=tmp_path / "media", base_url="/media")
    app.dependency_overrides[messages_endpoints.get_media_storage_dep] = lambda: storage
    try:
        yield storage
    finally:
        app.dependency_overrides.pop(messages_endpoints.get_media_storage_dep, None)


@pytest.fixture()
def client(app: FastAPI, gateway: RealtimeGateway, media_storage: LocalMediaStorage) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


def _make_user(db: Session, user_id: str, username: str, full_name: str) -> User:
    user = User(id=user_id, username=username, full_name=full_name)
    db.add(user)
    db.flush()
    db.refresh(user)
    return user


@pytest.fixture()
def test_user(db_session: Session) -> User:
    """Create and return the primary test user ("u1")."""
    return _make_user(db_session, "u1", "alice", "Alice Traveller")


@pytest.fixture()
def other_user(db_session: Session) -> User:
    """Create and return the secondary test user ("u2")."""
    return _make_user(db_session, "u2", "bob", "Bob Guide")


@pytest.fixture()
def auth_token(test_user: User) -> dict[str, str]:
    """Return authorization headers for the primary test user."""
    return {"Authorization": f"Bearer {create_access_token(test_user.id)}"}


@pytest.fixture()
def other_auth_token(other_user: User) -> dict[str, str]:
    """Return authorization headers for the secondary test user."""
    return {"Authorization": f"Bearer {create_access_token(other_user.id)}"}
