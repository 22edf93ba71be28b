import os

# Must be set before healthtrack.core.config is imported
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("RECONCILE_ON_STARTUP", "false")
os.environ.setdefault("SQLITE_PATH", ":memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from healthtrack.api import deps
from healthtrack.core.security import create_access_token
from healthtrack.crud.activity import SQLActivityStore
from healthtrack.crud.memory import InMemoryActivityStore
from healthtrack.db.base import Base
from healthtrack.main import app
from healthtrack.services.activity_service import ActivityService
import healthtrack.models  # noqa: F401

USER_ID = "user-alice"
OTHER_USER_ID = "user-bob"


@pytest.fixture
def store():
    return InMemoryActivityStore()


@pytest.fixture
def service(store):
    return ActivityService(store, max_retries=3)


@pytest.fixture
def sql_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sql_store(sql_session_factory):
    return SQLActivityStore(session_factory=sql_session_factory)


@pytest.fixture
def client(service):
    app.dependency_overrides[deps.get_activity_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(user_id: str = USER_ID) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def headers():
    return auth_headers(USER_ID)


@pytest.fixture
def other_headers():
    return auth_headers(OTHER_USER_ID)
