"""
Pytest configuration and shared fixtures
"""

import os
from datetime import datetime, timedelta
from typing import List, Sequence

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from fastapi.testclient import TestClient  # noqa: E402

from app.articles.catalog import ArticleCatalog  # noqa: E402
from app.articles.models import Article  # noqa: E402
from app.auth.models import User  # noqa: E402
from app.auth.service import create_token  # noqa: E402
from app.core.database import Base, get_db  # noqa: E402
from app.goals.service import GoalProgressEngine  # noqa: E402
from main import app  # noqa: E402

CATALOG_IDS = [1, 2, 3, 4, 5, 10, 11, 12]


class FakeArticleCatalog(ArticleCatalog):
    """In-memory catalog that records every lookup"""

    def __init__(self, existing: Sequence[int] = CATALOG_IDS):
        self.existing = set(existing)
        self.calls: List[List[int]] = []

    def validate_article_ids(self, article_ids: Sequence[int]) -> List[int]:
        self.calls.append(list(article_ids))
        return [article_id for article_id in article_ids if article_id not in self.existing]


class FakeClock:
    """Returns a new timestamp, five minutes apart, on every call"""

    def __init__(self, start: datetime = datetime(2025, 1, 6, 8, 0, 0)):
        self.current = start

    def peek(self) -> datetime:
        return self.current

    def __call__(self) -> datetime:
        now = self.current
        self.current = self.current + timedelta(minutes=5)
        return now


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database per test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    Session = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=db_engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def users(db_session):
    """A regular user (7), a second regular user (8) and an admin (1)"""
    rows = [
        User(id=1, email="admin@example.com", name="Admin", password="x", role="ADMIN"),
        User(id=7, email="reader@example.com", name="Reader", password="x", role="USER"),
        User(id=8, email="other@example.com", name="Other", password="x", role="USER"),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return {user.id: user for user in rows}


@pytest.fixture
def articles(db_session):
    rows = [
        Article(id=article_id, title=f"Article {article_id}", content="...", source="test")
        for article_id in CATALOG_IDS
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture
def catalog():
    return FakeArticleCatalog()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def goal_engine(db_session, catalog, clock):
    return GoalProgressEngine(db_session, catalog, clock=clock)


@pytest.fixture
def client(db_session, users, articles):
    """TestClient bound to the test session, with a real SQL article catalog"""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_headers(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_token(user_id)}"}


@pytest.fixture
def reader_headers():
    return auth_headers(7)


@pytest.fixture
def other_headers():
    return auth_headers(8)


@pytest.fixture
def admin_headers():
    return auth_headers(1)
