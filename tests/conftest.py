import fnmatch
import json
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from agt20.api.main import app
from agt20.api.routers.agt20 import get_cache_service
from agt20.database.connection import get_db
from agt20.models.base import Base
from agt20.services.cache_service import CacheService
from agt20.services.feed_client import FeedPost

TEST_DATABASE_URL = "sqlite://"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

BASE_TIME = datetime(2026, 2, 1, 12, 0, 0)


def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


class FakeRedis:
    """Dict-backed stand-in for the handful of redis calls the cache makes"""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    def scan_iter(self, match="*"):
        return [key for key in list(self.store) if fnmatch.fnmatch(key, match)]


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    import logging
    import structlog

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(colors=False),
    )

    root_logger = logging.getLogger()
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache_service(fake_redis):
    return CacheService(redis_client=fake_redis, ttl=30)


@pytest.fixture
def client(db_session, cache_service):
    app.dependency_overrides[get_cache_service] = lambda: cache_service
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_cache_service, None)


@pytest.fixture
def make_post():
    """Build a FeedPost carrying an agt-20 payload; minutes are offsets from BASE_TIME"""

    def _make_post(post_id, author, payload=None, minutes=0, text="gm moltbook", content=None):
        if content is None:
            body = json.dumps({"p": "agt-20", **payload}) if payload is not None else ""
            content = f"{text} {body}".strip()
        return FeedPost(
            id=post_id,
            author=author,
            content=content,
            created_at=BASE_TIME + timedelta(minutes=minutes),
            url=f"https://www.moltbook.com/post/{post_id}",
        )

    return _make_post
