"""
Shared fixtures: an in-memory database, seeded users and listings, and a
test client wired to both.
"""
from datetime import datetime, timedelta, timezone
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace_chat.core.config import Settings, get_settings
from marketplace_chat.core.database import Base, get_db, init_db
from marketplace_chat.core.security import issue_session_token
from marketplace_chat.main import app
from marketplace_chat.models.listing import Listing
from marketplace_chat.models.message import Message
from marketplace_chat.models.user import User
from marketplace_chat.services.changefeed import ChangeFeed
from marketplace_chat.services.chat import ChatService
from marketplace_chat.services.types import MessageRecord


TEST_SECRET = "test-session-secret-12345"

SELLER_ID = "11111111-1111-4111-8111-111111111111"
BUYER_ID = "22222222-2222-4222-8222-222222222222"
OTHER_BUYER_ID = "33333333-3333-4333-8333-333333333333"
UNKNOWN_USER_ID = "99999999-9999-4999-8999-999999999999"

LISTING_ID = "aaaaaaaa-aaaa-4aaa-8aaa-aaaaaaaaaaaa"
TEXTBOOK_ID = "bbbbbbbb-bbbb-4bbb-8bbb-bbbbbbbbbbbb"
REMOVED_LISTING_ID = "cccccccc-cccc-4ccc-8ccc-cccccccccccc"

BASE_TIME = datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


def get_test_settings() -> Settings:
    """Settings used by every test."""
    return Settings(
        session_secret=TEST_SECRET,
        database_url="sqlite://",
        log_level="DEBUG",
        log_format="text",
        typing_timeout_seconds=5.0,
    )


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {issue_session_token(TEST_SECRET, user_id)}"}


@pytest.fixture
def engine():
    """A fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings() -> Settings:
    return get_test_settings()


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def seeded(db):
    """Three users and two live listings; REMOVED_LISTING_ID is never created."""
    db.add_all([
        User(id=SELLER_ID, full_name="Sam Seller", profile_picture_url="https://img.example/sam.png"),
        User(id=BUYER_ID, full_name="Bea Buyer", profile_picture_url=None),
        User(id=OTHER_BUYER_ID, full_name="Olly Other", profile_picture_url=None),
        Listing(
            id=LISTING_ID,
            seller_id=SELLER_ID,
            title="Desk lamp",
            image_urls=["https://img.example/lamp-1.png", "https://img.example/lamp-2.png"],
            status="active",
        ),
        Listing(id=TEXTBOOK_ID, seller_id=SELLER_ID, title="Calculus textbook", image_urls=[], status="sold"),
    ])
    db.commit()
    return db


@pytest.fixture
def add_message(db):
    """Insert a message with a controlled timestamp, minutes after BASE_TIME."""
    counter = {"n": 0}

    def _add(listing_id, sender_id, receiver_id, content="Hello", minutes=0.0, read=False, message_id=None):
        counter["n"] += 1
        message = Message(
            id=message_id or f"m-{counter['n']:04d}",
            listing_id=listing_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            read=read,
            created_at=BASE_TIME + timedelta(minutes=minutes),
        )
        db.add(message)
        db.commit()
        return MessageRecord.from_model(message)

    return _add


@pytest.fixture
def service(db, settings, feed) -> ChatService:
    return ChatService.for_session(db, settings, feed)


@pytest.fixture
def client(engine, session_factory, seeded) -> Iterator[TestClient]:
    """Test client on the in-memory database with a private change feed."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = get_test_settings
    app.state.engine = engine
    app.state.change_feed = ChangeFeed()

    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        app.state.engine = None
