"""Shared test fixtures for FieldTrack."""

import datetime as dt
import os
from io import BytesIO
from unittest.mock import MagicMock

# Configure before anything imports fieldtrack.config
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")
os.environ.setdefault("FIREBASE_PROJECT_ID", "fieldtrack-test")
os.environ.setdefault("FIREBASE_WEB_API_KEY", "test-web-key")
os.environ.setdefault("ADMIN_SIGNUP_CODE", "admin-secret")
os.environ.setdefault("USER_SIGNUP_CODE", "user-secret")
os.environ.setdefault("R2_PUBLIC_URL", "https://cdn.fieldtrack.test")

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fieldtrack import rate_limiter
from fieldtrack.auth import get_current_user
from fieldtrack.database import Base, get_db
from fieldtrack.domain.feed import SnapshotFeed, get_feed, session_loader
from fieldtrack.domain.products.repository import ProductRepository
from fieldtrack.domain.products.service import ProductService
from fieldtrack.domain.tasks.repository import TaskRepository
from fieldtrack.domain.tasks.service import TaskService
from fieldtrack.main import app
from fieldtrack.models import (
    PRODUCT_UNAPPROVED,
    ROLE_ADMIN,
    ROLE_USER,
    TASK_IN_PROGRESS,
    Product,
    Task,
    User,
)
from fieldtrack.services.image_pipeline import ImageFile, ImagePipeline, get_image_pipeline
from fieldtrack.services.storage import ObjectStorage

TODAY = dt.date(2025, 1, 6)


def make_image_bytes(width=64, height=48, color=(120, 90, 60), mode="RGB", fmt="PNG") -> bytes:
    """Create a small in-memory image."""
    img = Image.new(mode, (width, height), color)
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def image_file(name="photo.png", **kwargs) -> ImageFile:
    return ImageFile(filename=name, content_type="image/png", data=make_image_bytes(**kwargs))


def slot(date=TODAY, start="", end="", approved=False) -> dict:
    return {"date": date.isoformat(), "startTime": start, "endTime": end, "approved": approved}


@pytest.fixture(autouse=True)
def isolated_rate_limits(monkeypatch):
    """No Redis in tests; counts live in a fresh in-memory cache."""
    monkeypatch.setattr(rate_limiter, "get_redis_client", lambda: None)
    monkeypatch.setattr("fieldtrack.routes.auth.get_redis_client", lambda: None)
    rate_limiter.memory_cache.clear()
    yield
    rate_limiter.memory_cache.clear()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def _user(db, uid, email, name, role) -> User:
    user = User(firebase_uid=uid, email=email, full_name=name, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin(db) -> User:
    return _user(db, "uid-admin", "admin@example.com", "Ada Admin", ROLE_ADMIN)


@pytest.fixture
def owner(db) -> User:
    return _user(db, "uid-owner", "olivia@example.com", "Olivia Owner", ROLE_USER)


@pytest.fixture
def other_user(db) -> User:
    return _user(db, "uid-other", "oscar@example.com", "Oscar Other", ROLE_USER)


@pytest.fixture
def make_product(db):
    def factory(user: User, **overrides) -> Product:
        data = {
            "name": "Cordless Drill",
            "description": "18V drill with two batteries",
            "serial_number": "SN-1001",
            "purchase_date": dt.date(2024, 5, 1),
            "warranty": {"type": "basic", "duration": 12, "coverage": [], "provider": "", "terms": ""},
            "images": ["https://cdn.fieldtrack.test/products/existing.jpg"],
            "uploader_email": user.email,
            "status": PRODUCT_UNAPPROVED,
        }
        data.update(overrides)
        return ProductRepository.create_product(db, user.id, **data)

    return factory


@pytest.fixture
def make_task(db):
    def factory(user: User, **overrides) -> Task:
        data = {
            "title": "Replace filters",
            "site": "North warehouse",
            "description": "Swap HVAC filters on level 2",
            "notes": "",
            "status": TASK_IN_PROGRESS,
            "time_slots": [slot(start="09:00", end="11:00")],
            "images": [],
            "uploader_email": user.email,
        }
        data.update(overrides)
        return TaskRepository.create_task(db, user.id, **data)

    return factory


@pytest.fixture
def r2_client():
    return MagicMock()


@pytest.fixture
def storage(r2_client) -> ObjectStorage:
    return ObjectStorage(client=r2_client, bucket="test-bucket", public_url="https://cdn.fieldtrack.test")


@pytest.fixture
def pipeline(storage) -> ImagePipeline:
    return ImagePipeline(storage)


@pytest.fixture
def feed(session_factory) -> SnapshotFeed:
    return SnapshotFeed(
        {
            "products": session_loader(ProductRepository.list_visible, session_factory),
            "tasks": session_loader(TaskRepository.list_visible, session_factory),
        }
    )


@pytest.fixture
def product_service(db, pipeline, feed) -> ProductService:
    return ProductService(db, pipeline, feed)


@pytest.fixture
def task_service(db, pipeline, feed) -> TaskService:
    return TaskService(db, pipeline, feed)


@pytest.fixture
def client(db, pipeline, feed):
    """TestClient bound to the test database, storage mock and feed."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_image_pipeline] = lambda: pipeline
    app.dependency_overrides[get_feed] = lambda: feed
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login():
    """Authenticate subsequent requests as the given user."""

    def as_user(user: User) -> None:
        app.dependency_overrides[get_current_user] = lambda: user

    return as_user
