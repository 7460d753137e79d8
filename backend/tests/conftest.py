import os
import tempfile

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Use in-memory SQLite for tests by default, can be overridden via TEST_DATABASE_URL
TEST_DB_URL = os.getenv("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")

# Ensure the app uses SQLite during imports (main creates tables in non-prod).
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", TEST_DB_URL)
os.environ.setdefault("STORAGE_ROOT", tempfile.mkdtemp(prefix="pc-test-root-"))

from personal_cloud.api.deps import get_blob_store, get_capacity_service
from personal_cloud.core.config import GIB, Settings, get_settings
from personal_cloud.core.security import create_access_token
from personal_cloud.db.base import Base
from personal_cloud.db.session import get_db_session
from personal_cloud.main import create_app
from personal_cloud.models.account import Account
from personal_cloud.models.document import Document
from personal_cloud.services.capacity import PremiumCapacityService
from personal_cloud.services.documents import DocumentService
from personal_cloud.storage.blob_store import BlobStore


@pytest.fixture(scope="function")
def engine():
    # Important: in-memory SQLite needs StaticPool to keep the same DB across connections.
    kwargs = {"connect_args": {"check_same_thread": False}}
    if TEST_DB_URL.endswith(":memory:"):
        kwargs["poolclass"] = StaticPool
    eng = create_engine(TEST_DB_URL, **kwargs)
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)


@pytest.fixture(scope="function")
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def storage_root(tmp_path):
    root = tmp_path / "UserDocs"
    root.mkdir()
    return root


@pytest.fixture(scope="function")
def blobs(storage_root):
    return BlobStore(storage_root)


@pytest.fixture(scope="function")
def settings():
    return Settings(
        environment="development",
        quota_standard_bytes=10 * GIB,
        quota_premium_bytes=50 * GIB,
        premium_gb_per_user=50.0,
    )


@pytest.fixture(scope="function")
def service(db_session, blobs, settings):
    return DocumentService(db_session, blobs, settings)


class FreeSpace:
    """Adjustable stand-in for the volume's free byte count."""

    def __init__(self, free_bytes: int = 120 * GIB):
        self.free_bytes = free_bytes

    def __call__(self) -> int:
        return self.free_bytes


@pytest.fixture(scope="function")
def free_space():
    return FreeSpace()


@pytest.fixture(scope="function")
def capacity(db_session, settings, free_space):
    return PremiumCapacityService(db_session, settings, free_space)


@pytest.fixture(scope="function")
def client(db_session, blobs, free_space):
    app = create_app()

    # Override the DB session dependency to use the test database
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    def override_capacity():
        return PremiumCapacityService(db_session, get_settings(), free_space)

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blobs
    app.dependency_overrides[get_capacity_service] = override_capacity
    return TestClient(app)


def make_account(db, owner_id: str, premium: bool = False, **kwargs) -> Account:
    account = Account(id=owner_id, email=f"{owner_id}@example.com", is_premium=premium, **kwargs)
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def seed_document(db, owner_id: str, file_size: int, file_name: str = "seed.bin", **kwargs) -> Document:
    """Insert a catalog row without a blob, for quota arithmetic."""
    doc = Document(
        owner_id=owner_id,
        file_name=file_name,
        content_type=kwargs.pop("content_type", "application/octet-stream"),
        file_size=file_size,
        storage_path=kwargs.pop("storage_path", f"seed/{file_name}"),
        **kwargs,
    )
    db.add(doc)
    db.commit()
    db.refresh(doc)
    return doc


def auth_headers(owner_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(owner_id)}"}
