import asyncio
import io
import os
from typing import Dict, List, Optional

# Settings are read at import time
os.environ.setdefault("JWT_SECRET", "test-secret-key-with-enough-length-for-hs256-signing")
os.environ["DB_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gallery.core.auth import TokenData, require_admin
from gallery.core.db import Base
from gallery.core.db.engine import create_engine_for, get_db_util
from gallery.core.exceptions import StorageError
from gallery.core.s3 import S3Service, get_storage
from gallery.main import app
from gallery.modules.product_images.schemas import ImagePayload


class InMemoryObjectStore:
    """Object store double. Keeps blobs in a dict and can be told to fail."""

    def __init__(self) -> None:
        self.blobs: Dict[str, bytes] = {}
        self.deleted: List[str] = []
        self.uploads = 0
        self.fail_upload_after: Optional[int] = None
        self.fail_delete = False
        self.deletes = 0
        self.fail_delete_after: Optional[int] = None

    def generate_image_key(self, product_id: int, filename: str) -> str:
        return S3Service.generate_image_key(product_id, filename)

    def upload_file(self, content: bytes, key: str, content_type: str = "application/octet-stream"):
        if self.fail_upload_after is not None and self.uploads >= self.fail_upload_after:
            raise StorageError("upload", key, "simulated outage")
        self.uploads += 1
        self.blobs[key] = content
        return key, self.get_file_url(key)

    def delete_file(self, key: str) -> None:
        if self.fail_delete or (
            self.fail_delete_after is not None and self.deletes >= self.fail_delete_after
        ):
            raise StorageError("delete", key, "simulated outage")
        self.deletes += 1
        self.blobs.pop(key, None)
        self.deleted.append(key)

    def generate_presigned_url(self, key: str, expiration: Optional[int] = None) -> str:
        return f"{self.get_file_url(key)}?X-Amz-Signature=test"

    def get_file_url(self, key: str) -> str:
        return f"https://storage.test/gallery-images/{key}"


def make_image_bytes(image_format: str = "PNG", size=(8, 8), color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=image_format)
    return buffer.getvalue()


def make_payload(name: str = "photo.png", image_format: str = "PNG", **kwargs) -> ImagePayload:
    content_type = "image/jpeg" if image_format == "JPEG" else f"image/{image_format.lower()}"
    return ImagePayload(
        filename=name,
        content_type=content_type,
        content=make_image_bytes(image_format, **kwargs),
    )


def assert_collection_invariants(images) -> None:
    assert sorted(img.index for img in images) == list(range(len(images)))
    assert sum(1 for img in images if img.is_main) == (1 if images else 0)


async def _create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture
def storage() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'gallery-test.db'}"


@pytest.fixture
async def engine(database_url):
    test_engine = create_engine_for(database_url)
    await _create_schema(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


def _build_client(database_url: str, storage: InMemoryObjectStore, as_admin: bool):
    test_engine = create_engine_for(database_url)
    asyncio.run(_create_schema(test_engine))
    factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    async def override_get_db():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_util] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    if as_admin:
        app.dependency_overrides[require_admin] = lambda: TokenData(
            user_id=1, username="admin", role="ADMIN"
        )
    return test_engine


@pytest.fixture
def client(database_url, storage):
    test_engine = _build_client(database_url, storage, as_admin=True)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    asyncio.run(test_engine.dispose())


@pytest.fixture
def anonymous_client(database_url, storage):
    test_engine = _build_client(database_url, storage, as_admin=False)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    asyncio.run(test_engine.dispose())
