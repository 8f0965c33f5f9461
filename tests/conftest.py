import asyncio
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from minio import Minio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from annotator.app.core.clock import ManualClock
from annotator.app.db.async_session import get_db
from annotator.app.db.init_db import init_database
from annotator.app.main import create_app
from annotator.app.middleware.rate_limit import RateLimiter
from annotator.app.services.storage import MinioObjectStorage

OWNER_IP = "203.0.113.10"
GUEST_IP = "198.51.100.20"

START_MS = 1_700_000_000_000

MINIO_URL = "http://minio.test:9000"
BUCKET = "test-images"


def _sqlite_url_from_absolute_path(path: str) -> str:
    # SQLAlchemy expects 4 slashes for absolute paths. The path already starts
    # with '/', so strip it when appending after '////'.
    return f"sqlite+aiosqlite:////{path.lstrip('/')}"


def as_client(ip: str) -> dict[str, str]:
    return {"X-Forwarded-For": ip}


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start_ms=START_MS)


@pytest.fixture
def db_engine(tmp_path):
    # NullPool: TestClient runs each request on its own event loop
    engine = create_async_engine(
        _sqlite_url_from_absolute_path(str(tmp_path / "annotator_test.db")),
        poolclass=NullPool,
    )
    asyncio.run(init_database(engine))
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def session_maker(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def minio_client() -> MagicMock:
    """Stand-in for the MinIO client; presigned URLs mimic the real query shape."""

    def presign(bucket_name, object_name, expires):
        return (
            f"{MINIO_URL}/{bucket_name}/{object_name}"
            f"?X-Amz-Expires={int(expires.total_seconds())}&X-Amz-Signature=test-signature"
        )

    client = MagicMock(spec=Minio)
    client.bucket_exists.return_value = True
    client.presigned_put_object.side_effect = presign
    return client


@pytest.fixture
def storage(minio_client) -> MinioObjectStorage:
    return MinioObjectStorage(
        client=minio_client,
        bucket=BUCKET,
        public_base_url=MINIO_URL,
        upload_ttl_seconds=3600,
    )


@pytest.fixture
def rate_limiter(clock) -> RateLimiter:
    return RateLimiter(clock=clock)


@pytest.fixture
def app(session_maker, rate_limiter, storage):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app(rate_limiter=rate_limiter, storage=storage)
    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def owned_image(client) -> int:
    """An image uploaded by OWNER_IP; returns its id."""
    resp = client.post(
        "/images/upload",
        json={"filename": "cat.png", "contentType": "image/png"},
        headers=as_client(OWNER_IP),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["imageId"]


@pytest.fixture
def share_token(client, owned_image) -> str:
    resp = client.post(f"/images/{owned_image}/share", headers=as_client(OWNER_IP))
    assert resp.status_code == 200, resp.text
    return resp.json()["shareToken"]


@pytest.fixture
def owned_annotation(client, owned_image) -> int:
    resp = client.post(
        "/annotations",
        json={"imageId": owned_image, "x": 10.0, "y": 20.0, "radius": 5.0},
        headers=as_client(OWNER_IP),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]
