import asyncio
from datetime import timedelta

import boto3
import jwt
import pytest
from botocore.stub import Stubber

from gallery.core.auth import AuthService
from gallery.core.exceptions import StorageError, UnauthorizedError
from gallery.core.locks import KeyedLock
from gallery.core.s3 import S3Service
from gallery.core.utils import is_valid_slug, slugify


# ---------------------------------------------------------------------------
# slugs
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "title, expected",
    [
        ("Hand-Painted Vase (Blue)", "hand-painted-vase-blue"),
        ("  Café  Crème  ", "cafe-creme"),
        ("Rock 'n' Roll!", "rock-n-roll"),
    ],
)
def test_slugify(title, expected):
    assert slugify(title) == expected
    assert is_valid_slug(expected)


def test_slugify_truncates_without_trailing_hyphen():
    slug = slugify("word " * 40, max_length=12)

    assert len(slug) <= 12
    assert not slug.endswith("-")


# ---------------------------------------------------------------------------
# keyed lock
# ---------------------------------------------------------------------------


async def test_keyed_lock_serialises_same_key():
    locks = KeyedLock()
    events = []

    async def worker(name):
        async with locks.hold("product-1"):
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert events in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])


async def test_keyed_lock_does_not_block_other_keys():
    locks = KeyedLock()

    async with locks.hold(1):
        async with locks.hold(2):
            assert len(locks) == 2


async def test_keyed_lock_forgets_released_keys():
    locks = KeyedLock()

    async with locks.hold(1):
        pass
    with pytest.raises(RuntimeError):
        async with locks.hold(2):
            raise RuntimeError("boom")

    assert len(locks) == 0


# ---------------------------------------------------------------------------
# object store
# ---------------------------------------------------------------------------


@pytest.fixture
def stubbed_s3(monkeypatch):
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )
    monkeypatch.setattr(S3Service, "_client", client)
    with Stubber(client) as stubber:
        yield stubber


def test_image_key_is_scoped_to_product():
    key = S3Service.generate_image_key(7, "my photo (1).png")

    assert key.startswith("products/7/images/")
    assert key.endswith("-my-photo--1-.png")
    assert key != S3Service.generate_image_key(7, "my photo (1).png")


def test_upload_returns_key_and_url(stubbed_s3):
    stubbed_s3.add_response("put_object", {})

    key, url = S3Service.upload_file(b"data", "products/1/images/a.png", "image/png")

    assert key == "products/1/images/a.png"
    assert url.endswith("/products/1/images/a.png")


def test_upload_error_becomes_storage_error(stubbed_s3):
    stubbed_s3.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(StorageError) as exc_info:
        S3Service.upload_file(b"data", "products/1/images/a.png", "image/png")

    assert exc_info.value.status_code == 502
    assert "AccessDenied" in exc_info.value.detail


def test_delete_error_becomes_storage_error(stubbed_s3):
    stubbed_s3.add_client_error("delete_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(StorageError) as exc_info:
        S3Service.delete_file("products/1/images/a.png")

    assert exc_info.value.operation == "delete"


def test_presigned_url_carries_signature(stubbed_s3):
    url = S3Service.generate_presigned_url("products/1/images/a.png", expiration=60)

    assert "products/1/images/a.png" in url
    assert "X-Amz-Signature" in url or "Signature" in url


# ---------------------------------------------------------------------------
# tokens
# ---------------------------------------------------------------------------


def test_token_round_trip():
    token = AuthService.create_access_token({"sub": "admin", "user_id": 1, "role": "ADMIN"})

    token_data = AuthService.verify_token(token)

    assert token_data.username == "admin"
    assert token_data.role == "ADMIN"


def test_token_missing_claims_is_rejected():
    token = AuthService.create_access_token({"sub": "admin"})

    assert AuthService.verify_token(token) is None


def test_expired_token_raises_unauthorized():
    token = AuthService.create_access_token(
        {"sub": "admin", "user_id": 1, "role": "ADMIN"}, expires_delta=timedelta(seconds=-5)
    )

    with pytest.raises(UnauthorizedError):
        AuthService.verify_token(token)


def test_token_signed_with_other_secret_is_rejected():
    token = jwt.encode(
        {"sub": "admin", "user_id": 1, "role": "ADMIN"},
        "some-other-secret-that-is-also-long-enough",
        algorithm="HS256",
    )

    assert AuthService.verify_token(token) is None
