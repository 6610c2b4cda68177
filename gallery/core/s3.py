"""
S3-compatible object store for product image blobs.
Works against AWS S3, Cloudflare R2 and MinIO through a custom endpoint.
"""

import io
import re
import time
import uuid
from typing import Optional, Dict, Any, Tuple
import boto3
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from gallery.core.config import config
from gallery.core.exceptions import StorageError


class S3Service:
    """
    Key-addressed blob storage used by the image store. Keys are never
    overwritten; reads go through time-limited presigned URLs.
    """

    _client: Optional[BaseClient] = None
    _bucket_name: str = config.s3_bucket

    @classmethod
    def _get_client(cls) -> BaseClient:
        """One client per process; boto3 clients are thread-safe."""
        if cls._client is None:
            boto_config = Config(
                region_name=config.s3_region,
                signature_version="s3v4",
                s3={"addressing_style": "path"},
                retries={
                    "max_attempts": 2,
                    "mode": "standard",
                },
                max_pool_connections=10,
                connect_timeout=5,
                read_timeout=10,
            )

            cls._client = boto3.client(
                "s3",
                endpoint_url=config.s3_endpoint or None,
                aws_access_key_id=config.s3_access_key_id,
                aws_secret_access_key=config.s3_secret_access_key,
                config=boto_config,
            )

        return cls._client

    @staticmethod
    def generate_image_key(product_id: int, filename: str) -> str:
        """
        Build a unique key for a product image:
        {prefix}{product_id}/images/{timestamp_ms}-{uuid8}-{sanitised filename}
        """
        prefix = config.s3_product_images_prefix.strip("/")
        prefix = f"{prefix}/" if prefix else ""
        sanitized = re.sub(r"[^a-zA-Z0-9.]", "-", filename or "image")
        timestamp = int(time.time() * 1000)
        return f"{prefix}{product_id}/images/{timestamp}-{uuid.uuid4().hex[:8]}-{sanitized}"

    @classmethod
    def upload_file(
        cls,
        file_content: bytes,
        file_key: str,
        content_type: str = "application/octet-stream",
    ) -> Tuple[str, str]:
        """
        Upload a file in a single PUT request.

        Returns:
            Tuple[str, str]: (file_key, file_url)
        Raises:
            StorageError: On failure
        """
        client = cls._get_client()

        upload_params: Dict[str, Any] = {
            "Bucket": cls._bucket_name,
            "Key": file_key,
            "Body": io.BytesIO(file_content),
            "ContentType": content_type,
            "ContentLength": len(file_content),
        }

        try:
            client.put_object(**upload_params)
        except (ClientError, BotoCoreError) as e:
            raise StorageError("upload", file_key, _error_code(e)) from e

        return file_key, cls.get_file_url(file_key)

    @classmethod
    def generate_presigned_url(
        cls,
        file_key: str,
        expiration: Optional[int] = None,
    ) -> str:
        """
        Generate a temporary presigned URL for reading a blob.

        Raises:
            StorageError: On failure
        """
        client = cls._get_client()

        try:
            return client.generate_presigned_url(
                "get_object",
                Params={
                    "Bucket": cls._bucket_name,
                    "Key": file_key,
                },
                ExpiresIn=expiration or config.signed_url_expiration,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError("sign", file_key, _error_code(e)) from e

    @classmethod
    def delete_file(cls, file_key: str) -> None:
        """
        Delete a blob. S3 treats deleting a missing key as success.

        Raises:
            StorageError: On failure
        """
        client = cls._get_client()

        try:
            client.delete_object(Bucket=cls._bucket_name, Key=file_key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError("delete", file_key, _error_code(e)) from e

    @classmethod
    def get_file_url(cls, file_key: str) -> str:
        """
        Permanent (unsigned) URL of a blob.
        Usage: S3Service.get_file_url("products/1/images/a.jpg")
        """
        if config.s3_endpoint:
            return f"{config.s3_endpoint.rstrip('/')}/{cls._bucket_name}/{file_key}"
        return f"https://{cls._bucket_name}.s3.{config.s3_region}.amazonaws.com/{file_key}"


def _error_code(error: Exception) -> str:
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "Unknown")
        return f"[{code}] {error}"
    return str(error)


def get_storage():
    """Object store dependency; tests override it with an in-memory store."""
    return S3Service
