"""
Storage Client

S3-compatible (MinIO) storage for source photos and generated variations.
"""

import io
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from .config import Settings, get_settings
from .pipeline.client import sniff_mime_type

logger = logging.getLogger(__name__)


def variation_key(user_id: str, job_id: str, slot: int) -> str:
    """Object key for one generated variation."""
    return f"generations/{user_id}/{job_id}/variation-{slot + 1}.png"


class StorageClient:
    """S3-compatible storage client."""

    def __init__(self, settings: Settings | None = None, client=None):
        """Initialize S3 client."""
        self.settings = settings or get_settings()
        if client is None:
            endpoint_url = f"{'https' if self.settings.minio_secure else 'http'}://{self.settings.minio_endpoint}"
            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=self.settings.minio_access_key,
                aws_secret_access_key=self.settings.minio_secret_key,
                config=Config(signature_version="s3v4"),
                region_name="us-east-1",
            )
        self.client = client
        self.bucket = self.settings.minio_bucket

    def download_bytes(self, key: str) -> bytes:
        """
        Download an object as bytes.

        Args:
            key: S3 object key

        Returns:
            Object contents
        """
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            logger.error(f"Failed to download s3://{self.bucket}/{key}: {e}")
            raise

    def upload_bytes(self, data: bytes, key: str, content_type: str | None = None) -> str:
        """
        Upload bytes.

        Args:
            data: Bytes to upload
            key: S3 object key
            content_type: MIME type, detected from the data when omitted

        Returns:
            S3 key
        """
        content_type = content_type or sniff_mime_type(data, default="image/png")
        try:
            self.client.upload_fileobj(
                io.BytesIO(data),
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type},
            )
            logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")
            return key
        except ClientError as e:
            logger.error(f"Failed to upload bytes: {e}")
            raise

    def get_url(self, key: str, expires_in: int | None = None) -> str:
        """Presigned GET URL for an object."""
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires_in or self.settings.output_url_expiry,
        )

    def upload_variation(self, data: bytes, user_id: str, job_id: str, slot: int) -> str:
        """Store a finished variation and return a URL the client can fetch."""
        key = self.upload_bytes(data, variation_key(user_id, job_id, slot))
        return self.get_url(key)


# Singleton
_storage_client: StorageClient | None = None


def get_storage_client() -> StorageClient:
    """Get or create storage client singleton."""
    global _storage_client
    if _storage_client is None:
        _storage_client = StorageClient()
    return _storage_client
