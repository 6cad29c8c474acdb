"""
S3 service module for mirroring generated documents and issuing download URLs.

This module provides functionality for:
- Uploading generated PDFs to S3
- Generating presigned URLs for secure, time-limited downloads

The bucket is configured through ``storage.s3_bucket`` (``S3_BUCKET_NAME`` in
the environment). When it is empty every operation is skipped and the local
``/uploads`` URL remains the only download reference.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class S3Service:
    """Thin wrapper around a lazily created boto3 S3 client for one bucket."""

    def __init__(self, bucket_name: str = "", key_prefix: str = "", client=None) -> None:
        self.bucket_name = bucket_name
        self.key_prefix = key_prefix.strip("/")
        self._client = client

    def _get_client(self):
        """
        Get or create the S3 client.

        Returns:
            boto3 S3 client or None if bucket is not configured

        Note:
            Credentials are not probed here; credential errors surface during
            the actual upload.
        """
        if self._client is None:
            if not self.bucket_name:
                logger.warning("S3 bucket not configured")
                return None
            try:
                self._client = boto3.client("s3")
            except (BotoCoreError, ValueError) as e:
                logger.warning(f"Failed to create S3 client: {e}")
                self._client = None
        return self._client

    def is_configured(self) -> bool:
        """
        Check if S3 is properly configured.

        Returns:
            True if a bucket is configured and a client could be created
        """
        return bool(self.bucket_name) and self._get_client() is not None

    def key_for(self, filename: str) -> str:
        return f"{self.key_prefix}/{filename}" if self.key_prefix else filename

    def upload_file(self, path: Path, s3_key: str) -> bool:
        """
        Upload a local file to S3.

        Args:
            path: Path to the local file
            s3_key: S3 object key (path within the bucket)

        Returns:
            True if upload was successful, False otherwise
        """
        if not self.bucket_name:
            logger.warning("S3 bucket not configured, skipping upload")
            return False

        client = self._get_client()
        if client is None:
            logger.warning("S3 client not available, skipping upload")
            return False

        try:
            logger.info(f"Uploading {path} to s3://{self.bucket_name}/{s3_key}")
            client.upload_file(str(path), self.bucket_name, s3_key, ExtraArgs={"ContentType": "application/pdf"})
            logger.info(f"Upload successful: s3://{self.bucket_name}/{s3_key}")
            return True
        except (ClientError, BotoCoreError, S3UploadFailedError, OSError) as e:
            logger.error(f"S3 upload failed: {e}")
            return False

    def generate_presigned_url(self, s3_key: str, expiration: int = 3600) -> Optional[str]:
        """
        Generate a presigned URL for downloading a file from S3.

        Args:
            s3_key: S3 object key (path within the bucket)
            expiration: URL expiration time in seconds (default: 3600 = 1 hour)

        Returns:
            Presigned URL string, or None if generation fails
        """
        client = self._get_client()
        if client is None:
            logger.warning("S3 client not available")
            return None

        try:
            url = client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": s3_key},
                ExpiresIn=expiration,
            )
            logger.info(f"Generated presigned URL for {s3_key} (expires in {expiration}s)")
            return url
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate presigned URL: {e}")
            return None

    def mirror(self, path: Path, expiration: int = 3600) -> tuple[Optional[str], Optional[str]]:
        """
        Upload ``path`` under the configured prefix.

        Returns:
            ``(s3_key, presigned_url)``, or ``(None, None)`` when S3 is unavailable
            or the upload fails
        """
        if not self.is_configured():
            return None, None
        s3_key = self.key_for(path.name)
        if not self.upload_file(path, s3_key):
            return None, None
        return s3_key, self.generate_presigned_url(s3_key, expiration)
