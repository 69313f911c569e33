"""
S3 service for storing user documents in AWS S3
"""

import asyncio
import logging
import re
from typing import Any, Dict, Optional
from uuid import uuid4

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import get_settings
from app.core.exceptions import InvalidArgument, NotConfigured, StorageError

logger = logging.getLogger(__name__)
settings = get_settings()


class S3Service:
    """Service for S3 file storage operations."""

    def __init__(self, s3_client: Any = None, bucket_name: Optional[str] = None):
        """
        Initialize S3 client with configuration.

        Args:
            s3_client: Pre-built client (tests pass a stub here)
            bucket_name: Bucket override

        Raises:
            NotConfigured: If no client is given and AWS is not configured
        """
        if s3_client is None:
            if not settings.s3_configured:
                raise NotConfigured("Document storage is not configured")

            # Configure boto3 with retry and timeout settings
            config = Config(
                region_name=settings.aws_region,
                retries={'max_attempts': 3, 'mode': 'adaptive'},
                max_pool_connections=50
            )

            s3_client = boto3.client(
                's3',
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
                config=config
            )

        self.s3_client = s3_client
        self.bucket_name = bucket_name or settings.s3_bucket_name

    def validate_document(self, document_type: str, content_type: str, size: int) -> None:
        """
        Check a document against the configured upload rules.

        Raises:
            InvalidArgument: If type, content type or size is not accepted
        """
        if document_type not in settings.allowed_document_types:
            raise InvalidArgument(
                f"Unsupported document type. Allowed: {', '.join(settings.allowed_document_types)}"
            )

        if content_type not in settings.allowed_content_types:
            raise InvalidArgument(
                f"Unsupported file type. Allowed: {', '.join(settings.allowed_content_types)}"
            )

        if size == 0:
            raise InvalidArgument("File is empty")

        max_size_bytes = settings.max_file_size_mb * 1024 * 1024
        if size > max_size_bytes:
            raise InvalidArgument(f"File too large. Maximum size: {settings.max_file_size_mb}MB")

    async def upload_document(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        user_id: int,
        document_type: str
    ) -> Dict[str, Any]:
        """
        Upload a user document to S3.

        Args:
            content: File bytes
            filename: Original filename
            content_type: MIME type
            user_id: Owner of the document
            document_type: Folder the document belongs to

        Returns:
            Dict with s3_key, url and file_size_bytes

        Raises:
            InvalidArgument: If the document is rejected
            StorageError: If S3 upload fails
        """
        self.validate_document(document_type, content_type, len(content))

        s3_key = self._generate_s3_key(filename, user_id, document_type)

        metadata = {
            'user-id': str(user_id),
            'document-type': document_type,
            'original-filename': re.sub(r"[^\x20-\x7e]", "", filename or ""),
        }

        try:
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self.bucket_name,
                Key=s3_key,
                Body=content,
                Metadata=metadata,
                ContentType=content_type
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload failed for {s3_key}: {e}")
            raise StorageError()

        logger.info(f"Uploaded {document_type} for user {user_id}: {s3_key} ({len(content)} bytes)")

        return {
            's3_key': s3_key,
            'url': self.public_url(s3_key),
            'file_size_bytes': len(content),
        }

    async def delete_file(self, s3_key: str) -> bool:
        """
        Delete a file from S3.

        Args:
            s3_key: S3 object key

        Returns:
            bool: True if deleted
        """
        try:
            await asyncio.to_thread(
                self.s3_client.delete_object,
                Bucket=self.bucket_name,
                Key=s3_key
            )
            return True
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"S3 delete failed for {s3_key}: {e}")
            return False

    def public_url(self, s3_key: str) -> str:
        if settings.s3_public_base_url:
            return f"{settings.s3_public_base_url.rstrip('/')}/{s3_key}"
        return f"https://{self.bucket_name}.s3.{settings.aws_region}.amazonaws.com/{s3_key}"

    def _generate_s3_key(self, filename: Optional[str], user_id: int, document_type: str) -> str:
        """
        Build the object key as {document_type}/{user_id}/{generated filename}.
        """
        extension = ""
        if filename and "." in filename:
            extension = "." + re.sub(r"[^a-z0-9]", "", filename.rsplit(".", 1)[-1].lower())

        return f"{document_type}/{user_id}/{uuid4().hex}{extension}"


# Global S3 service instance
_s3_service: Optional[S3Service] = None


def get_s3_service() -> S3Service:
    """
    Get S3 service instance (singleton pattern).

    Returns:
        S3Service: S3 service instance
    """
    global _s3_service
    if _s3_service is None:
        _s3_service = S3Service()
    return _s3_service
