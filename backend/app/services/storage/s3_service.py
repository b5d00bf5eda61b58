"""S3-compatible object storage service for generated images"""
import logging
from typing import Optional
from urllib.parse import quote, urlparse
from botocore.exceptions import ClientError, BotoCoreError
import boto3
from botocore.config import Config
import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


def _encode_object_key_for_url(object_key: str) -> str:
    """URL-encode each path segment of an object key, keeping '/' separators"""
    if not object_key:
        return ""
    return '/'.join(quote(segment, safe='') for segment in object_key.split('/'))


class S3Service:
    """Service for interacting with S3-compatible object storage"""

    def __init__(self):
        """Initialize S3 service with configuration from settings"""
        if not settings.S3_BUCKET_NAME:
            raise ValueError("S3_BUCKET_NAME is not set. Set S3_BUCKET_NAME environment variable.")

        self.bucket = settings.S3_BUCKET_NAME
        self.endpoint_url = settings.S3_ENDPOINT_URL or None
        self.timeout = settings.EXTERNAL_HTTP_TIMEOUT_SECONDS

        client_kwargs = {
            'region_name': settings.AWS_REGION,
            'config': Config(
                signature_version='s3v4',
                connect_timeout=self.timeout,
                read_timeout=self.timeout,
                retries={'max_attempts': 2, 'mode': 'standard'},
            ),
        }
        if self.endpoint_url:
            client_kwargs['endpoint_url'] = self.endpoint_url
        if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
            client_kwargs['aws_access_key_id'] = settings.AWS_ACCESS_KEY_ID
            client_kwargs['aws_secret_access_key'] = settings.AWS_SECRET_ACCESS_KEY

        self.s3_client = boto3.client('s3', **client_kwargs)
        logger.info(f"S3Service initialized for bucket: {self.bucket}")

    @property
    def public_base_url(self) -> str:
        if settings.S3_PUBLIC_URL:
            return settings.S3_PUBLIC_URL.rstrip('/')
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}"
        return f"https://{self.bucket}.s3.{settings.AWS_REGION}.amazonaws.com"

    def public_url(self, object_key: str) -> str:
        return f"{self.public_base_url}/{_encode_object_key_for_url(object_key)}"

    def object_key_from_url(self, url: str) -> Optional[str]:
        """Return the object key if the URL points into our bucket, else None"""
        base = self.public_base_url + '/'
        if url.startswith(base):
            return url[len(base):]
        return None

    def put(self, data: bytes, key: str, content_type: str) -> str:
        """Store bytes under key and return the public URL

        Raises:
            ValueError: If key is empty
            ClientError/BotoCoreError: On storage failure (caller decides whether to retry)
        """
        if not key:
            raise ValueError("key cannot be empty")

        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {key} to S3: {e}", exc_info=True)
            raise

        logger.info(f"Uploaded {len(data)} bytes to S3 as {key}")
        return self.public_url(key)

    def get(self, url: str) -> bytes:
        """Fetch an object by URL. Objects in our bucket are read through the API, anything else over HTTP."""
        object_key = self.object_key_from_url(url)
        if object_key is not None:
            try:
                response = self.s3_client.get_object(Bucket=self.bucket, Key=object_key)
                return response['Body'].read()
            except ClientError as e:
                error_code = e.response.get('Error', {}).get('Code', 'Unknown')
                if error_code == 'NoSuchKey':
                    logger.warning(f"Object not found in S3: {object_key}")
                else:
                    logger.error(f"Failed to download {object_key} from S3: {e}", exc_info=True)
                raise

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"Unsupported URL scheme: {parsed.scheme or 'none'}")

        response = httpx.get(url, timeout=self.timeout, follow_redirects=True)
        response.raise_for_status()
        return response.content


# Global S3 service instance (lazy initialization)
_s3_service: Optional[S3Service] = None


def get_storage_service() -> S3Service:
    """Get or create S3 service instance (lazy initialization)

    Raises:
        ValueError: If S3 configuration is missing
    """
    global _s3_service
    if _s3_service is None:
        _s3_service = S3Service()
    return _s3_service
