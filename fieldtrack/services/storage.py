"""
Cloudflare R2 object storage for product and task images.
Objects are written once and served from the public bucket domain.
"""

import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import (
    R2_ACCESS_KEY_ID,
    R2_ACCOUNT_ID,
    R2_BUCKET_NAME,
    R2_PUBLIC_URL,
    R2_SECRET_ACCESS_KEY,
)
from ..errors import UploadError

logger = logging.getLogger(__name__)


def get_r2_client():
    """Get configured boto3 client for Cloudflare R2"""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
        region_name="auto",
    )


class ObjectStorage:
    def __init__(self, client=None, bucket: str = R2_BUCKET_NAME, public_url: str = R2_PUBLIC_URL):
        self._client = client
        self.bucket = bucket
        self.public_url = public_url.rstrip("/")

    @property
    def client(self):
        if self._client is None:
            self._client = get_r2_client()
        return self._client

    def public_url_for(self, path: str) -> str:
        return f"{self.public_url}/{path.lstrip('/')}"

    def key_from_url(self, url: str) -> Optional[str]:
        """Object key for a URL this storage produced, else None."""
        prefix = f"{self.public_url}/"
        return url[len(prefix) :] if url.startswith(prefix) else None

    def put(self, data: bytes, path: str, content_type: str) -> str:
        """Store `data` at `path` and return its public URL."""
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000",
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"❌ R2 upload failed for {path}: {e}")
            raise UploadError() from e

        logger.info(f"✅ Uploaded {path} to R2 ({len(data)} bytes)")
        return self.public_url_for(path)

    def delete(self, path: str) -> None:
        """Best-effort removal; a leftover object is only wasted space."""
        try:
            self.client.delete_object(Bucket=self.bucket, Key=path)
            logger.info(f"🗑️ Deleted {path} from R2")
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"⚠️ Failed to delete {path} from R2: {e}")


_storage: Optional[ObjectStorage] = None


def get_storage() -> ObjectStorage:
    global _storage
    if _storage is None:
        _storage = ObjectStorage()
    return _storage
