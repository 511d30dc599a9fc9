# slowpost/services/storage/object_store.py
"""
S3 object store client for letter assets (images/, videos/, audio/)
"""

import asyncio
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from slowpost.config import Settings
from slowpost.utils.logger import logger

OBJECT_STORE_ERRORS = (BotoCoreError, ClientError)


class ObjectStore:
    def __init__(self, settings: Settings, client=None):
        self.bucket = settings.s3_bucket
        self.region = settings.s3_region
        self.endpoint_url = settings.s3_endpoint_url
        self.public_base_url = settings.s3_public_base_url
        self._client = client
        self._settings = settings

    @property
    def client(self):
        """Lazy boto3 client."""
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.region,
                endpoint_url=self.endpoint_url,
                aws_access_key_id=self._settings.aws_access_key_id,
                aws_secret_access_key=self._settings.aws_secret_access_key,
            )
        return self._client

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def put(self, key: str, data: bytes, content_type: Optional[str]) -> str:
        """Upload one object and return its durable URL. Raises botocore errors."""
        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )
        return self.public_url(key)

    async def delete(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
            return True
        except OBJECT_STORE_ERRORS as e:
            logger.warning(f" Could not delete object {key}: {e}")
            return False

    async def check_bucket(self) -> bool:
        try:
            await asyncio.to_thread(self.client.head_bucket, Bucket=self.bucket)
            return True
        except OBJECT_STORE_ERRORS as e:
            logger.warning(f" Object store check failed: {e}")
            return False
