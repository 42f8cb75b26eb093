"""S3 (or S3-compatible) object storage for processed videos."""

import asyncio
import functools
import logging
from pathlib import Path
from typing import Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from api.errors import ObjectStorageError

logger = logging.getLogger(__name__)


class S3ObjectStorage:
    """Uploads files to a single bucket and builds their public URLs."""

    def __init__(self, bucket: str, region: str, endpoint_url: Optional[str] = None, client=None):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url or None
        self._client = client

    @property
    def client(self):
        # Built on first use so the app can start without AWS credentials
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=self.endpoint_url,
                config=Config(region_name=self.region, signature_version="s3v4"),
            )
        return self._client

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def _upload_sync(self, local_path: Path, key: str, content_type: str) -> None:
        self.client.upload_file(
            str(local_path),
            self.bucket,
            key,
            ExtraArgs={"ContentType": content_type},
        )

    async def upload_file(self, local_path: Path, key: str, content_type: str) -> None:
        """
        Upload local_path to the bucket under key with the given content type.

        boto3 is blocking, so the transfer runs in the default executor.
        Raises ObjectStorageError on any client or transport failure.
        """
        if not self.bucket:
            raise ObjectStorageError("S3 bucket is not configured")

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, functools.partial(self._upload_sync, local_path, key, content_type))
        except (BotoCoreError, ClientError, S3UploadFailedError) as e:
            logger.error(f"S3 upload failed for key {key}: {e}")
            raise ObjectStorageError(f"S3 upload failed for key {key}") from e
        logger.info(f"Uploaded {key} to bucket {self.bucket}")
