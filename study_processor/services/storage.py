"""
Materials bucket access (S3).

Only download is needed here: uploads happen client-side, the processor reads
the stored object back when a material still needs extraction.
"""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import unquote, urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from study_processor.core.errors import ExtractionError

logger = logging.getLogger(__name__)


def object_key(file_url: str, bucket: str) -> str:
    """
    Accepts a bare key ("u1/notes.pdf"), an s3:// URI or an https URL and
    returns the key inside `bucket`.
    """
    raw = (file_url or "").strip()
    parsed = urlparse(raw)
    if parsed.scheme in ("http", "https", "s3"):
        path = unquote(parsed.path)
        if parsed.scheme == "s3" and parsed.netloc != bucket:
            path = f"{parsed.netloc}/{path.lstrip('/')}"
    else:
        path = raw
    path = path.lstrip("/")
    prefix = f"{bucket}/"
    if path.startswith(prefix):
        path = path[len(prefix):]
    return path


def file_extension(file_url: str) -> str:
    path = urlparse((file_url or "").strip()).path or file_url or ""
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


class MaterialsBucket:
    def __init__(self, bucket: str, region: str, client=None) -> None:
        self.bucket = bucket
        self.region = region
        self._s3 = client

    def _client(self):
        if self._s3 is None:
            self._s3 = boto3.client("s3", region_name=self.region)
        return self._s3

    def download(self, file_url: str) -> bytes:
        key = object_key(file_url, self.bucket)
        try:
            obj = self._client().get_object(Bucket=self.bucket, Key=key)
            data = obj["Body"].read()
        except (ClientError, BotoCoreError) as e:
            logger.error("download failed for %s/%s: %s", self.bucket, key, e)
            raise ExtractionError(
                f"Failed to download file: {e}",
                error_code="DOWNLOAD_FAILED",
                context={"bucket": self.bucket, "key": key},
            ) from e
        logger.info("downloaded %s/%s (%d bytes)", self.bucket, key, len(data))
        return data

    async def download_async(self, file_url: str) -> bytes:
        """Async wrapper: runs the sync download in a thread."""
        return await asyncio.to_thread(self.download, file_url)
