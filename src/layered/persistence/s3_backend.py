"""S3 blob storage backend implementing IBlobStore."""

from __future__ import annotations

import boto3
from botocore.exceptions import ClientError

from layered.core.exceptions import BlobNotFoundError, BlobStoreError

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class S3BlobStore:
    """Production IBlobStore backed by S3. Keys are blob ids."""

    def __init__(self, bucket: str, region: str = "us-east-1",
                 endpoint_url: str | None = None) -> None:
        self._bucket = bucket
        self._region = region
        self._endpoint_url = endpoint_url
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._client = boto3.client("s3", **kwargs)

    def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            self._client.put_object(
                Bucket=self._bucket, Key=key, Body=data, ContentType=content_type,
            )
        except ClientError as exc:
            raise BlobStoreError(f"S3 write failed for {key!r}: {exc}") from exc

    def get(self, key: str) -> bytes:
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=key)
            return resp["Body"].read()
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in _MISSING_CODES:
                raise BlobNotFoundError(key) from exc
            raise BlobStoreError(f"S3 read failed for {key!r}: {exc}") from exc
