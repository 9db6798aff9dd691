"""
S3-compatible storage (AWS S3, MinIO, R2) via boto3.

Objects are written with put_object, which overwrites, so re-publishing
the same job id after a crash simply replaces the earlier upload.

URLs: if S3_PUBLIC_BASE_URL is set (a CDN in front of the bucket) the
URL is "<base>/<key>"; otherwise "<endpoint>/<bucket>/<key>".
"""

import logging

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from storage.base import AbstractStorage
from models.errors import StorageError

logger = logging.getLogger(__name__)


class S3Storage(AbstractStorage):

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        region: str = "us-east-1",
        public_base_url: str | None = None,
        client=None,
    ):
        self._bucket = bucket
        self._endpoint_url = endpoint_url
        self._region = region
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
            config=Config(signature_version="s3v4"),
        )

    def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Upload of {key} failed: {exc}") from exc
        logger.info(f"Uploaded object to S3: key={key} bucket={self._bucket}")
        return self.url_for(key)

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Delete of {key} failed: {exc}") from exc

    def ping(self) -> None:
        try:
            self._client.head_bucket(Bucket=self._bucket)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Bucket {self._bucket} unreachable: {exc}") from exc

    def url_for(self, key: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{key}"
        if self._endpoint_url:
            return f"{self._endpoint_url.rstrip('/')}/{self._bucket}/{key}"
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"
