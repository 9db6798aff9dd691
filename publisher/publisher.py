"""
Result publisher — moves a generated asset into durable storage.

publish(job_id, asset) uploads to "<prefix>/<job_id>.<ext>". The key is
derived only from the job id, so publishing the same job twice (a worker
crashed after uploading but before marking COMPLETED, and the job was
retried) overwrites the same object instead of leaking a second one.

Uploads get their own short retry loop (tenacity). If that is exhausted
the publisher raises StorageError and the worker leaves the job RUNNING;
the scheduler reclaims it later like any other transient failure, so a
storage outage gets the job retried rather than failed.

The publisher never touches the job store. State changes stay in the
worker, which is the only caller of JobStore.transition().
"""

import logging
from dataclasses import dataclass

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from generation.base import GeneratedAsset
from models.errors import StorageError
from storage.base import AbstractStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetRef:
    key: str
    url: str


class ResultPublisher:

    def __init__(
        self,
        storage: AbstractStorage,
        key_prefix: str = "generations",
        attempts: int = 3,
        retry_wait: float = 0.5,
    ):
        self._storage = storage
        self._key_prefix = key_prefix.strip("/")
        self._attempts = attempts
        self._retry_wait = retry_wait

    def asset_key(self, job_id, asset: GeneratedAsset) -> str:
        return f"{self._key_prefix}/{job_id}.{asset.extension}"

    def publish(self, job_id, asset: GeneratedAsset) -> AssetRef:
        """Upload the asset. Raises StorageError once the retries are used up."""
        key = self.asset_key(job_id, asset)
        retrying = Retrying(
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=self._retry_wait, max=10),
            retry=retry_if_exception_type(StorageError),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(f"Retrying upload of {key} (attempt {attempt.retry_state.attempt_number})")
                url = self._storage.put(key, asset.data, asset.content_type)

        logger.info(f"Published job {job_id} asset to {key} ({len(asset.data)} bytes)")
        return AssetRef(key=key, url=url)

    def discard(self, key: str) -> None:
        """Remove a published asset (record deletion). Raises StorageError."""
        self._storage.delete(key)
        logger.info(f"Deleted asset {key}")
