"""
Storage factory — maps STORAGE_BACKEND to a backend instance.
"""

from config.settings import Settings
from storage.base import AbstractStorage
from storage.local import LocalStorage
from storage.s3 import S3Storage


def create_storage(cfg: Settings) -> AbstractStorage:
    if cfg.STORAGE_BACKEND == "s3":
        return S3Storage(
            bucket=cfg.S3_BUCKET_NAME,
            endpoint_url=cfg.S3_ENDPOINT_URL,
            access_key_id=cfg.S3_ACCESS_KEY_ID,
            secret_access_key=cfg.S3_SECRET_ACCESS_KEY,
            region=cfg.S3_REGION,
            public_base_url=cfg.S3_PUBLIC_BASE_URL,
        )
    if cfg.STORAGE_BACKEND == "local":
        return LocalStorage(root=cfg.LOCAL_STORAGE_ROOT, base_url=cfg.LOCAL_STORAGE_BASE_URL)
    raise ValueError(f"Unknown storage backend: '{cfg.STORAGE_BACKEND}'. Available: ['s3', 'local']")
