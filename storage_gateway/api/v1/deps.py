from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, Header, HTTPException

from storage_gateway.app.services.object_service import ObjectService
from storage_gateway.common.config import get_settings
from storage_gateway.infra.storage.client import StorageClient
from storage_gateway.infra.storage.s3_client import S3StorageClient

logger = logging.getLogger("http")


class StorageBackendNotConfiguredError(Exception):
    """Raised when the storage backend is not properly configured."""


@lru_cache(maxsize=1)
def get_storage_client() -> StorageClient:
    """Build the process-wide store handle on first use and reuse it afterwards."""
    settings = get_settings()
    if not settings.S3_BUCKET:
        raise StorageBackendNotConfiguredError("S3_BUCKET is required")
    if not settings.S3_ACCESS_KEY_ID or not settings.S3_SECRET_ACCESS_KEY:
        raise StorageBackendNotConfiguredError(
            "S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY are required"
        )
    return S3StorageClient(settings=settings)


def get_storage() -> StorageClient:
    try:
        return get_storage_client()
    except StorageBackendNotConfiguredError as exc:
        logger.error("storage_not_configured detail=%s", exc)
        raise HTTPException(
            status_code=503,
            detail={
                "message": f"Object storage is not configured: {exc}",
                "error_code": "storage_not_configured",
            },
        ) from exc


def get_object_service(storage: StorageClient = Depends(get_storage)) -> ObjectService:
    return ObjectService(storage, settings=get_settings())


def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
    settings = get_settings()
    if settings.API_KEY_ENABLED:
        if not x_api_key or not settings.API_KEY or x_api_key != settings.API_KEY:
            raise HTTPException(status_code=401, detail="Invalid API key")
