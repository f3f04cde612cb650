from __future__ import annotations

import logging
import time
from typing import Any, Callable, TypeVar

from starlette.concurrency import run_in_threadpool

from storage_gateway.common.config import Settings
from storage_gateway.infra.observability.metrics import STORAGE_LATENCY, STORAGE_REQUESTS
from storage_gateway.infra.storage.client import ObjectNotFoundError, StorageClient

T = TypeVar("T")

logger = logging.getLogger("storage")


class ServiceError(Exception):
    """Base class for application service level exceptions."""


class EmptyResultError(ServiceError):
    """Raised when the store answered without error but with a non-OK result."""


class BaseService:
    """Holds the shared storage handle and runs store calls off the event loop."""

    def __init__(self, storage: StorageClient, *, settings: Settings):
        self._storage = storage
        self._settings = settings

    @property
    def storage(self) -> StorageClient:
        return self._storage

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def bucket(self) -> str:
        return self._settings.S3_BUCKET

    async def _call(self, operation: str, func: Callable[..., T], **kwargs: Any) -> T:
        """Await one blocking store call in the threadpool, timing and counting it."""
        start = time.perf_counter()
        outcome = "ok"
        try:
            return await run_in_threadpool(func, **kwargs)
        except ObjectNotFoundError:
            outcome = "not_found"
            raise
        except Exception:
            outcome = "error"
            raise
        finally:
            elapsed = time.perf_counter() - start
            STORAGE_REQUESTS.labels(operation, outcome).inc()
            STORAGE_LATENCY.labels(operation).observe(elapsed)
            logger.debug(
                "storage_call operation=%s outcome=%s duration_ms=%.3f",
                operation,
                outcome,
                elapsed * 1000,
                extra={
                    "extra": {
                        "operation": operation,
                        "outcome": outcome,
                        "duration_ms": round(elapsed * 1000, 3),
                    }
                },
            )
