from .base import BaseService, EmptyResultError, ServiceError
from .upload_sequencer import (
    InvalidSessionStateError,
    UploadSequencer,
    UploadSession,
    UploadSessionState,
    UploadStreamError,
)
from .object_service import (
    BatchUploadError,
    DownloadedFile,
    ObjectService,
    UploadItem,
    build_object_key,
    key_basename,
)

__all__ = [
    "BaseService",
    "ServiceError",
    "EmptyResultError",
    "UploadSequencer",
    "UploadSession",
    "UploadSessionState",
    "InvalidSessionStateError",
    "UploadStreamError",
    "ObjectService",
    "UploadItem",
    "DownloadedFile",
    "BatchUploadError",
    "build_object_key",
    "key_basename",
]
