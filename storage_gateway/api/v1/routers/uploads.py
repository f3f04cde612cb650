"""File uploads, single-request and multipart."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from storage_gateway.app.services.object_service import (
    BatchUploadError,
    ObjectService,
    UploadItem,
)
from storage_gateway.api.v1.deps import get_object_service
from storage_gateway.api.v1.schemas.objects import UploadBatchOut

router = APIRouter()

logger = logging.getLogger("http")


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return int(upload.size)
    stream = upload.file
    stream.seek(0, 2)
    size = stream.tell()
    stream.seek(0)
    return size


def _to_upload_items(files: Optional[List[UploadFile]]) -> list[UploadItem]:
    items: list[UploadItem] = []
    for upload in files or []:
        if not upload.filename:
            raise HTTPException(status_code=400, detail="Every file needs a filename")
        items.append(
            UploadItem(
                filename=upload.filename,
                stream=upload.file,
                size=_upload_size(upload),
                content_type=upload.content_type,
            )
        )
    return items


def _batch_failure(exc: BatchUploadError) -> HTTPException:
    logger.error(
        "upload_batch_failed failed_key=%s uploaded=%s cause=%r",
        exc.failed_key,
        len(exc.completed_keys),
        exc.cause,
    )
    return HTTPException(
        status_code=500,
        detail={
            "message": str(exc),
            "failed_key": exc.failed_key,
            "uploaded_keys": exc.completed_keys,
            "error_code": "upload_failed",
        },
    )


@router.post(
    "/upload",
    response_model=UploadBatchOut,
    summary="Upload files",
    description=(
        "Store each submitted file with one request. The key is "
        "`directoryPath/filename`, or just `filename` without a directory."
    ),
)
async def upload(
    directoryPath: Optional[str] = Form(default=None),
    files: Optional[List[UploadFile]] = File(default=None),
    service: ObjectService = Depends(get_object_service),
) -> UploadBatchOut:
    items = _to_upload_items(files)
    try:
        keys = await service.upload_files(items, directory_path=directoryPath)
    except BatchUploadError as exc:
        raise _batch_failure(exc) from exc
    return UploadBatchOut(keys=keys)


@router.post(
    "/upload/multipart",
    response_model=UploadBatchOut,
    summary="Multipart upload files",
    description=(
        "Upload each submitted file through its own multipart session. A file "
        "whose session fails is aborted at the store; files before it stay stored."
    ),
)
async def multipart_upload(
    directoryPath: Optional[str] = Form(default=None),
    files: Optional[List[UploadFile]] = File(default=None),
    service: ObjectService = Depends(get_object_service),
) -> UploadBatchOut:
    items = _to_upload_items(files)
    try:
        keys = await service.multipart_upload_files(
            items, directory_path=directoryPath
        )
    except BatchUploadError as exc:
        raise _batch_failure(exc) from exc
    return UploadBatchOut(keys=keys)
