"""Presigned URL issuance."""

from __future__ import annotations

from urllib.parse import unquote

from fastapi import APIRouter, Depends, Form, HTTPException

from storage_gateway.app.services.object_service import ObjectService
from storage_gateway.api.v1.deps import get_object_service
from storage_gateway.infra.storage.client import StorageError

router = APIRouter()


@router.get(
    "/presignedUrl/{key:path}",
    response_model=str,
    summary="Presign download",
    description="Issue a short-lived URL that allows a GET of one object.",
)
async def get_download_presigned_url(
    key: str,
    service: ObjectService = Depends(get_object_service),
) -> str:
    try:
        return await service.presign_download_url(key)
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.post(
    "/presignedUrl",
    response_model=str,
    summary="Presign upload",
    description="Issue a short-lived URL that allows a PUT of one object.",
)
async def get_upload_presigned_url(
    key: str = Form(..., min_length=1),
    service: ObjectService = Depends(get_object_service),
) -> str:
    try:
        return await service.presign_upload_url(unquote(key))
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
