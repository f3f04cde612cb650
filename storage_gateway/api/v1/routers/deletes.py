"""Object and directory deletion."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from storage_gateway.app.services.object_service import ObjectService
from storage_gateway.api.v1.deps import get_object_service
from storage_gateway.infra.storage.client import ObjectNotFoundError, StorageError

router = APIRouter()


@router.delete(
    "/delete/directory/{path:path}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete directory",
    description="Delete every object under the prefix.",
)
async def delete_directory(
    path: str,
    service: ObjectService = Depends(get_object_service),
) -> Response:
    try:
        await service.delete_directory(path)
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/delete/object/{key:path}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete object",
    description="Delete one object after confirming it exists.",
)
async def delete_object(
    key: str,
    service: ObjectService = Depends(get_object_service),
) -> Response:
    try:
        deleted = await service.delete_object(key)
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Object '{key}' was not deleted")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
