"""Object and directory downloads."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from storage_gateway.app.services.base import EmptyResultError
from storage_gateway.app.services.object_service import ObjectService
from storage_gateway.api.v1.deps import get_object_service
from storage_gateway.api.v1.responses import attachment_response
from storage_gateway.infra.storage.client import ObjectNotFoundError, StorageError

router = APIRouter()

_ATTACHMENT = {
    "content": {"application/octet-stream": {}},
    "description": "The file as an attachment; ranges are supported",
}


@router.get(
    "/download/directory/{path:path}",
    summary="Download directory",
    description="Pack every object under the prefix into `file.zip`.",
    response_class=Response,
    responses={200: _ATTACHMENT, 204: {"description": "The listing was not OK"}},
)
async def download_directory(
    request: Request,
    path: str,
    service: ObjectService = Depends(get_object_service),
) -> Response:
    try:
        archive = await service.download_directory(path)
    except EmptyResultError:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return attachment_response(request, archive.content, archive.filename)


@router.get(
    "/download/object/{key:path}",
    summary="Download object",
    description="Return one object as an attachment named after the key's last segment.",
    response_class=Response,
    responses={200: _ATTACHMENT, 204: {"description": "The store answered non-OK"}},
)
async def download_object(
    request: Request,
    key: str,
    service: ObjectService = Depends(get_object_service),
) -> Response:
    try:
        downloaded = await service.download_object(key)
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except EmptyResultError:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return attachment_response(request, downloaded.content, downloaded.filename)
