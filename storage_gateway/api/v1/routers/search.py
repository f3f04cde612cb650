"""Listing and metadata lookups."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from storage_gateway.app.services.base import EmptyResultError
from storage_gateway.app.services.object_service import ObjectService
from storage_gateway.api.v1.deps import get_object_service
from storage_gateway.infra.storage.client import ObjectNotFoundError, StorageError

router = APIRouter()


@router.get(
    "/search/directory/{path:path}",
    response_model=List[str],
    summary="List directory",
    description="List the keys of every object whose key starts with the given prefix.",
    responses={204: {"description": "No object matches the prefix"}},
)
async def search_directory(
    path: str,
    service: ObjectService = Depends(get_object_service),
):
    try:
        keys = await service.list_keys(path)
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except EmptyResultError:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    if not keys:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return keys


@router.get(
    "/search/object/{key:path}",
    response_model=str,
    summary="Get object",
    description="Confirm that an object exists and return its key.",
    responses={204: {"description": "The store answered with a non-OK status"}},
)
async def search_object(
    key: str,
    service: ObjectService = Depends(get_object_service),
):
    try:
        return await service.get_object_key(key)
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except EmptyResultError:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
