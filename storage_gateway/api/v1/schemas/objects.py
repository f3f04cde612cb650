"""Pydantic schemas for the object endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class UploadBatchOut(BaseModel):
    """Keys written by an upload request, in submission order."""

    keys: list[str] = Field(default_factory=list)
