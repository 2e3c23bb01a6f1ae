"""Pydantic models for the image endpoints (camelCase on the wire)"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.config import settings


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Vehicle images
# ---------------------------------------------------------------------------

class ImageInfo(WireModel):
    id: int
    sort_order: int
    mime_type: str
    url: str


class ImageListResponse(WireModel):
    images: list[ImageInfo] = Field(default_factory=list)


class RemoteImageRequest(WireModel):
    source_url: str = Field(..., min_length=1)
    # Coerced and range-checked by core.slots
    sort_order: Any = None


class ImageUploadResponse(WireModel):
    success: bool = True
    image_id: int
    url: str
    image_url_list: str


class ImageUrlListResponse(WireModel):
    success: bool = True
    image_url_list: str


# ---------------------------------------------------------------------------
# Batch ingestion
# ---------------------------------------------------------------------------

class BatchImageRequest(WireModel):
    source_urls: list[str] = Field(..., min_length=1, max_length=settings.MAX_IMAGE_SLOTS)


class BatchItemResult(WireModel):
    source_url: str
    success: bool
    image_id: int | None = None
    url: str | None = None
    error: str | None = None
    status: int = 200


class BatchImageResponse(WireModel):
    success: bool
    results: list[BatchItemResult] = Field(default_factory=list)
    image_url_list: str


# ---------------------------------------------------------------------------
# Hero image
# ---------------------------------------------------------------------------

class HeroImageUploadResponse(WireModel):
    success: bool = True
    image_url: str
