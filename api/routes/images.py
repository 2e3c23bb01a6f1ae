"""Vehicle image endpoints: list, upload/fetch, batch fetch, delete, serve"""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, Header, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from api.auth import AdminAuth, require_admin_write_access
from api.dependencies import get_http_client
from core.config import settings
from core.delivery import CACHE_CONTROL, serve
from core.errors import ImageServiceError, ImageValidationError, NotFoundError
from core.images import ImageService
from core.ingestion import IngestedImage, fetch_remote_image, ingest_upload
from core.models import (
    BatchImageResponse,
    BatchItemResult,
    ImageListResponse,
    ImageUploadResponse,
    ImageUrlListResponse,
)
from core.projection import read_projection
from core.slots import parse_sort_order
from core.validation import validate_batch_request, validate_remote_image_request
from db.session import get_session_dep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["images"])

OwnerQuery = Query(..., min_length=1, description="Owning vehicle id")


def _parse_image_id(raw: str, missing: type[ImageServiceError]) -> int:
    try:
        return int(raw)
    except ValueError:
        raise missing("Invalid imageId", field="imageId") from None


async def _read_upload(request: Request) -> tuple[IngestedImage, object]:
    form = await request.form()
    file = form.get("file")
    if not isinstance(file, UploadFile):
        raise ImageValidationError("Missing image file", field="file")

    # One byte past the limit is enough to know it is too large
    data = await file.read(settings.MAX_IMAGE_BYTES + 1)
    return ingest_upload(data, file.content_type), form.get("sortOrder")


async def _read_remote(request: Request, client: httpx.AsyncClient) -> tuple[IngestedImage, object]:
    try:
        body = await request.json()
    except ValueError:
        raise ImageValidationError("Request body must be valid JSON") from None

    remote = validate_remote_image_request(body)
    image = await fetch_remote_image(remote.source_url, client)
    return image, remote.sort_order


@router.get("", response_model=ImageListResponse)
async def list_images(
    owner: str = OwnerQuery,
    session: AsyncSession = Depends(get_session_dep),
) -> ImageListResponse:
    images = await ImageService(session).list_images(owner)
    return ImageListResponse(images=images)


@router.post("", response_model=ImageUploadResponse)
async def add_image(
    request: Request,
    owner: str = OwnerQuery,
    session: AsyncSession = Depends(get_session_dep),
    client: httpx.AsyncClient = Depends(get_http_client),
    _admin: AdminAuth = Depends(require_admin_write_access),
) -> ImageUploadResponse:
    service = ImageService(session)
    await service.ensure_owner(owner)

    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" in content_type:
        image, raw_sort_order = await _read_upload(request)
    else:
        image, raw_sort_order = await _read_remote(request, client)

    stored = await service.add_image(owner, image, parse_sort_order(raw_sort_order))
    return ImageUploadResponse(
        image_id=stored.image_id,
        url=stored.url,
        image_url_list=stored.image_url_list,
    )


@router.post("/batch", response_model=BatchImageResponse)
async def add_images_from_urls(
    body: dict,
    owner: str = OwnerQuery,
    session: AsyncSession = Depends(get_session_dep),
    client: httpx.AsyncClient = Depends(get_http_client),
    _admin: AdminAuth = Depends(require_admin_write_access),
) -> BatchImageResponse:
    batch = validate_batch_request(body)
    service = ImageService(session)
    await service.ensure_owner(owner)

    # Sequential: each item allocates against the slots the previous one left
    results: list[BatchItemResult] = []
    image_url_list: str | None = None
    for source_url in batch.source_urls:
        try:
            image = await fetch_remote_image(source_url, client)
            stored = await service.add_image(owner, image)
        except ImageServiceError as exc:
            logger.warning("Batch item %s for vehicle %s failed: %s", source_url, owner, exc.message)
            results.append(BatchItemResult(
                source_url=source_url,
                success=False,
                error=exc.message,
                status=exc.status_code,
            ))
            continue

        image_url_list = stored.image_url_list
        results.append(BatchItemResult(
            source_url=source_url,
            success=True,
            image_id=stored.image_id,
            url=stored.url,
        ))

    if image_url_list is None:
        image_url_list = await read_projection(session, owner)

    return BatchImageResponse(
        success=all(r.success for r in results),
        results=results,
        image_url_list=image_url_list,
    )


@router.delete("", response_model=ImageUrlListResponse)
async def clear_images(
    owner: str = OwnerQuery,
    session: AsyncSession = Depends(get_session_dep),
    _admin: AdminAuth = Depends(require_admin_write_access),
) -> ImageUrlListResponse:
    projection = await ImageService(session).clear_images(owner)
    return ImageUrlListResponse(image_url_list=projection)


@router.delete("/{image_id}", response_model=ImageUrlListResponse)
async def delete_image(
    image_id: str,
    owner: str = OwnerQuery,
    session: AsyncSession = Depends(get_session_dep),
    _admin: AdminAuth = Depends(require_admin_write_access),
) -> ImageUrlListResponse:
    parsed_id = _parse_image_id(image_id, ImageValidationError)
    projection = await ImageService(session).remove_image(owner, parsed_id)
    return ImageUrlListResponse(image_url_list=projection)


@router.get("/{image_id}")
async def get_image(
    image_id: str,
    owner: str = OwnerQuery,
    if_none_match: str | None = Header(None),
    session: AsyncSession = Depends(get_session_dep),
) -> Response:
    parsed_id = _parse_image_id(image_id, NotFoundError)
    delivery = await serve(session, owner, parsed_id, if_none_match)

    headers = {"ETag": delivery.etag, "Cache-Control": CACHE_CONTROL}
    if delivery.not_modified:
        return Response(status_code=304, headers=headers)
    return Response(content=delivery.data, media_type=delivery.mime_type, headers=headers)

