"""Hero image endpoints: serve (current or legacy) and upload"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from api.auth import AdminAuth, require_admin_write_access
from core.config import settings
from core.delivery import CACHE_CONTROL, conditional
from core.errors import ImageValidationError, NotFoundError
from core.hero import resolve_hero_image, store_hero_image
from core.ingestion import ingest_upload
from core.models import HeroImageUploadResponse
from db.session import get_session_dep

router = APIRouter(prefix="/hero-image", tags=["hero-image"])


@router.get("")
async def get_hero_image(
    if_none_match: str | None = Header(None),
    session: AsyncSession = Depends(get_session_dep),
) -> Response:
    hero = await resolve_hero_image(session)
    if hero is None:
        raise NotFoundError("Hero image not found")

    delivery = conditional(hero.etag, hero.data, hero.mime_type, if_none_match)
    headers = {"ETag": delivery.etag, "Cache-Control": CACHE_CONTROL}
    if delivery.not_modified:
        return Response(status_code=304, headers=headers)
    return Response(content=delivery.data, media_type=delivery.mime_type, headers=headers)


@router.post("", response_model=HeroImageUploadResponse)
async def upload_hero_image(
    request: Request,
    session: AsyncSession = Depends(get_session_dep),
    _admin: AdminAuth = Depends(require_admin_write_access),
) -> HeroImageUploadResponse:
    if "multipart/form-data" not in request.headers.get("content-type", ""):
        raise ImageValidationError("Expected multipart/form-data with a file field", field="file")

    form = await request.form()
    file = form.get("file")
    if not isinstance(file, UploadFile):
        raise ImageValidationError("Missing image file", field="file")

    data = await file.read(settings.MAX_IMAGE_BYTES + 1)
    image = ingest_upload(data, file.content_type)
    image_url = await store_hero_image(session, image)
    return HeroImageUploadResponse(image_url=image_url)
