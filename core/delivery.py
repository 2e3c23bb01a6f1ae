"""Conditional delivery of stored images (weak ETags + 304)."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError
from db.repository import ImageRepository

# Images are per-vehicle and can be overwritten in place, so never public/immutable
CACHE_CONTROL = "private, max-age=0, must-revalidate"


@dataclass(frozen=True)
class Delivery:
    etag: str
    not_modified: bool = False
    data: bytes = b""
    mime_type: str = ""


def image_etag(image_id: int, updated_at_ms: int, byte_length: int) -> str:
    return f'W/"{image_id}:{updated_at_ms}:{byte_length}"'


def etag_matches(if_none_match: str | None, etag: str) -> bool:
    if not if_none_match:
        return False
    candidates = [c.strip() for c in if_none_match.split(",")]
    return "*" in candidates or etag in candidates


def conditional(etag: str, data: bytes, mime_type: str, if_none_match: str | None) -> Delivery:
    if etag_matches(if_none_match, etag):
        return Delivery(etag=etag, not_modified=True)
    return Delivery(etag=etag, data=data, mime_type=mime_type)


async def serve(
    session: AsyncSession,
    owner_key: str,
    image_id: int,
    if_none_match: str | None = None,
) -> Delivery:
    row = await ImageRepository(session).get(owner_key, image_id)
    if row is None:
        raise NotFoundError("Image not found")

    data = bytes(row.image_data or b"")
    etag = image_etag(row.id, row.updated_at_ms, len(data))
    return conditional(etag, data, row.mime_type or "image/jpeg", if_none_match)
