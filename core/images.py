"""Write path for vehicle images: slot allocation, upsert, projection sync.

Every mutating method commits the slot change and the rewritten
vehicles.image_url together, and only returns once that commit succeeded.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.errors import NotFoundError, StorageError
from core.ingestion import IngestedImage, enforce_size_limit
from core.models import ImageInfo
from core.projection import image_url, sync_projection
from core.slots import resolve_slot
from db.repository import ImageRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredImage:
    image_id: int
    slot: int
    url: str
    image_url_list: str


class ImageService:
    def __init__(self, session: AsyncSession, max_slots: int | None = None) -> None:
        self._session = session
        self._repo = ImageRepository(session)
        self._max_slots = settings.MAX_IMAGE_SLOTS if max_slots is None else max_slots

    async def ensure_owner(self, owner_key: str) -> None:
        if not await self._repo.owner_exists(owner_key):
            raise NotFoundError("Vehicle not found")

    async def list_images(self, owner_key: str) -> list[ImageInfo]:
        await self.ensure_owner(owner_key)
        rows = await self._repo.list_by_owner(owner_key)
        return [
            ImageInfo(
                id=row.id,
                sort_order=row.sort_order,
                mime_type=row.mime_type,
                url=image_url(owner_key, row.id),
            )
            for row in rows
        ]

    async def add_image(
        self, owner_key: str, image: IngestedImage, sort_order: int | None = None
    ) -> StoredImage:
        """Store ``image`` in ``sort_order`` or the first free slot."""
        await self.ensure_owner(owner_key)
        enforce_size_limit(image.byte_length)

        occupied = await self._repo.occupied_slots(owner_key)
        slot = resolve_slot(sort_order, occupied, self._max_slots)

        async with _committing(self._session, f"store image for vehicle {owner_key}"):
            row = await self._repo.put(owner_key, slot, image.mime_type, image.data)
            image_id = row.id
            projection = await sync_projection(self._session, owner_key)

        logger.info(
            "Stored image %s in slot %d for vehicle %s (%s, %d bytes)",
            image_id, slot, owner_key, image.mime_type, image.byte_length,
        )
        return StoredImage(
            image_id=image_id,
            slot=slot,
            url=image_url(owner_key, image_id),
            image_url_list=projection,
        )

    async def remove_image(self, owner_key: str, image_id: int) -> str:
        await self.ensure_owner(owner_key)
        async with _committing(self._session, f"delete image {image_id} of vehicle {owner_key}"):
            removed = await self._repo.delete_one(owner_key, image_id)
            projection = await sync_projection(self._session, owner_key)

        logger.info("Deleted %d image(s) with id %s for vehicle %s", removed, image_id, owner_key)
        return projection

    async def clear_images(self, owner_key: str) -> str:
        await self.ensure_owner(owner_key)
        async with _committing(self._session, f"clear images of vehicle {owner_key}"):
            removed = await self._repo.delete_all_for_owner(owner_key)
            projection = await sync_projection(self._session, owner_key)

        logger.info("Cleared %d image(s) for vehicle %s", removed, owner_key)
        return projection


@asynccontextmanager
async def _committing(session: AsyncSession, action: str) -> AsyncGenerator[None, None]:
    # Commit here, not in the request dependency, so failures reach the caller
    try:
        yield
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StorageError(f"Failed to {action}") from exc
    except Exception:
        await session.rollback()
        logger.error("Rolled back: failed to %s", action)
        raise
