"""Keeps vehicles.image_url in step with the vehicle's image slots."""

from __future__ import annotations

from urllib.parse import quote

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.errors import StorageError
from db.models import VehicleImageRow, VehicleRow

URL_SEPARATOR = "|"


def image_url(owner_key: str, image_id: int) -> str:
    return f"{settings.PUBLIC_API_PREFIX}/images/{image_id}?owner={quote(owner_key, safe='')}"


def build_projection(owner_key: str, image_ids: list[int]) -> str:
    return URL_SEPARATOR.join(image_url(owner_key, image_id) for image_id in image_ids)


async def sync_projection(session: AsyncSession, owner_key: str) -> str:
    """Rewrite the vehicle's image_url from its current slots.

    Returns the new projection, "" when the vehicle has no images (stored as
    NULL). Must run inside the same transaction as the slot mutation.
    """
    try:
        result = await session.execute(
            select(VehicleImageRow.id)
            .where(VehicleImageRow.vehicle_id == owner_key)
            .order_by(VehicleImageRow.sort_order)
        )
        projection = build_projection(owner_key, list(result.scalars().all()))

        await session.execute(
            update(VehicleRow)
            .where(VehicleRow.id == owner_key)
            .values(image_url=projection or None)
        )
    except SQLAlchemyError as exc:
        raise StorageError(f"Failed to sync image_url for vehicle {owner_key}") from exc

    return projection


async def read_projection(session: AsyncSession, owner_key: str) -> str:
    try:
        result = await session.execute(
            select(VehicleRow.image_url).where(VehicleRow.id == owner_key)
        )
    except SQLAlchemyError as exc:
        raise StorageError(f"Failed to read image_url for vehicle {owner_key}") from exc
    return result.scalar_one_or_none() or ""
