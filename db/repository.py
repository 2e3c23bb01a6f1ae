"""Blob repository for per-vehicle image slots.

Rows are keyed by (vehicle_id, sort_order). ``put`` is an upsert: writing an
occupied slot overwrites the bytes in place and bumps ``updated_at_ms``. The
repository never touches the vehicle's ``image_url`` projection; callers run
``core.projection.sync_projection`` after every mutation.
"""

from __future__ import annotations

import time

from sqlalchemy import case, delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import StorageError
from db.models import VehicleImageRow, VehicleRow

_NATIVE_UPSERT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _now_ms() -> int:
    return int(time.time() * 1000)


def _bumped_updated_at(now_ms):
    # Strictly increasing per row, even for two writes in the same millisecond
    return case(
        (now_ms > VehicleImageRow.updated_at_ms, now_ms),
        else_=VehicleImageRow.updated_at_ms + 1,
    )


class ImageRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def owner_exists(self, owner_key: str) -> bool:
        try:
            result = await self._session.execute(
                select(VehicleRow.id).where(VehicleRow.id == owner_key).limit(1)
            )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to look up vehicle {owner_key}") from exc
        return result.scalar_one_or_none() is not None

    async def put(
        self, owner_key: str, slot: int, mime_type: str, data: bytes
    ) -> VehicleImageRow:
        """Insert or overwrite the image stored in ``slot`` for ``owner_key``."""
        now_ms = _now_ms()
        values = {
            "vehicle_id": owner_key,
            "sort_order": slot,
            "mime_type": mime_type,
            "image_data": data,
            "created_at_ms": now_ms,
            "updated_at_ms": now_ms,
        }
        try:
            insert_fn = _NATIVE_UPSERT.get(self._session.get_bind().dialect.name)
            if insert_fn is not None:
                stmt = insert_fn(VehicleImageRow).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["vehicle_id", "sort_order"],
                    set_={
                        "mime_type": stmt.excluded.mime_type,
                        "image_data": stmt.excluded.image_data,
                        "updated_at_ms": _bumped_updated_at(stmt.excluded.updated_at_ms),
                    },
                )
                await self._session.execute(stmt)
            else:
                await self._put_portable(values)

            # Bypass the identity map so an overwritten row is re-read
            result = await self._session.execute(
                select(VehicleImageRow)
                .where(
                    VehicleImageRow.vehicle_id == owner_key,
                    VehicleImageRow.sort_order == slot,
                )
                .execution_options(populate_existing=True)
            )
            return result.scalar_one()
        except SQLAlchemyError as exc:
            raise StorageError(
                f"Failed to store image in slot {slot} for vehicle {owner_key}"
            ) from exc

    async def _put_portable(self, values: dict) -> None:
        # Select-then-write for dialects without ON CONFLICT
        result = await self._session.execute(
            update(VehicleImageRow)
            .where(
                VehicleImageRow.vehicle_id == values["vehicle_id"],
                VehicleImageRow.sort_order == values["sort_order"],
            )
            .values(
                mime_type=values["mime_type"],
                image_data=values["image_data"],
                updated_at_ms=_bumped_updated_at(values["updated_at_ms"]),
            )
        )
        if result.rowcount == 0:
            self._session.add(VehicleImageRow(**values))
            await self._session.flush()

    async def get(self, owner_key: str, image_id: int) -> VehicleImageRow | None:
        try:
            result = await self._session.execute(
                select(VehicleImageRow).where(
                    VehicleImageRow.id == image_id,
                    VehicleImageRow.vehicle_id == owner_key,
                )
            )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read image {image_id}") from exc
        return result.scalar_one_or_none()

    async def get_by_id(self, image_id: int) -> VehicleImageRow | None:
        try:
            return await self._session.get(VehicleImageRow, image_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read image {image_id}") from exc

    async def list_by_owner(self, owner_key: str) -> list[VehicleImageRow]:
        try:
            result = await self._session.execute(
                select(VehicleImageRow)
                .where(VehicleImageRow.vehicle_id == owner_key)
                .order_by(VehicleImageRow.sort_order)
            )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to list images for vehicle {owner_key}") from exc
        return list(result.scalars().all())

    async def occupied_slots(self, owner_key: str) -> set[int]:
        try:
            result = await self._session.execute(
                select(VehicleImageRow.sort_order).where(
                    VehicleImageRow.vehicle_id == owner_key
                )
            )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read slots for vehicle {owner_key}") from exc
        return {int(slot) for slot in result.scalars().all()}

    async def delete_one(self, owner_key: str, image_id: int) -> int:
        # Deleting a missing row is not an error; the count tells callers what happened
        try:
            result = await self._session.execute(
                delete(VehicleImageRow).where(
                    VehicleImageRow.id == image_id,
                    VehicleImageRow.vehicle_id == owner_key,
                )
            )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to delete image {image_id}") from exc
        return result.rowcount or 0

    async def delete_all_for_owner(self, owner_key: str) -> int:
        try:
            result = await self._session.execute(
                delete(VehicleImageRow).where(VehicleImageRow.vehicle_id == owner_key)
            )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to clear images for vehicle {owner_key}") from exc
        return result.rowcount or 0
