"""Tests for storage layer: image repository + DB models"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conftest import JPEG_BYTES, PNG_BYTES
from core.delivery import image_etag
from core.errors import StorageError
from core.projection import read_projection, sync_projection
from db.models import HeroImageRow, SettingRow, VehicleImageRow, VehicleRow
from db.repository import ImageRepository
from db.session import get_session_dep


@pytest.fixture
def repo(db_session: AsyncSession) -> ImageRepository:
    return ImageRepository(db_session)


# ---------------------------------------------------------------------------
# Image repository tests
# ---------------------------------------------------------------------------


class TestImageRepository:
    @pytest.mark.asyncio
    async def test_put_get_roundtrip(self, repo: ImageRepository, vehicle: str):
        row = await repo.put(vehicle, 0, "image/png", PNG_BYTES)

        fetched = await repo.get(vehicle, row.id)
        assert fetched is not None
        assert fetched.image_data == PNG_BYTES
        assert fetched.mime_type == "image/png"
        assert fetched.sort_order == 0

    @pytest.mark.asyncio
    async def test_put_same_slot_upserts(self, repo: ImageRepository, vehicle: str):
        first = await repo.put(vehicle, 1, "image/png", PNG_BYTES)
        first_id, first_updated = first.id, first.updated_at_ms

        second = await repo.put(vehicle, 1, "image/jpeg", JPEG_BYTES)

        assert second.id == first_id
        assert second.mime_type == "image/jpeg"
        assert second.image_data == JPEG_BYTES
        assert second.updated_at_ms >= first_updated
        assert len(await repo.list_by_owner(vehicle)) == 1

    @pytest.mark.asyncio
    async def test_overwrites_in_same_millisecond_get_distinct_etags(
        self, repo: ImageRepository, vehicle: str, monkeypatch
    ):
        monkeypatch.setattr("db.repository._now_ms", lambda: 1_700_000_000_000)

        first = await repo.put(vehicle, 0, "image/png", PNG_BYTES)
        first_etag = image_etag(first.id, first.updated_at_ms, len(first.image_data))
        second = await repo.put(vehicle, 0, "image/png", b"\x01" * len(PNG_BYTES))
        third = await repo.put(vehicle, 0, "image/png", PNG_BYTES)

        assert second.updated_at_ms == 1_700_000_000_001
        assert third.updated_at_ms == 1_700_000_000_002
        assert image_etag(second.id, second.updated_at_ms, len(second.image_data)) != first_etag

    @pytest.mark.asyncio
    async def test_overwrite_takes_clock_when_ahead(
        self, repo: ImageRepository, vehicle: str, monkeypatch
    ):
        monkeypatch.setattr("db.repository._now_ms", lambda: 1000)
        await repo.put(vehicle, 0, "image/png", PNG_BYTES)

        monkeypatch.setattr("db.repository._now_ms", lambda: 5000)
        row = await repo.put(vehicle, 0, "image/jpeg", JPEG_BYTES)
        assert row.updated_at_ms == 5000

    @pytest.mark.asyncio
    async def test_list_by_owner_orders_by_slot(self, repo: ImageRepository, vehicle: str):
        for slot in (3, 0, 4):
            await repo.put(vehicle, slot, "image/png", PNG_BYTES)

        rows = await repo.list_by_owner(vehicle)
        assert [r.sort_order for r in rows] == [0, 3, 4]
        assert await repo.occupied_slots(vehicle) == {0, 3, 4}

    @pytest.mark.asyncio
    async def test_get_scoped_to_owner(self, repo: ImageRepository, db_session: AsyncSession, vehicle: str):
        db_session.add(VehicleRow(id="veh-2", created_at_ms=1, updated_at_ms=1))
        row = await repo.put(vehicle, 0, "image/png", PNG_BYTES)

        assert await repo.get("veh-2", row.id) is None
        assert (await repo.get_by_id(row.id)) is not None

    @pytest.mark.asyncio
    async def test_delete_one_is_idempotent(self, repo: ImageRepository, vehicle: str):
        row = await repo.put(vehicle, 0, "image/png", PNG_BYTES)

        assert await repo.delete_one(vehicle, row.id) == 1
        assert await repo.delete_one(vehicle, row.id) == 0
        assert await repo.get(vehicle, row.id) is None

    @pytest.mark.asyncio
    async def test_delete_all_for_owner(self, repo: ImageRepository, vehicle: str):
        for slot in range(3):
            await repo.put(vehicle, slot, "image/png", PNG_BYTES)

        assert await repo.delete_all_for_owner(vehicle) == 3
        assert await repo.delete_all_for_owner(vehicle) == 0
        assert await repo.list_by_owner(vehicle) == []

    @pytest.mark.asyncio
    async def test_owner_exists(self, repo: ImageRepository, vehicle: str):
        assert await repo.owner_exists(vehicle) is True
        assert await repo.owner_exists("missing") is False

    @pytest.mark.asyncio
    async def test_sql_errors_become_storage_errors(self, repo: ImageRepository, db_engine, vehicle: str):
        async with db_engine.begin() as conn:
            await conn.run_sync(VehicleImageRow.__table__.drop)

        with pytest.raises(StorageError):
            await repo.list_by_owner(vehicle)


# ---------------------------------------------------------------------------
# Projection tests
# ---------------------------------------------------------------------------


class TestProjection:
    @pytest.mark.asyncio
    async def test_sync_writes_slot_ascending_urls(
        self, repo: ImageRepository, db_session: AsyncSession, vehicle: str
    ):
        late = await repo.put(vehicle, 4, "image/png", PNG_BYTES)
        early = await repo.put(vehicle, 1, "image/png", PNG_BYTES)

        projection = await sync_projection(db_session, vehicle)

        assert projection == (
            f"/images/{early.id}?owner={vehicle}|/images/{late.id}?owner={vehicle}"
        )
        assert await read_projection(db_session, vehicle) == projection

    @pytest.mark.asyncio
    async def test_sync_with_no_images_stores_null(self, db_session: AsyncSession, vehicle: str):
        assert await sync_projection(db_session, vehicle) == ""

        result = await db_session.execute(select(VehicleRow.image_url).where(VehicleRow.id == vehicle))
        assert result.scalar_one() is None

    @pytest.mark.asyncio
    async def test_owner_key_is_url_encoded(self, repo: ImageRepository, db_session: AsyncSession):
        db_session.add(VehicleRow(id="bmw x5|2024", created_at_ms=1, updated_at_ms=1))
        row = await repo.put("bmw x5|2024", 0, "image/png", PNG_BYTES)

        projection = await sync_projection(db_session, "bmw x5|2024")
        assert projection == f"/images/{row.id}?owner=bmw%20x5%7C2024"


# ---------------------------------------------------------------------------
# DB model tests
# ---------------------------------------------------------------------------


class TestVehicleImageRow:
    @pytest.mark.asyncio
    async def test_duplicate_slot_rejected(self, db_session: AsyncSession, vehicle: str):
        base = dict(
            vehicle_id=vehicle,
            sort_order=0,
            mime_type="image/png",
            image_data=PNG_BYTES,
            created_at_ms=1,
            updated_at_ms=1,
        )
        db_session.add(VehicleImageRow(**base))
        await db_session.commit()

        db_session.add(VehicleImageRow(**base))
        with pytest.raises(IntegrityError):
            await db_session.commit()
        await db_session.rollback()


class TestHeroAndSettingRows:
    @pytest.mark.asyncio
    async def test_hero_row_roundtrip(self, db_session: AsyncSession):
        row = HeroImageRow(mime_type="image/png", image_data=PNG_BYTES, created_at_ms=5, updated_at_ms=5)
        db_session.add(row)
        await db_session.commit()

        fetched = await db_session.get(HeroImageRow, row.id)
        assert fetched is not None
        assert fetched.image_data == PNG_BYTES

    @pytest.mark.asyncio
    async def test_setting_key_unique(self, db_session: AsyncSession):
        db_session.add(SettingRow(setting_key="app_name", setting_value="AutoCompare"))
        await db_session.commit()

        db_session.add(SettingRow(setting_key="app_name", setting_value="Other"))
        with pytest.raises(IntegrityError):
            await db_session.commit()
        await db_session.rollback()


# ---------------------------------------------------------------------------
# Session dependency tests
# ---------------------------------------------------------------------------


class TestSessionDependency:
    @pytest.fixture(autouse=True)
    def _use_test_engine(self, db_engine, monkeypatch):
        monkeypatch.setattr(
            "db.session.async_session_factory",
            async_sessionmaker(db_engine, expire_on_commit=False),
        )

    @pytest.mark.asyncio
    async def test_commits_when_request_succeeds(self, db_session: AsyncSession):
        gen = get_session_dep()
        session = await gen.__anext__()
        session.add(VehicleRow(id="veh-committed", created_at_ms=1, updated_at_ms=1))
        with pytest.raises(StopAsyncIteration):
            await gen.__anext__()

        count = (await db_session.execute(
            select(func.count()).select_from(VehicleRow).where(VehicleRow.id == "veh-committed")
        )).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_rolls_back_when_request_fails(self, db_session: AsyncSession):
        gen = get_session_dep()
        session = await gen.__anext__()
        session.add(VehicleRow(id="veh-rolled-back", created_at_ms=1, updated_at_ms=1))
        await session.flush()
        with pytest.raises(RuntimeError):
            await gen.athrow(RuntimeError("handler failed"))

        count = (await db_session.execute(
            select(func.count()).select_from(VehicleRow).where(VehicleRow.id == "veh-rolled-back")
        )).scalar_one()
        assert count == 0
