#!/usr/bin/env python3
"""Seed demo vehicles (and optionally a legacy hero image) into the database

Usage:
    python scripts/seed_vehicles.py
    python scripts/seed_vehicles.py --legacy-hero path/to/hero.jpg

Vehicles are normally owned by the catalog; this only exists so the image
endpoints have something to attach to in a fresh local database.
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import logging
import mimetypes
import sys
import time
from pathlib import Path

from sqlalchemy import select

# Allow running as `python scripts/seed_vehicles.py` from the repo root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.config import settings  # noqa: E402
from db.models import SettingRow, VehicleRow  # noqa: E402
from db.session import get_session, init_db  # noqa: E402

logger = logging.getLogger("seed_vehicles")

DEMO_VEHICLES = [
    "toyota-corolla-2024",
    "honda-civic-2024",
    "bmw-x5-2023",
    "tesla-model-3-2024",
]


async def seed(vehicle_ids: list[str], legacy_hero: Path | None) -> None:
    await init_db()
    now_ms = int(time.time() * 1000)

    async with get_session() as session:
        existing = set((await session.execute(
            select(VehicleRow.id).where(VehicleRow.id.in_(vehicle_ids))
        )).scalars())

        for vehicle_id in vehicle_ids:
            if vehicle_id in existing:
                logger.info("Vehicle %s already present", vehicle_id)
                continue
            session.add(VehicleRow(id=vehicle_id, created_at_ms=now_ms, updated_at_ms=now_ms))
            logger.info("Added vehicle %s", vehicle_id)

        if legacy_hero is not None:
            mime_type = mimetypes.guess_type(legacy_hero.name)[0] or "image/png"
            value = json.dumps({
                "mimeType": mime_type,
                "data": base64.b64encode(legacy_hero.read_bytes()).decode(),
            })
            result = await session.execute(
                select(SettingRow).where(SettingRow.setting_key == settings.LEGACY_HERO_SETTING_KEY)
            )
            row = result.scalar_one_or_none()
            if row is None:
                session.add(SettingRow(
                    setting_key=settings.LEGACY_HERO_SETTING_KEY,
                    setting_value=value,
                    created_at_ms=now_ms,
                    updated_at_ms=now_ms,
                ))
            else:
                row.setting_value = value
                row.updated_at_ms = now_ms
            logger.info("Wrote legacy hero setting from %s (%s)", legacy_hero, mime_type)


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("vehicle_ids", nargs="*", default=DEMO_VEHICLES)
    parser.add_argument("--legacy-hero", type=Path, default=None,
                        help="image file to store in the legacy hero setting")
    args = parser.parse_args()

    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.legacy_hero is not None and not args.legacy_hero.is_file():
        logger.error("No such file: %s", args.legacy_hero)
        return 1

    asyncio.run(seed(args.vehicle_ids, args.legacy_hero))
    return 0


if __name__ == "__main__":
    sys.exit(main())
