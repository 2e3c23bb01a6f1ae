"""Site-wide hero image: current blob table first, legacy settings value second.

The legacy value lives in the generic settings table and comes in two shapes:

* JSON: ``{"mimeType": "image/png", "data": "<base64>"}``
* pre-JSON text such as ``{ mimeType: 'image/jpeg', data: 'data:image/jpeg;base64,...' }``

Decoding is a pipeline of parsers that each return a ``_LegacyFields`` or
``None``; the first hit wins. The legacy value is only ever read. Uploads go
to ``hero_images`` and also write a migration marker, after which the legacy
value is ignored for good.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
import time
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.errors import LegacyDecodeError, StorageError
from core.ingestion import IngestedImage
from db.models import HeroImageRow, SettingRow

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/png"
BASE64_MARKER = "base64,"

_MIME_LABEL = re.compile(r"""\bmimeType['"]?\s*:\s*(['"])(.*?)\1""")
_DATA_LABEL = re.compile(r"""\bdata['"]?\s*:\s*(['"])(.*?)\1""", re.DOTALL)
_DATA_URI = re.compile(r"^data:([^;,]+)[^,]*,", re.IGNORECASE)
_BASE64_TEXT = re.compile(r"^[A-Za-z0-9+/=\s]+$")


@dataclass(frozen=True)
class HeroImage:
    data: bytes
    mime_type: str
    etag: str
    legacy: bool = False


@dataclass(frozen=True)
class _LegacyFields:
    data: str
    mime_type: str | None = None


def _now_ms() -> int:
    return int(time.time() * 1000)


def hero_etag(mime_type: str, byte_length: int, row_id: int) -> str:
    return f'W/"{mime_type}:{byte_length}:{row_id}"'


def legacy_hero_etag(mime_type: str, raw_length: int) -> str:
    return f'W/"{mime_type}:{raw_length}"'


# ---------------------------------------------------------------------------
# Legacy payload parsers
# ---------------------------------------------------------------------------

def _parse_json(raw: str) -> _LegacyFields | None:
    try:
        payload = json.loads(raw)
    except ValueError:
        return None

    if isinstance(payload, str):
        return _LegacyFields(data=payload) if payload else None
    if not isinstance(payload, dict):
        return None

    data = payload.get("data")
    if not isinstance(data, str) or not data:
        return None
    mime_type = payload.get("mimeType")
    return _LegacyFields(data=data, mime_type=mime_type if isinstance(mime_type, str) and mime_type else None)


def _parse_labelled_text(raw: str) -> _LegacyFields | None:
    data_match = _DATA_LABEL.search(raw)
    if data_match is None or not data_match.group(2):
        return None
    mime_match = _MIME_LABEL.search(raw)
    mime_type = mime_match.group(2) if mime_match and mime_match.group(2) else None
    return _LegacyFields(data=data_match.group(2), mime_type=mime_type)


def _parse_bare_value(raw: str) -> _LegacyFields | None:
    # A raw data: URI or a raw base64 blob with no labels around it
    if _DATA_URI.match(raw) or _BASE64_TEXT.match(raw):
        return _LegacyFields(data=raw)
    return None


_PARSERS = (_parse_json, _parse_labelled_text, _parse_bare_value)


def _split_payload(fields: _LegacyFields) -> tuple[str, str | None]:
    """Return (base64 payload, mime type) for the declared data value."""
    data = fields.data.strip()
    mime_type = fields.mime_type
    if mime_type is None:
        uri = _DATA_URI.match(data)
        if uri:
            mime_type = uri.group(1).strip().lower()
    if BASE64_MARKER in data:
        data = data.rsplit(BASE64_MARKER, 1)[-1]
    return data, mime_type


def _b64decode(payload: str) -> bytes:
    compact = "".join(payload.split())
    compact += "=" * (-len(compact) % 4)
    return base64.b64decode(compact, validate=True)


def decode_legacy_payload(raw: str) -> IngestedImage:
    """Decode a legacy settings value into image bytes.

    Raises LegacyDecodeError when no data can be recovered or the payload is
    not valid base64.
    """
    text = raw.strip()
    fields = None
    for parser in _PARSERS:
        fields = parser(text)
        if fields is not None:
            break
    if fields is None:
        raise LegacyDecodeError("No image data found in legacy hero payload")

    payload, mime_type = _split_payload(fields)
    try:
        data = _b64decode(payload)
    except (binascii.Error, ValueError) as exc:
        raise LegacyDecodeError("Legacy hero payload is not valid base64") from exc
    if not data:
        raise LegacyDecodeError("Legacy hero payload is empty")

    return IngestedImage(data=data, mime_type=mime_type or DEFAULT_MIME_TYPE)


# ---------------------------------------------------------------------------
# Read / write
# ---------------------------------------------------------------------------

async def _get_setting(session: AsyncSession, key: str) -> str | None:
    result = await session.execute(
        select(SettingRow.setting_value).where(SettingRow.setting_key == key).limit(1)
    )
    return result.scalar_one_or_none()


async def _put_setting(session: AsyncSession, key: str, value: str) -> None:
    now_ms = _now_ms()
    result = await session.execute(select(SettingRow).where(SettingRow.setting_key == key))
    row = result.scalar_one_or_none()
    if row is None:
        session.add(SettingRow(
            setting_key=key,
            setting_value=value,
            created_at_ms=now_ms,
            updated_at_ms=now_ms,
        ))
    else:
        row.setting_value = value
        row.updated_at_ms = now_ms


async def resolve_hero_image(session: AsyncSession) -> HeroImage | None:
    try:
        result = await session.execute(
            select(HeroImageRow)
            .order_by(HeroImageRow.updated_at_ms.desc(), HeroImageRow.id.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is not None and row.image_data:
            data = bytes(row.image_data)
            mime_type = row.mime_type or DEFAULT_MIME_TYPE
            return HeroImage(data=data, mime_type=mime_type, etag=hero_etag(mime_type, len(data), row.id))

        if await _get_setting(session, settings.HERO_MIGRATION_SETTING_KEY) is not None:
            return None

        raw = await _get_setting(session, settings.LEGACY_HERO_SETTING_KEY)
    except SQLAlchemyError as exc:
        raise StorageError("Failed to read hero image") from exc

    if not raw or not raw.strip():
        return None

    try:
        image = decode_legacy_payload(raw)
    except LegacyDecodeError as exc:
        logger.warning("Ignoring undecodable legacy hero image: %s", exc)
        return None

    return HeroImage(
        data=image.data,
        mime_type=image.mime_type,
        etag=legacy_hero_etag(image.mime_type, len(raw)),
        legacy=True,
    )


async def store_hero_image(session: AsyncSession, image: IngestedImage) -> str:
    """Store a new current hero image and return its public URL."""
    now_ms = _now_ms()
    image_url = f"{settings.PUBLIC_API_PREFIX}/hero-image?v={now_ms}"
    try:
        row = HeroImageRow(
            mime_type=image.mime_type,
            image_data=image.data,
            created_at_ms=now_ms,
            updated_at_ms=now_ms,
        )
        session.add(row)
        await session.flush()
        row_id = row.id
        await _put_setting(session, settings.HERO_URL_SETTING_KEY, image_url)
        await _put_setting(session, settings.HERO_MIGRATION_SETTING_KEY, str(now_ms))
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StorageError("Failed to store hero image") from exc

    logger.info("Stored hero image %s (%s, %d bytes)", row_id, image.mime_type, image.byte_length)
    return image_url
