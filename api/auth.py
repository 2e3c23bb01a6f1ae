"""Admin write gate consumed by every mutating endpoint.

Credentials are issued by the surrounding admin panel as
``Authorization: Bearer base64("<id>:<email>")``. This module only checks
that one is present and not read-only; it does not issue or verify them.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass

from fastapi import Request

from core.config import settings
from core.errors import AuthorizationError, ReadOnlyAccessError

_BEARER = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


@dataclass(frozen=True)
class AdminAuth:
    token: str
    id: str
    email: str | None
    read_only: bool


def parse_admin_token(token: str) -> AdminAuth | None:
    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None

    parts = decoded.split(":")
    if len(parts) < 2 or not parts[0]:
        return None

    admin_id = parts[0]
    return AdminAuth(
        token=token,
        id=admin_id,
        email=parts[1] or None,
        read_only=admin_id in settings.ADMIN_READ_ONLY_IDS,
    )


def get_admin_auth(request: Request) -> AdminAuth | None:
    header = request.headers.get("authorization")
    if not header:
        return None
    match = _BEARER.match(header.strip())
    if match is None:
        return None
    return parse_admin_token(match.group(1).strip())


async def require_admin_write_access(request: Request) -> AdminAuth:
    auth = get_admin_auth(request)
    if auth is None:
        raise AuthorizationError()
    if auth.read_only:
        raise ReadOnlyAccessError()
    return auth
