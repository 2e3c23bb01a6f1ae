"""Shared fixtures: in-memory SQLite, ASGI client, mocked remote image host"""

from __future__ import annotations

# Must set DATABASE_URL before importing any project modules that trigger
# db/session.py module-level engine creation
import os
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

import base64
from collections.abc import Callable

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from db.models import Base, VehicleRow

ADMIN_TOKEN = base64.b64encode(b"7:admin@example.com").decode()
DEMO_TOKEN = base64.b64encode(b"demo:demo@example.com").decode()
ADMIN_HEADERS = {"Authorization": f"Bearer {ADMIN_TOKEN}"}
DEMO_HEADERS = {"Authorization": f"Bearer {DEMO_TOKEN}"}

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x11" * 48

REMOTE_HOST = "https://images.example.com"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine():
    # StaticPool keeps every checkout on the same in-memory database
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def vehicle(db_session: AsyncSession) -> str:
    db_session.add(VehicleRow(id="veh-1", created_at_ms=1, updated_at_ms=1))
    await db_session.commit()
    return "veh-1"


# ---------------------------------------------------------------------------
# Remote image host
# ---------------------------------------------------------------------------

class RemoteImages:
    """Routes for the mocked remote host: path -> handler or (status, type, body)."""

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, str, bytes] | Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, path: str, body: bytes, content_type: str = "image/png", status: int = 200) -> str:
        self.routes[path] = (status, content_type, body)
        return f"{REMOTE_HOST}{path}"

    def add_handler(self, path: str, handler: Callable[[httpx.Request], httpx.Response]) -> str:
        self.routes[path] = handler
        return f"{REMOTE_HOST}{path}"

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, headers={"content-type": "text/plain"}, content=b"missing")
        if callable(route):
            return route(request)
        status, content_type, body = route
        return httpx.Response(status, headers={"content-type": content_type}, content=body)


@pytest.fixture
def remote_images() -> RemoteImages:
    return RemoteImages()


@pytest_asyncio.fixture
async def http_client(remote_images: RemoteImages):
    async with httpx.AsyncClient(transport=httpx.MockTransport(remote_images)) as client:
        yield client


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def client(db_session: AsyncSession, http_client: httpx.AsyncClient):
    from api.dependencies import get_http_client
    from api.main import app
    from db.session import get_session_dep

    async def override_session():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    async def override_http_client():
        yield http_client

    app.dependency_overrides[get_session_dep] = override_session
    app.dependency_overrides[get_http_client] = override_http_client

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
