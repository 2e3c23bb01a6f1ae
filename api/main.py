"""Entrypoint for the AutoCompare image service"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.errors import register_error_handlers
from api.routes import hero_image, images
from core.config import settings
from db.session import init_db

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(
    title="AutoCompare Image API",
    version="0.1.0",
    description="Per-vehicle image slots and the site hero image",
    lifespan=lifespan,
)

register_error_handlers(app)
app.include_router(images.router)
app.include_router(hero_image.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
