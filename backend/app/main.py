from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import router
from app.core.config import get_settings
from app.core.logging import configure_logging, get_logger


settings = get_settings()
configure_logging(settings.debug)
_logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    _logger.info(
        "Planner API starting",
        routing_provider=settings.routing_provider,
        geocoder_provider=settings.geocoder_provider,
        travel_mode=settings.routing_travel_mode,
    )
    yield


app = FastAPI(
    title="Stopover API", version="0.1.0", debug=settings.debug, lifespan=lifespan
)

# The map front-end is served from a different origin.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
