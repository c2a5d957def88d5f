from __future__ import annotations

from fastapi import APIRouter

from app.api.v1 import session

router = APIRouter()
router.include_router(session.router, prefix="/v1/session", tags=["session"])
