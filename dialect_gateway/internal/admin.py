from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from dialect_gateway.core.config import get_settings

router = APIRouter(prefix="/internal", tags=["internal"])


@router.get("/healthz")
async def healthz() -> dict[str, Any]:
    settings = get_settings()
    return {
        "status": "ok",
        "dialects": ["messages", "generateContent"],
        "models": len(settings.models),
    }
