from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from dialect_gateway.core.config import get_settings

router = APIRouter(tags=["models"])


@router.get("/v1/models")
async def list_models() -> dict[str, Any]:
    return {
        "object": "list",
        "data": [
            {
                "id": model_id,
                "object": "model",
                "created": 0,
                "owned_by": "dialect-gateway",
            }
            for model_id in get_settings().models
        ],
    }


@router.get("/v1beta/models")
async def list_gemini_models() -> dict[str, Any]:
    return {
        "models": [
            {
                "name": f"models/{model_id}",
                "displayName": model_id,
                "supportedGenerationMethods": [
                    "generateContent",
                    "streamGenerateContent",
                    "countTokens",
                ],
            }
            for model_id in get_settings().models
        ],
    }
