from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from dialect_gateway.anthropic.errors import AnthropicCompatError
from dialect_gateway.gemini.errors import GeminiCompatError


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AnthropicCompatError)
    async def handle_anthropic_error(
        _request: Request,
        exc: AnthropicCompatError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_error(),
        )

    @app.exception_handler(GeminiCompatError)
    async def handle_gemini_error(
        _request: Request,
        exc: GeminiCompatError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_error(),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        first_error = exc.errors()[0]["msg"] if exc.errors() else "Invalid request"

        if request.url.path.startswith("/v1beta/"):
            compat_error: AnthropicCompatError | GeminiCompatError = GeminiCompatError(
                status_code=400,
                message=first_error,
                status="INVALID_ARGUMENT",
            )
        else:
            compat_error = AnthropicCompatError(
                status_code=400,
                message=first_error,
                error_type="invalid_request_error",
            )

        return JSONResponse(
            status_code=compat_error.status_code,
            content=compat_error.to_error(),
        )
