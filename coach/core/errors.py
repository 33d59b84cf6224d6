"""Exception types and handlers."""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("coach.errors")


class GenerationError(RuntimeError):
    """The model runtime failed to produce a step (transport, status or payload error)."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        model: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code


class ToolExecutionError(RuntimeError):
    """A tool could not reach its backing store."""


async def generation_error_handler(request: Request, exc: GenerationError) -> JSONResponse:
    logger.error(
        "Generation failed on %s %s (provider=%s model=%s status=%s): %s",
        request.method,
        request.url.path,
        exc.provider,
        exc.model,
        exc.status_code,
        exc,
    )
    return JSONResponse(
        status_code=502,
        content={
            "error": "generation_failed",
            "message": "The coach could not generate a response right now. Please try again.",
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
    """Return a generic JSON error response while logging the exception."""

    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "Something unexpected happened. Please try again later.",
        },
    )
