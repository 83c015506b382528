"""Error taxonomy and centralized FastAPI error handlers."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

log = logging.getLogger(__name__)


class PortfolioError(Exception):
    """Base exception carrying the HTTP status it maps to."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class ValidationError(PortfolioError):
    status_code = 400


class NotFoundError(PortfolioError):
    status_code = 404


class RateLimitedError(PortfolioError):
    status_code = 429


class UpstreamFailure(PortfolioError):
    status_code = 500


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(PortfolioError)
    async def handle_portfolio_error(_request: Request, exc: PortfolioError):
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_bad_request(_request: Request, exc: RequestValidationError):
        log.warning("Rejected request: %s", exc.errors())
        return JSONResponse({"error": "Invalid request body"}, status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        log.exception("Unhandled error: %s", exc)
        return JSONResponse({"error": "Internal server error"}, status_code=500)
