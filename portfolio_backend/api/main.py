#!/usr/bin/env python3
"""
Portfolio backend API: FastAPI app exposing release sync, counters and signed media URLs.
Entrypoint for uvicorn is portfolio_backend.api.main:app. Configuration comes from env (see settings.py).
"""
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from portfolio_backend.api import create_router
from portfolio_backend.api.content_store import ContentStore, InMemoryContentStore, RestContentStore
from portfolio_backend.api.errors import register_error_handlers
from portfolio_backend.api.github_release import ReleaseService
from portfolio_backend.api.logging_config import request_context, setup_logging
from portfolio_backend.api.s3_url_cache import SignedUrlIssuer, make_s3_client
from portfolio_backend.api.settings import Settings, load_settings
from portfolio_backend.api.ttl_cache import TTLCache

setup_logging()

log = logging.getLogger(__name__)


class _AccessLogMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with status and duration. No log for GET /health when 200."""

    async def dispatch(self, request, call_next):
        t_start = time.perf_counter()
        response = await call_next(request)
        if request.url.path == "/health" and response.status_code == 200:
            return response  # health checks would flood the log
        client = request.client or ("?", "?")
        client_addr = f"{client[0]}:{client[1]}"
        log.info(
            f'{client_addr} - "{request.method} {request.url.path}" {response.status_code}',
            extra=request_context(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                client=client_addr,
                duration=time.perf_counter() - t_start,
            ),
        )
        return response


def _build_store(settings: Settings) -> ContentStore:
    if settings.content_api_url:
        return RestContentStore(settings.content_api_url, settings.content_api_token)
    log.warning("CONTENT_API_URL not set, using in-memory content store")
    return InMemoryContentStore()


def create_app(
    settings: Settings | None = None,
    store: ContentStore | None = None,
    s3_client=None,
) -> FastAPI:
    """Build the app. The caches live on app.state for the lifetime of the process."""
    settings = settings or load_settings()
    store = store if store is not None else _build_store(settings)
    s3_client = s3_client if s3_client is not None else make_s3_client(settings)

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        missing = settings.missing()
        if missing:
            log.warning("Missing env vars (signed URLs may fail): %s", ", ".join(missing))
        log.info(
            "Portfolio backend loaded bucket=%s endpoint=%s signed_url_expires=%s content_store=%s",
            settings.bucket,
            settings.aws_endpoint_url,
            settings.signed_url_expires,
            type(store).__name__,
        )
        yield
        if isinstance(store, RestContentStore):
            store.close()

    app = FastAPI(title="Portfolio Backend", lifespan=_lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.signed_urls = SignedUrlIssuer(
        s3_client,
        settings.bucket,
        settings.signed_url_expires,
        cache=TTLCache(),
    )
    app.state.releases = ReleaseService(
        store,
        cache=TTLCache(keep_stale=True),
        token=settings.github_token,
        api_url=settings.github_api_url,
    )

    app.add_middleware(_AccessLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    app.include_router(create_router(), prefix="/api")

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "caches": {
                "signed_urls": len(app.state.signed_urls.cache),
                "github_releases": len(app.state.releases.cache),
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 1337))
    log.info(f"Portfolio backend starting host=0.0.0.0 port={port}")
    uvicorn.run(
        "portfolio_backend.api.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        access_log=False,
    )
