import logging
from typing import Any

from fastapi import APIRouter, Body, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from portfolio_backend.api.content_store import ContentStore
from portfolio_backend.api.counters import increment_counter
from portfolio_backend.api.errors import NotFoundError, PortfolioError, UpstreamFailure, ValidationError
from portfolio_backend.api.github_release import ReleaseService
from portfolio_backend.api.s3_url_cache import SignedUrlIssuer
from portfolio_backend.api.ttl_cache import CacheEntry
from portfolio_backend.shared import PORTFOLIO_ENTRIES, POSTS, PROGRAMS

_log = logging.getLogger(__name__)


def _issuer(request: Request) -> SignedUrlIssuer:
    return request.app.state.signed_urls


def _releases(request: Request) -> ReleaseService:
    return request.app.state.releases


def _store(request: Request) -> ContentStore:
    return request.app.state.store


def _sign(issuer: SignedUrlIssuer, reference) -> CacheEntry[str]:
    try:
        return issuer.issue_for_reference(reference)
    except PortfolioError:
        raise
    except Exception as e:
        _log.exception("Signed URL generation failed")
        raise UpstreamFailure("Failed to generate signed URL") from e


def _cdn_headers(seconds_left: float) -> dict[str, str]:
    return {"Cache-Control": f"public, max-age={int(seconds_left)}"}


def create_router() -> APIRouter:
    """Create the public API router. No route requires auth."""
    router = APIRouter()

    @router.get("/ping")
    def ping():
        _log.info("api ping")
        return {"status": "ok"}

    # ── GitHub releases ──────────────────────────────────────────────────

    @router.get("/github-release/{repo}")
    def github_release(repo: str, request: Request):
        _log.info(f"github release {repo=}")
        return _releases(request).get_latest(repo)

    # ── Counters ─────────────────────────────────────────────────────────

    @router.post("/portfolio-entries/{id}/view")
    def portfolio_entry_view(id: str, request: Request):
        return increment_counter(_store(request), PORTFOLIO_ENTRIES, id, "views", "title", "Portfolio entry")

    @router.post("/posts/{id}/view")
    def post_view(id: str, request: Request):
        return increment_counter(_store(request), POSTS, id, "views", "title", "Post")

    @router.post("/programs/{id}/download")
    def program_download(id: str, request: Request):
        result = increment_counter(_store(request), PROGRAMS, id, "downloads", "name", "Program")
        _log.info(
            f'Download count incremented for "{result["data"]["name"]}": '
            f'{result["meta"]["previousCount"]} -> {result["meta"]["newCount"]}'
        )
        return result

    # ── Programs (with optional release sync) ────────────────────────────

    @router.get("/programs")
    def programs_list(request: Request, syncGithub: str = Query(None)):
        store = _store(request)
        programs = store.find_many(PROGRAMS)
        if syncGithub == "true" and programs:
            _log.info(f"programs list with github sync count={len(programs)}")
            _releases(request).sync_programs(programs)
            programs = store.find_many(PROGRAMS)
        return {"data": programs}

    @router.get("/programs/{id}")
    def programs_get(id: str, request: Request, syncGithub: str = Query(None)):
        store = _store(request)
        program = store.find_one(PROGRAMS, id)
        if program is None:
            raise NotFoundError("Program not found")
        if syncGithub == "true" and program.get("githubRepo"):
            if _releases(request).sync_programs([program]):
                program = store.find_one(PROGRAMS, id) or program
        return {"data": program}

    # ── Signed URLs ──────────────────────────────────────────────────────

    @router.post("/signed-url")
    def signed_url(request: Request, body: Any = Body(default=None)):
        url = body.get("url") if isinstance(body, dict) else None
        if not url:
            raise ValidationError("URL is required")
        issuer = _issuer(request)
        entry = _sign(issuer, url)
        return {"url": entry.value, "expiresIn": issuer.expires_in}

    @router.post("/signed-urls")
    def signed_urls(request: Request, body: Any = Body(default=None)):
        urls = body.get("urls") if isinstance(body, dict) else None
        if not isinstance(urls, list):
            raise ValidationError("URLs array is required")
        issuer = _issuer(request)
        _log.info(f"signed urls batch count={len(urls)}")
        return {"urls": issuer.issue_many(urls), "expiresIn": issuer.expires_in}

    @router.get("/signed-url/{key:path}")
    def signed_url_by_key(key: str, request: Request):
        issuer = _issuer(request)
        entry = _sign(issuer, key)
        seconds_left = entry.seconds_left(issuer.cache.now())
        return JSONResponse(
            {"url": entry.value, "expiresIn": issuer.expires_in},
            headers=_cdn_headers(seconds_left),
        )

    @router.get("/image/{key:path}")
    def image_redirect(key: str, request: Request):
        issuer = _issuer(request)
        entry = _sign(issuer, key)
        seconds_left = entry.seconds_left(issuer.cache.now())
        return RedirectResponse(entry.value, status_code=302, headers=_cdn_headers(seconds_left))

    return router
