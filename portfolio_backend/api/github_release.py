"""Latest GitHub release per repository, cached for an hour and synced to programs.

Fetch flow for ``get_latest(repo)``:

1. Sanitize the repository name and look it up in the TTL cache.
2. Fresh hit: return it (``cached=True``); no program sync.
3. Miss or expired: call ``GET /repos/{owner}/{repo}/releases/latest``.
   * 200: build :class:`ReleaseMetadata`, cache it, then sync the matching
     program's ``latestVersion`` / ``downloadLink``.
   * 404: :class:`NotFoundError`; nothing is cached.
   * 403/429: serve the stale entry if one exists, else :class:`RateLimitedError`.
   * anything else: serve the stale entry if one exists, else :class:`UpstreamFailure`.

Sync failures are logged and never fail the release response.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime

import httpx

from portfolio_backend.api.content_store import ContentStore
from portfolio_backend.api.errors import NotFoundError, RateLimitedError, UpstreamFailure, ValidationError
from portfolio_backend.api.ttl_cache import CacheEntry, TTLCache
from portfolio_backend.shared import GITHUB_OWNER, PRIMARY_ASSET_EXTENSION, PROGRAMS, RELEASE_CACHE_TTL

log = logging.getLogger(__name__)

_REPO_UNSAFE = re.compile(r"[^a-zA-Z0-9_.-]")
_RATE_LIMIT_STATUSES = (403, 429)


def sanitize_repo(repo: str | None) -> str:
    return _REPO_UNSAFE.sub("", repo or "")


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, UTC).isoformat().replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Release metadata
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReleaseAuthor:
    login: str | None
    avatar_url: str | None
    html_url: str | None


@dataclass(frozen=True)
class ReleaseAsset:
    name: str
    size: int
    download_count: int
    browser_download_url: str | None


@dataclass(frozen=True)
class ReleaseMetadata:
    name: str | None
    tag_name: str | None
    body: str | None
    html_url: str | None
    published_at: str | None
    author: ReleaseAuthor | None
    assets: tuple[ReleaseAsset, ...] = field(default_factory=tuple)
    prerelease: bool = False
    draft: bool = False

    @property
    def total_downloads(self) -> int:
        return sum(a.download_count for a in self.assets)

    @classmethod
    def from_github(cls, payload: dict) -> "ReleaseMetadata":
        author = payload.get("author")
        return cls(
            name=payload.get("name"),
            tag_name=payload.get("tag_name"),
            body=payload.get("body"),
            html_url=payload.get("html_url"),
            published_at=payload.get("published_at"),
            author=ReleaseAuthor(
                login=author.get("login"),
                avatar_url=author.get("avatar_url"),
                html_url=author.get("html_url"),
            )
            if author
            else None,
            assets=tuple(
                ReleaseAsset(
                    name=a.get("name") or "",
                    size=int(a.get("size") or 0),
                    download_count=int(a.get("download_count") or 0),
                    browser_download_url=a.get("browser_download_url"),
                )
                for a in payload.get("assets") or []
            ),
            prerelease=bool(payload.get("prerelease")),
            draft=bool(payload.get("draft")),
        )

    def primary_asset(self) -> ReleaseAsset | None:
        """First asset ending in the executable extension, else the first asset."""
        for asset in self.assets:
            if asset.name.endswith(PRIMARY_ASSET_EXTENSION):
                return asset
        return self.assets[0] if self.assets else None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "tagName": self.tag_name,
            "body": self.body,
            "htmlUrl": self.html_url,
            "publishedAt": self.published_at,
            "author": {
                "login": self.author.login,
                "avatarUrl": self.author.avatar_url,
                "htmlUrl": self.author.html_url,
            }
            if self.author
            else None,
            "assets": [
                {
                    "name": a.name,
                    "size": a.size,
                    "downloadCount": a.download_count,
                    "browserDownloadUrl": a.browser_download_url,
                }
                for a in self.assets
            ],
            "prerelease": self.prerelease,
            "draft": self.draft,
            "totalDownloads": self.total_downloads,
        }


# ---------------------------------------------------------------------------
# Fetch errors (internal; translated by get_latest)
# ---------------------------------------------------------------------------


class ReleaseFetchError(Exception):
    """Upstream fetch failed. ``stale`` is the expired cache entry, if any."""

    def __init__(self, message: str, status: int | None = None, stale: CacheEntry | None = None):
        super().__init__(message)
        self.status = status
        self.stale = stale


@dataclass(frozen=True)
class FetchResult:
    entry: CacheEntry[ReleaseMetadata]
    from_cache: bool


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ReleaseService:
    def __init__(
        self,
        store: ContentStore,
        cache: TTLCache[ReleaseMetadata] | None = None,
        token: str | None = None,
        api_url: str = "https://api.github.com",
        owner: str = GITHUB_OWNER,
        ttl: float = RELEASE_CACHE_TTL,
    ):
        self.store = store
        self.cache: TTLCache[ReleaseMetadata] = cache if cache is not None else TTLCache(keep_stale=True)
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.owner = owner
        self.ttl = ttl

    @staticmethod
    def cache_key(repo: str) -> str:
        return f"github-release:{repo}"

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "portfolio-backend",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def fetch(self, repo: str) -> FetchResult:
        """Return cached release metadata for *repo* or fetch it. Raises ReleaseFetchError."""
        key = self.cache_key(repo)
        cached = self.cache.get(key)
        if cached is not None:
            log.debug("Cache hit for %s", key)
            return FetchResult(entry=cached, from_cache=True)

        stale = self.cache.peek(key)
        url = f"{self.api_url}/repos/{self.owner}/{repo}/releases/latest"
        log.info("Fetching release data for %s/%s", self.owner, repo)
        try:
            resp = httpx.get(url, headers=self._headers(), timeout=10.0)
        except httpx.HTTPError as exc:
            raise ReleaseFetchError(f"GitHub request failed: {exc}", stale=stale) from exc

        if resp.status_code != 200:
            raise ReleaseFetchError(f"GitHub API error: {resp.status_code}", status=resp.status_code, stale=stale)

        try:
            release = ReleaseMetadata.from_github(resp.json())
        except (ValueError, TypeError, AttributeError) as exc:
            raise ReleaseFetchError(f"Invalid GitHub response: {exc}", stale=stale) from exc

        entry = self.cache.put(key, release, self.ttl)
        log.info("Cached release data for %s, expires in %ss", key, int(self.ttl))
        return FetchResult(entry=entry, from_cache=False)

    def sync_program(self, repo: str, release: ReleaseMetadata) -> dict | None:
        """Update the program whose githubRepo matches *repo* if version or link changed.

        Returns the program (updated or already current), or None when there is
        no match or the sync failed. Download counts are never touched here.
        """
        try:
            programs = self.store.find_many(PROGRAMS, filters={"githubRepo": {"$eqi": repo}}, limit=1)
            if not programs:
                log.debug("No program found with githubRepo: %s", repo)
                return None

            program = programs[0]
            primary = release.primary_asset()
            download_link = primary.browser_download_url if primary else None

            if program.get("latestVersion") == release.tag_name and program.get("downloadLink") == download_link:
                log.debug("Program %s already up to date", program.get("name"))
                return program

            updated = self.store.update(
                PROGRAMS,
                program["documentId"],
                {"latestVersion": release.tag_name, "downloadLink": download_link},
            )
            log.info('Updated program "%s" with release %s', program.get("name"), release.tag_name)
            return updated
        except Exception as exc:
            log.error("Failed to sync program with release: %s", exc)
            return None

    def get_latest(self, repo: str | None) -> dict:
        """Response payload for ``GET /github-release/{repo}``."""
        sanitized = sanitize_repo(repo)
        if not sanitized:
            raise ValidationError("Repository name is required")

        try:
            result = self.fetch(sanitized)
        except ReleaseFetchError as exc:
            log.error("Error fetching GitHub release: %s", exc)
            return self._fallback(sanitized, exc)

        program_synced = None
        if not result.from_cache:
            program_synced = self.sync_program(sanitized, result.entry.value)

        return {
            "data": result.entry.value.to_dict(),
            "meta": {
                "cached": result.from_cache,
                "cachedAt": _iso(result.entry.cached_at),
                "expiresAt": _iso(result.entry.expires_at),
                "programSynced": program_synced is not None,
            },
        }

    def _fallback(self, repo: str, exc: ReleaseFetchError) -> dict:
        if exc.status == 404:
            raise NotFoundError(f"Repository or release not found: {self.owner}/{repo}")

        if exc.status in _RATE_LIMIT_STATUSES:
            log.warning("GitHub API rate limit may have been exceeded")
            if exc.stale is None:
                raise RateLimitedError("GitHub API rate limit exceeded")
            return self._stale_payload(exc.stale, "GitHub rate limit exceeded, serving stale data")

        if exc.stale is None:
            raise UpstreamFailure("Failed to fetch release data from GitHub")
        log.warning("Serving stale release data for %s: %s", repo, exc)
        return self._stale_payload(exc.stale, str(exc))

    @staticmethod
    def _stale_payload(entry: CacheEntry[ReleaseMetadata], error: str) -> dict:
        return {
            "data": entry.value.to_dict(),
            "meta": {
                "cached": True,
                "stale": True,
                "cachedAt": _iso(entry.cached_at),
                "error": error,
            },
        }

    def sync_programs(self, programs: list[dict]) -> bool:
        """Refresh releases for each program with a githubRepo; True if any fetch was fresh."""
        fresh = False
        for program in programs:
            repo = sanitize_repo(program.get("githubRepo"))
            if not repo:
                continue
            try:
                result = self.fetch(repo)
            except ReleaseFetchError as exc:
                log.warning(f"Failed to sync GitHub for {repo}: {exc}")
                continue
            if not result.from_cache:
                fresh = True
                self.sync_program(repo, result.entry.value)
        return fresh
