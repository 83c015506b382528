# Presigned GET URLs for objects in the media bucket, cached per key.
# A cached URL is kept for 95% of its validity so it is never handed out
# close enough to expiry to die mid-download.

import logging
from concurrent.futures import ThreadPoolExecutor
from urllib.parse import urlsplit

import boto3
from botocore.config import Config

from portfolio_backend.api.errors import ValidationError
from portfolio_backend.api.settings import Settings
from portfolio_backend.api.ttl_cache import CacheEntry, TTLCache
from portfolio_backend.shared import SIGNED_URL_CACHE_FACTOR

log = logging.getLogger(__name__)

_MAX_BATCH_WORKERS = 16


def _strip_leading_slash(value: str) -> str:
    return value[1:] if value.startswith("/") else value


def extract_key(reference: str | None, bucket: str | None) -> str | None:
    """Normalize a bare key, a /path or a full storage URL to an object key.

    "foo.png", "/foo.png" and "https://host/<bucket>/foo.png" all map to "foo.png".
    Returns None when no key can be extracted.
    """
    if not reference or not isinstance(reference, str):
        return None

    if not reference.startswith(("http://", "https://")):
        return _strip_leading_slash(reference) or None

    try:
        path = urlsplit(reference).path
    except ValueError:
        # Unparsable URL: treat the raw reference as a key
        return _strip_leading_slash(reference) or None

    path = _strip_leading_slash(path)
    if bucket and path.startswith(bucket + "/"):
        path = path[len(bucket) + 1 :]
    return path or None


def make_s3_client(settings: Settings):
    """S3 client for an S3-compatible provider (path-style addressing)."""
    return boto3.client(
        "s3",
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        region_name=settings.aws_region,
        endpoint_url=settings.aws_endpoint_url,
        config=Config(s3={"addressing_style": "path"}, signature_version="s3v4"),
    )


class SignedUrlIssuer:
    """Issues presigned GET URLs for *bucket*, served from a TTL cache."""

    def __init__(self, s3_client, bucket: str | None, expires_in: int, cache: TTLCache[str] | None = None):
        self.s3_client = s3_client
        self.bucket = bucket
        self.expires_in = expires_in
        self.cache: TTLCache[str] = cache if cache is not None else TTLCache()

    @property
    def cache_ttl(self) -> float:
        return self.expires_in * SIGNED_URL_CACHE_FACTOR

    def extract_key(self, reference: str | None) -> str | None:
        return extract_key(reference, self.bucket)

    def issue_entry(self, key: str) -> CacheEntry[str]:
        """Return the cache entry holding a signed URL for *key*, generating one on miss."""
        cached = self.cache.get(key)
        if cached is not None:
            log.debug("signed url cache hit key=%s", key)
            return cached
        url = self.s3_client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=self.expires_in,
        )
        return self.cache.put(key, url, self.cache_ttl)

    def issue(self, key: str) -> str:
        return self.issue_entry(key).value

    def issue_for_reference(self, reference: str | None) -> CacheEntry[str]:
        """Extract the key from *reference* and issue a URL for it. Raises ValidationError."""
        key = self.extract_key(reference)
        if not key:
            raise ValidationError("Could not extract file key from URL")
        return self.issue_entry(key)

    def _issue_item(self, reference) -> dict:
        try:
            key = self.extract_key(reference)
            if not key:
                return {"original": reference, "error": "Could not extract key"}
            return {"original": reference, "signedUrl": self.issue(key)}
        except Exception as e:
            log.warning(f"signed url generation failed for {reference!r}: {e}")
            return {"original": reference, "error": str(e)}

    def issue_many(self, references: list) -> list[dict]:
        """Sign every reference concurrently. Failures are reported per item."""
        if not references:
            return []
        workers = min(len(references), _MAX_BATCH_WORKERS)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(self._issue_item, references))
