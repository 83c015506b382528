"""Environment-sourced configuration for the portfolio backend."""

import os
from dataclasses import dataclass, field

from portfolio_backend.shared import DEFAULT_SIGNED_URL_EXPIRES


def _int_env(name: str, default: int) -> int:
    """Parse a positive integer env var; unset, invalid or zero falls back to *default*."""
    raw = os.environ.get(name, "").strip()
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _origins_env() -> list[str]:
    return [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]


@dataclass(frozen=True)
class Settings:
    """Application settings. Build with :func:`load_settings` in production."""

    # Object storage (S3-compatible)
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_region: str = "auto"
    aws_endpoint_url: str | None = None
    bucket: str | None = None
    signed_url_expires: int = DEFAULT_SIGNED_URL_EXPIRES

    # Release API
    github_token: str | None = None
    github_api_url: str = "https://api.github.com"

    # Content-document store
    content_api_url: str | None = None
    content_api_token: str | None = None

    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    def missing(self) -> list[str]:
        """Return the storage env vars that are unset."""
        required = {
            "AWS_ACCESS_KEY_ID": self.aws_access_key_id,
            "AWS_SECRET_ACCESS_KEY": self.aws_secret_access_key,
            "AWS_S3_BUCKET_NAME": self.bucket,
        }
        return [name for name, value in required.items() if not value]


def load_settings() -> Settings:
    return Settings(
        aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY"),
        aws_region=os.environ.get("AWS_DEFAULT_REGION") or "auto",
        aws_endpoint_url=os.environ.get("AWS_ENDPOINT_URL") or None,
        bucket=os.environ.get("AWS_S3_BUCKET_NAME") or None,
        signed_url_expires=_int_env("AWS_SIGNED_URL_EXPIRES", DEFAULT_SIGNED_URL_EXPIRES),
        github_token=os.environ.get("GITHUB_TOKEN") or None,
        github_api_url=(os.environ.get("GITHUB_API_URL") or "https://api.github.com").rstrip("/"),
        content_api_url=(os.environ.get("CONTENT_API_URL") or "").rstrip("/") or None,
        content_api_token=os.environ.get("CONTENT_API_TOKEN") or None,
        cors_origins=_origins_env(),
    )
