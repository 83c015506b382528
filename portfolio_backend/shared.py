"""Constants shared by the portfolio backend routes and services.

Single source of truth for the release owner, TTLs and content collection
names so they can be changed in one place.
"""

# GitHub account that owns every program repository.
GITHUB_OWNER = "englishfox90"

# Release metadata is cached for one hour per repository.
RELEASE_CACHE_TTL = 60 * 60

# Signed URLs are cached for slightly less than their own validity window.
SIGNED_URL_CACHE_FACTOR = 0.95

# Default validity of an issued signed URL (7 days).
DEFAULT_SIGNED_URL_EXPIRES = 60 * 60 * 24 * 7

# Primary download asset: first asset with this suffix, else the first asset.
PRIMARY_ASSET_EXTENSION = ".exe"

# Content-store collections (REST plural names).
PORTFOLIO_ENTRIES = "portfolio-entries"
POSTS = "posts"
PROGRAMS = "programs"
