"""Shared fixtures: moto-mocked S3 bucket, seeded in-memory content store and FastAPI TestClient."""

import boto3
import pytest
from moto import mock_aws
from starlette.testclient import TestClient

from portfolio_backend.api.content_store import InMemoryContentStore
from portfolio_backend.api.settings import Settings
from portfolio_backend.shared import PORTFOLIO_ENTRIES, POSTS, PROGRAMS

BUCKET = "portfolio-media"
SIGNED_URL_EXPIRES = 3600

_DUMMY_PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64  # minimal fake PNG bytes


class FakeClock:
    """Callable clock for TTLCache; advance() moves time forward."""

    def __init__(self, start: float = 1_767_225_600.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def seed_records() -> dict[str, list[dict]]:
    return {
        PORTFOLIO_ENTRIES: [
            {"id": 1, "documentId": "orion-nebula", "title": "Orion Nebula", "views": 41},
            {"id": 2, "documentId": "new-entry", "title": "Fresh entry"},
        ],
        POSTS: [
            {"id": 3, "documentId": "first-light", "title": "First light", "views": 0},
        ],
        PROGRAMS: [
            {
                "id": 4,
                "documentId": "watchdog",
                "name": "ASI Overlay Watchdog",
                "githubRepo": "ASIOverlayWatchdog",
                "latestVersion": "v2.4.1",
                "downloadLink": "https://github.com/englishfox90/ASIOverlayWatchdog/releases/download/v2.4.1/setup.exe",
                "downloads": 5,
            },
            {"id": 5, "documentId": "no-repo", "name": "Offline tool", "downloads": 0},
        ],
    }


@pytest.fixture(scope="session")
def s3():
    """Session-wide moto mock with the media bucket and a couple of objects."""
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket=BUCKET)
        client.put_object(Bucket=BUCKET, Key="m42.png", Body=_DUMMY_PNG)
        client.put_object(Bucket=BUCKET, Key="uploads/andromeda.png", Body=_DUMMY_PNG)
        yield client


@pytest.fixture
def store():
    return InMemoryContentStore(seed_records())


@pytest.fixture
def settings():
    return Settings(bucket=BUCKET, signed_url_expires=SIGNED_URL_EXPIRES)


@pytest.fixture
def app(settings, store, s3):
    from portfolio_backend.api.main import create_app

    return create_app(settings=settings, store=store, s3_client=s3)


@pytest.fixture
def client(app):
    """FastAPI TestClient; server exceptions are rendered as responses."""
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
