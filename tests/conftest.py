"""Pytest configuration and fixtures."""

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# Set environment variables before imports
os.environ["DATA_DIR"] = tempfile.mkdtemp(prefix="slowpost-test-")
os.environ["GEO_LOOKUP_ENABLED"] = "false"
os.environ["PASSWORD_KDF_ROUNDS"] = "4"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("S3_BUCKET", None)

from fastapi.testclient import TestClient  # noqa: E402

from slowpost.config import Settings  # noqa: E402
from slowpost.main import create_app  # noqa: E402


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class StubCountryService:
    def __init__(self, country="Taiwan"):
        self.country = country
        self.calls = []

    async def detect(self, ip, headers):
        self.calls.append(ip)
        return self.country


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_settings(tmp_path):
    def _make(**overrides):
        values = {
            "data_dir": str(tmp_path / "data"),
            "geo_lookup_enabled": False,
            "password_kdf_rounds": 4,
            "database_url": None,
            "s3_bucket": None,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def country_service():
    return StubCountryService()


@pytest.fixture
def client(settings, clock, country_service):
    app = create_app(settings, country_service=country_service, clock=clock)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def png_bytes():
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
