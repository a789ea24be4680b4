"""
Pytest configuration and shared fixtures for the URL shortener tests.
"""

import random
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app import create_app
from config import Settings
from middleware.custom_logger import JsonLineWriter, audit
from registry import ShortcodeGenerator, ShortUrlStore


class FrozenClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def audit_log(tmp_path: Path) -> Path:
    """Send audit events to a per-test file."""
    path = tmp_path / "logs" / "app.log"
    previous = audit.writer
    audit.writer = JsonLineWriter(str(path))
    yield path
    audit.writer = previous
    audit.detach_shipper()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock: FrozenClock) -> ShortUrlStore:
    return ShortUrlStore(clock=clock, generator=ShortcodeGenerator(random.Random(42)))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        base_url="http://sho.rt",
        log_dir=str(tmp_path / "logs"),
        remote_log_url="",
        rate_limit_max_requests=1000,
        rate_limit_window_seconds=60,
    )


@pytest.fixture
def client(settings: Settings, store: ShortUrlStore) -> TestClient:
    return TestClient(create_app(settings=settings, store=store))
