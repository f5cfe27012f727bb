from __future__ import annotations

import pytest

from ritual.libs.schemas.settings import AppSettings, get_settings
from ritual.tests.fakes import FixedClock, InMemoryCycleStore


@pytest.fixture(autouse=True)
def _isolated_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        synthesis_lock_stale_seconds=300,
        synthesis_timeout_seconds=5,
        openrouter_api_key="test-key",
        vapid_public_key="pub",
        vapid_private_key="priv",
        internal_function_secret="s3cret",
    )


@pytest.fixture
def store() -> InMemoryCycleStore:
    return InMemoryCycleStore()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()
