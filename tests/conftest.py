"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# SQLite keeps tests off a real Postgres; no settle pause against fake aggregators
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///./test_bank_reconcile.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("PAYMENT__RECONCILE__REFRESH_SETTLE_SECONDS", "0")

from datetime import datetime, timezone

import pytest

from tests.fakes import FakeAggregator, FakeAggregatorFactory, FakeStore, FrozenClock, make_settings


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 10, 19, 3, 0, tzinfo=timezone.utc))


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def settings(store):
    """Active receiving account with the default 1..999 range."""
    return store.settings.add(make_settings())


@pytest.fixture
def aggregator() -> FakeAggregator:
    return FakeAggregator()


@pytest.fixture
def aggregator_factory(aggregator) -> FakeAggregatorFactory:
    return FakeAggregatorFactory(aggregator)
