"""Shared fixtures: configuration isolation and the sample statistics snapshot."""

import os
from pathlib import Path

import pytest

from dbtriage.catalog import InMemoryCatalogProvider, load_snapshot
from dbtriage.config import Config, reset_config

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Keep the developer's environment out of every test."""
    for key in list(os.environ):
        if key.startswith("DBTRIAGE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def snapshot_path() -> Path:
    return FIXTURES_DIR / "snapshot.json"


@pytest.fixture
def sample_provider(snapshot_path) -> InMemoryCatalogProvider:
    return load_snapshot(snapshot_path)
