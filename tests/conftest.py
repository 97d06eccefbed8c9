"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import typing as typ

import httpx
import pytest

from embedctl.api.client import EmbeddableAPIClient
from embedctl.config.models import Config, Region
from embedctl.config.store import ConfigStore
from tests.helpers.fake_api import FakeEmbeddableTransport

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

TEST_API_KEY = "emb_test_0123456789abcd"


@pytest.fixture(autouse=True)
def _isolate_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    """Keep tests away from the real home directory and network checks."""
    monkeypatch.setenv("EMBED_CONFIG_DIR", str(tmp_path / "home" / ".embeddable"))
    monkeypatch.setenv("EMBED_NO_UPDATE_CHECK", "1")
    for name in ("EMBED_API_TIMEOUT", "EMBED_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_store(tmp_path: Path) -> ConfigStore:
    """Return a store whose directory does not exist yet."""
    return ConfigStore(tmp_path / "store" / ".embeddable" / "config.json")


@pytest.fixture
def stored_config(config_store: ConfigStore) -> Config:
    """Persist and return a credential for the EU region."""
    config = Config(api_key=TEST_API_KEY, region=Region.EU)
    config_store.save(config)
    return config


@pytest.fixture
def fake_api() -> FakeEmbeddableTransport:
    """Return an empty in-memory API."""
    return FakeEmbeddableTransport()


@pytest.fixture
def http_client(
    fake_api: FakeEmbeddableTransport,
) -> cabc.Iterator[httpx.Client]:
    """Yield an httpx client routed to the in-memory API."""
    with httpx.Client(transport=fake_api) as client:
        yield client


@pytest.fixture
def client_factory(
    http_client: httpx.Client,
) -> cabc.Callable[[Config], EmbeddableAPIClient]:
    """Return a factory building API clients over the in-memory API."""

    def _factory(config: Config) -> EmbeddableAPIClient:
        return EmbeddableAPIClient(
            config.api_key, config.region, http_client=http_client
        )

    return _factory


@pytest.fixture
def api(
    client_factory: cabc.Callable[[Config], EmbeddableAPIClient],
) -> EmbeddableAPIClient:
    """Return a client authenticated with the test key."""
    return client_factory(Config(api_key=TEST_API_KEY, region=Region.EU))
