from collections.abc import Iterator
from pathlib import Path

import pytest
from flask.testing import FlaskClient

from shopsync.events import EventBus
from shopsync.lan_server import create_app
from shopsync.liveness import ClientTracker
from shopsync.settings import SettingsStore
from shopsync.store import JobStore
from shopsync.utils import apply_config_defaults


@pytest.fixture
def config(tmp_path: Path) -> dict:
    return apply_config_defaults({"data_dir": str(tmp_path / "data")})


@pytest.fixture
def store(config: dict) -> JobStore:
    return JobStore.from_config(config)


@pytest.fixture
def settings(config: dict) -> SettingsStore:
    return SettingsStore.from_config(config)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def tracker(bus: EventBus) -> ClientTracker:
    return ClientTracker(bus)


@pytest.fixture
def client(store, settings, tracker, bus, config) -> Iterator[FlaskClient]:
    app = create_app(store, settings, tracker, bus, config)
    with app.test_client() as test_client:
        yield test_client
