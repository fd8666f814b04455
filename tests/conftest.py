"""Shared pytest fixtures for hierarchy-sync tests."""

import pytest

from hierarchy_sync.events import ALL_EVENTS
from hierarchy_sync.model import HierarchyModel
from hierarchy_sync.view_mode import ViewModeManager


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory, monkeypatch):
    """Keep the developer's own config files and .env out of every test."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("HIERARCHY_SYNC_CONFIG", raising=False)
    monkeypatch.chdir(home)
    return home


@pytest.fixture
def model():
    """A model with the default handler registry and nothing loaded."""
    return HierarchyModel()


@pytest.fixture
def json_model(model):
    """A model holding a small JSON document."""
    model.load_content('{"name": "demo", "tags": ["a", "b"], "meta": {"n": 1}}', "json")
    return model


@pytest.fixture
def manager(json_model):
    """A view manager in tree mode over ``json_model``."""
    return ViewModeManager(json_model)


@pytest.fixture
def recorder(model):
    """Record every published event as ``(name, payload)`` tuples."""
    received = []
    for name in ALL_EVENTS:
        model.subscribe(name, lambda payload, name=name: received.append((name, payload)))
    return received
