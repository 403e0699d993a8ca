"""Shared fixtures: in-memory catalog, temp audit log and settings."""

import pytest

from alt_text_generator import AltTextGenerator
from audit_log import AuditLog
from config_handler import ConfigStore
from media_catalog import InMemoryCatalog, MediaAsset


def make_assets(count, start=1, mime_type='image/jpeg'):
    """Assets titled "Photo <id>" with no alt text."""
    return [
        MediaAsset(id=i, title=f"Photo {i}", filename=f"photo-{i}.jpg", mime_type=mime_type)
        for i in range(start, start + count)
    ]


@pytest.fixture
def catalog():
    return InMemoryCatalog(make_assets(3))


@pytest.fixture
def audit_log(tmp_path):
    return AuditLog(tmp_path / 'logs')


@pytest.fixture
def generator():
    return AltTextGenerator('PhotoBlog')


@pytest.fixture
def make_config():
    def _make(**overrides):
        raw = {'batch_size': 5}
        raw.update(overrides)
        return ConfigStore.sanitize(raw)
    return _make


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def config_store(tmp_path):
    return ConfigStore(tmp_path / 'settings.yaml')
