"""Test configuration and fixtures"""

import tempfile
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

from digquest_sync.core.config import CONFIG_ENV_VAR
from digquest_sync.media import ImageFile
from digquest_sync.storage import MemoryKeyValueStore, SqliteKeyValueStore
from digquest_sync.sync import Reconciler


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture(autouse=True)
def no_config_env(monkeypatch):
    """Keep a developer's DIGQUEST_CONFIG out of the tests"""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


@pytest.fixture
def memory_store():
    """Empty in-memory key-value store"""
    return MemoryKeyValueStore()


@pytest.fixture
def sqlite_store(temp_dir):
    """Empty SQLite key-value store in a temporary directory"""
    store = SqliteKeyValueStore(temp_dir / "storage.db")
    yield store
    store.close()


@pytest.fixture
def reconciler(memory_store):
    """Reconciler over the in-memory store, dual-write enabled"""
    return Reconciler(memory_store)


@pytest.fixture
def sample_find():
    """A find as returned by GET /api/finds"""
    return {
        'id': 1,
        'user_id': 7,
        'title': 'Roman denarius',
        'description': 'Silver coin, worn edges',
        'latitude': 51.501,
        'longitude': -0.141,
        'period': 'Roman',
        'image_url': '/uploads/denarius.jpg',
        'created_at': '2024-03-01T12:00:00Z',
    }


@pytest.fixture
def sample_location():
    """A map location as returned by GET /api/locations"""
    return {
        'id': 3,
        'user_id': 7,
        'name': 'Ploughed field by the river',
        'latitude': 52.2,
        'longitude': 0.12,
        'type': 'permission',
        'created_at': '2024-02-10T08:30:00Z',
    }


def encode_image(image: Image.Image, fmt: str, **save_args) -> bytes:
    """Encode a PIL image to bytes"""
    output = BytesIO()
    image.save(output, format=fmt, **save_args)
    return output.getvalue()


def noise_image(width: int, height: int, mode: str = "RGB") -> Image.Image:
    """Random noise image, hard to compress so sizes behave predictably"""
    bands = [Image.effect_noise((width, height), 64) for _ in range(len(mode))]
    return Image.merge(mode, bands)


@pytest.fixture
def make_jpeg():
    """Factory for noisy JPEG ImageFiles"""
    def factory(width: int, height: int, name: str = "photo.jpg", quality: int = 95) -> ImageFile:
        data = encode_image(noise_image(width, height), "JPEG", quality=quality)
        return ImageFile(name=name, data=data, content_type="image/jpeg")
    return factory


@pytest.fixture
def make_png():
    """Factory for noisy RGBA PNG ImageFiles"""
    def factory(width: int, height: int, name: str = "map.png",
                content_type: str = "image/png") -> ImageFile:
        data = encode_image(noise_image(width, height, "RGBA"), "PNG")
        return ImageFile(name=name, data=data, content_type=content_type)
    return factory
