"""Shared pytest fixtures for home-photo-backup tests."""

import io
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from PIL import Image

from photo_backup.config import ClientConfig, ServerConfig


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a running photo server",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a running photo server"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


def make_image_bytes(
    size: tuple[int, int] = (64, 48),
    color: tuple[int, int, int] = (200, 30, 30),
    fmt: str = "JPEG",
) -> bytes:
    """Encode a solid-colour image; distinct colours give distinct bytes."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, fmt)
    return buf.getvalue()


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes()


@pytest.fixture
def server_config(tmp_path: Path) -> ServerConfig:
    """Server config rooted in a temp directory."""
    return ServerConfig(storage_path=str(tmp_path / "data"))


@pytest.fixture
def client_config(tmp_path: Path) -> ClientConfig:
    library = tmp_path / "library"
    library.mkdir()
    return ClientConfig(
        server_url="http://photos.local:8080",
        library_path=str(library),
        ledger_path=str(tmp_path / "ledger" / "uploaded_photos.json"),
        wifi_only=False,
    )


@pytest.fixture
def mock_photo_client(client_config):
    """Create a mock PhotoClient instance for testing."""
    from photo_backup.core.client import PhotoClient

    client = MagicMock(spec=PhotoClient)
    client.config = client_config
    return client


@pytest.fixture
def make_image():
    """Factory fixture wrapping ``make_image_bytes``."""
    return make_image_bytes
