"""Tests for photo_backup.config -- env-var config loading and validation.

NOT to be confused with test_config_loader.py (hierarchical YAML config)
or test_config_schema.py (Pydantic models). This tests the bootstrap
path: validate_*_config() and load_*_config().
"""

from pathlib import Path

import pytest

from photo_backup.config import (
    DEFAULT_STORAGE_PATH,
    ClientConfig,
    ServerConfig,
    load_client_config,
    load_server_config,
    validate_client_config,
    validate_server_config,
)

_SERVER_ENV = (
    "PHOTO_STORAGE_PATH",
    "PHOTO_SERVER_HOST",
    "PHOTO_SERVER_PORT",
    "PHOTO_METADATA_BACKEND",
    "PHOTO_MAX_PARALLEL_UPLOADS",
    "PHOTO_RECONCILE_ON_STARTUP",
    "PHOTO_DEBUG",
)
_CLIENT_ENV = (
    "PHOTO_BACKUP_SERVER_URL",
    "PHOTO_BACKUP_LIBRARY",
    "PHOTO_BACKUP_LEDGER",
    "PHOTO_BACKUP_WIFI_ONLY",
    "PHOTO_DEBUG",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in (*_SERVER_ENV, *_CLIENT_ENV):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


# -------------------------------------------------------------------------
# validate_server_config()
# -------------------------------------------------------------------------


class TestValidateServerConfig:
    """Tests for validate_server_config()."""

    def test_defaults_are_valid(self):
        validate_server_config(ServerConfig())

    def test_storage_path_is_stripped(self):
        config = ServerConfig(storage_path="  /srv/photos  ")
        validate_server_config(config)
        assert config.storage_path == "/srv/photos"

    def test_empty_storage_path(self):
        with pytest.raises(ValueError, match="Storage path cannot be empty"):
            validate_server_config(ServerConfig(storage_path="   "))

    @pytest.mark.parametrize("port", [0, 65536, -1])
    def test_port_out_of_range(self, port):
        with pytest.raises(ValueError, match="must be between 1 and 65535"):
            validate_server_config(ServerConfig(port=port))

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Invalid metadata backend 'mongo'"):
            validate_server_config(ServerConfig(metadata_backend="mongo"))

    def test_tiny_thumbnail_size(self):
        with pytest.raises(ValueError, match="must be at least 16"):
            validate_server_config(ServerConfig(thumbnail_max_size=8))

    def test_derived_paths(self):
        config = ServerConfig(storage_path="/srv/photos")
        assert config.photos_path == Path("/srv/photos/photos/originals")
        assert config.thumbnails_path == Path("/srv/photos/thumbnails")
        assert config.metadata_file == Path("/srv/photos/metadata.json")
        assert config.database_file == Path("/srv/photos/metadata.db")


# -------------------------------------------------------------------------
# validate_client_config()
# -------------------------------------------------------------------------


class TestValidateClientConfig:
    """Tests for validate_client_config() -- URL format and path checks."""

    def test_valid_config(self):
        config = ClientConfig(
            server_url="http://192.168.1.10:8080", library_path="/photos"
        )
        validate_client_config(config)
        assert config.api_base_url == "http://192.168.1.10:8080/api/v1"

    def test_https_url_valid(self):
        validate_client_config(
            ClientConfig(server_url="https://photos.example.com", library_path="/p")
        )

    def test_invalid_url_no_scheme(self):
        config = ClientConfig(server_url="photos.local:8080", library_path="/p")
        with pytest.raises(
            ValueError, match="must start with http:// or https://"
        ):
            validate_client_config(config)

    def test_invalid_url_ftp_scheme(self):
        config = ClientConfig(server_url="ftp://photos.local", library_path="/p")
        with pytest.raises(
            ValueError, match="must start with http:// or https://"
        ):
            validate_client_config(config)

    def test_url_without_hostname(self):
        config = ClientConfig(server_url="http://", library_path="/p")
        with pytest.raises(ValueError, match="must include a hostname"):
            validate_client_config(config)

    def test_trailing_slash_removed(self):
        config = ClientConfig(server_url="http://nas:8080/", library_path="/p")
        validate_client_config(config)
        assert config.server_url == "http://nas:8080"

    def test_api_prefix_removed(self):
        config = ClientConfig(
            server_url="http://nas:8080/api/v1/", library_path="/p"
        )
        validate_client_config(config)
        assert config.server_url == "http://nas:8080"
        assert config.api_base_url == "http://nas:8080/api/v1"

    def test_empty_library_path(self):
        config = ClientConfig(server_url="http://nas", library_path="  ")
        with pytest.raises(ValueError, match="Library path cannot be empty"):
            validate_client_config(config)

    def test_zero_batch_limit(self):
        config = ClientConfig(
            server_url="http://nas", library_path="/p", background_batch_limit=0
        )
        with pytest.raises(ValueError, match="batch limit"):
            validate_client_config(config)


# -------------------------------------------------------------------------
# load_server_config()
# -------------------------------------------------------------------------


class TestLoadServerConfig:
    """Tests for load_server_config() precedence."""

    def test_defaults(self, clean_env):
        config = load_server_config()
        assert config.storage_path == DEFAULT_STORAGE_PATH
        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.metadata_backend == "json"
        assert config.max_parallel_uploads == 4
        assert config.reconcile_on_startup is False
        assert config.debug is False

    def test_env_vars_used(self, clean_env):
        clean_env.setenv("PHOTO_STORAGE_PATH", "/env/photos")
        clean_env.setenv("PHOTO_SERVER_PORT", "9090")
        clean_env.setenv("PHOTO_METADATA_BACKEND", "SQLite")
        clean_env.setenv("PHOTO_RECONCILE_ON_STARTUP", "yes")

        config = load_server_config()
        assert config.storage_path == "/env/photos"
        assert config.port == 9090
        assert config.metadata_backend == "sqlite"
        assert config.reconcile_on_startup is True

    def test_cli_beats_env(self, clean_env):
        clean_env.setenv("PHOTO_STORAGE_PATH", "/env/photos")
        clean_env.setenv("PHOTO_SERVER_PORT", "9090")

        config = load_server_config(storage_path="/cli/photos", port=7000)
        assert config.storage_path == "/cli/photos"
        assert config.port == 7000

    def test_env_beats_yaml(self, clean_env):
        clean_env.setenv("PHOTO_MAX_PARALLEL_UPLOADS", "2")
        config = load_server_config(
            yaml_fallbacks={"max_parallel_uploads": 8, "host": "127.0.0.1"}
        )
        assert config.max_parallel_uploads == 2
        assert config.host == "127.0.0.1"

    def test_yaml_fallbacks_used(self, clean_env):
        config = load_server_config(
            yaml_fallbacks={
                "storage_path": "/yaml/photos",
                "port": 8181,
                "metadata_backend": "sqlite",
                "thumbnail_max_size": 256,
                "debug": True,
            }
        )
        assert config.storage_path == "/yaml/photos"
        assert config.port == 8181
        assert config.metadata_backend == "sqlite"
        assert config.thumbnail_max_size == 256
        assert config.debug is True

    def test_invalid_env_port(self, clean_env):
        clean_env.setenv("PHOTO_SERVER_PORT", "eighty")
        with pytest.raises(ValueError, match="PHOTO_SERVER_PORT"):
            load_server_config()

    def test_env_port_out_of_range(self, clean_env):
        clean_env.setenv("PHOTO_SERVER_PORT", "70000")
        with pytest.raises(ValueError, match="between 1 and 65535"):
            load_server_config()

    def test_invalid_backend_rejected(self, clean_env):
        with pytest.raises(ValueError, match="Invalid metadata backend"):
            load_server_config(metadata_backend="csv")

    def test_debug_flag_wins(self, clean_env):
        clean_env.setenv("PHOTO_DEBUG", "false")
        assert load_server_config(debug=True).debug is True


# -------------------------------------------------------------------------
# load_client_config()
# -------------------------------------------------------------------------


class TestLoadClientConfig:
    """Tests for load_client_config() precedence and required values."""

    def test_missing_server_url(self, clean_env):
        with pytest.raises(ValueError, match="Server URL not found"):
            load_client_config(library_path="/photos")

    def test_missing_library(self, clean_env):
        with pytest.raises(ValueError, match="Library path not found"):
            load_client_config(server_url="http://nas:8080")

    def test_env_vars_used(self, clean_env, tmp_path):
        clean_env.setenv("PHOTO_BACKUP_SERVER_URL", "http://nas:8080/")
        clean_env.setenv("PHOTO_BACKUP_LIBRARY", str(tmp_path))
        clean_env.setenv("PHOTO_BACKUP_LEDGER", str(tmp_path / "ledger.json"))
        clean_env.setenv("PHOTO_BACKUP_WIFI_ONLY", "0")

        config = load_client_config()
        assert config.server_url == "http://nas:8080"
        assert config.library_path == str(tmp_path)
        assert config.ledger_path == str(tmp_path / "ledger.json")
        assert config.wifi_only is False

    def test_cli_beats_env(self, clean_env):
        clean_env.setenv("PHOTO_BACKUP_SERVER_URL", "http://env-host:8080")
        clean_env.setenv("PHOTO_BACKUP_LIBRARY", "/env/photos")

        config = load_client_config(
            server_url="http://cli-host:8080", library_path="/cli/photos"
        )
        assert config.server_url == "http://cli-host:8080"
        assert config.library_path == "/cli/photos"

    def test_yaml_fallbacks_used(self, clean_env):
        config = load_client_config(
            yaml_fallbacks={
                "server_url": "http://yaml-host:8080",
                "library_path": "/yaml/photos",
                "wifi_only": False,
                "background_batch_limit": 10,
                "recent_outcomes_capacity": 5,
            }
        )
        assert config.server_url == "http://yaml-host:8080"
        assert config.wifi_only is False
        assert config.background_batch_limit == 10
        assert config.recent_outcomes_capacity == 5

    def test_wifi_only_defaults_true(self, clean_env):
        config = load_client_config(
            server_url="http://nas", library_path="/photos"
        )
        assert config.wifi_only is True

    def test_ledger_path_expands_user(self, clean_env, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        config = load_client_config(
            server_url="http://nas", library_path="/photos"
        )
        assert config.ledger_path == str(
            tmp_path / ".photo_backup" / "uploaded_photos.json"
        )
