"""Tests for configuration loading and validation."""

from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
import yaml

from peerhost.config.loader import (
    CONFIG_ENV_VAR,
    ConfigError,
    load_config,
    resolve_config_path,
    save_config,
)
from peerhost.config.schema import PeerHostConfig


def test_default_config():
    """Test that default config has expected values."""
    config = PeerHostConfig()

    assert config.node.data_dir == "~/.peerhost/data"

    assert config.addons.paths == []
    assert config.addons.blocked == []
    assert config.addons.entry_point_group == "peerhost.addons"
    assert config.addons.gate_event_bus is False
    assert config.addons.gate_identity is False
    assert config.addons.gate_addon_access is False
    assert config.addons.audit_trail_size == 256

    assert config.storage.backend == "sqlite"
    assert config.storage.directory is None
    assert config.storage.namespace == "addon"

    assert config.logging.level == "INFO"


def test_storage_directory_defaults_under_data_dir():
    config = PeerHostConfig()
    config.node.data_dir = "/srv/peer"
    assert config.storage_directory == Path("/srv/peer/stores")

    config.storage.directory = "/mnt/stores"
    assert config.storage_directory == Path("/mnt/stores")


def test_data_dir_expands_user():
    config = PeerHostConfig()
    assert "~" not in str(config.data_dir)


def test_load_config_nonexistent_returns_defaults():
    """Test that loading a nonexistent config returns defaults."""
    with TemporaryDirectory() as tmpdir:
        config = load_config(Path(tmpdir) / "nonexistent.yaml")
        assert config.storage.backend == "sqlite"


def test_load_config_empty_file_returns_defaults():
    """Test that an empty config file returns defaults."""
    with TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "empty.yaml"
        config_path.write_text("")

        config = load_config(config_path)
        assert config.addons.paths == []


def test_load_config_partial_override():
    """Test that partial config overrides only specified values."""
    with TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "partial.yaml"

        partial_config = {
            "addons": {"paths": ["./addons/hello.py"], "gate_event_bus": True},
            "storage": {"backend": "memory"},
        }
        with open(config_path, "w") as f:
            yaml.safe_dump(partial_config, f)

        config = load_config(config_path)

        assert config.addons.paths == ["./addons/hello.py"]
        assert config.addons.gate_event_bus is True
        assert config.storage.backend == "memory"

        # Default values
        assert config.addons.gate_identity is False
        assert config.storage.namespace == "addon"


def test_load_config_invalid_yaml():
    """Test that invalid YAML raises ConfigError."""
    with TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "invalid.yaml"
        config_path.write_text("{ invalid yaml: [")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(config_path)


@pytest.mark.parametrize(
    "invalid_config",
    [
        {"storage": {"backend": "postgres"}},
        {"addons": {"audit_trail_size": 0}},
        {"logging": {"level": "LOUD"}},
    ],
)
def test_load_config_validation_error(invalid_config):
    """Test that invalid values raise ConfigError."""
    with TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "invalid_values.yaml"
        with open(config_path, "w") as f:
            yaml.safe_dump(invalid_config, f)

        with pytest.raises(ConfigError, match="validation failed"):
            load_config(config_path)


def test_load_config_non_mapping():
    with TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "list.yaml"
        config_path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="must be a mapping"):
            load_config(config_path)


def test_save_and_load_config():
    """Test saving and loading config roundtrip."""
    with TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "test.yaml"

        original = PeerHostConfig()
        original.addons.paths = ["registry:hello", "entrypoint:posts"]
        original.addons.blocked = ["evil"]
        original.storage.backend = "memory"

        save_config(original, config_path)
        loaded = load_config(config_path)

        assert loaded.addons.paths == ["registry:hello", "entrypoint:posts"]
        assert loaded.addons.blocked == ["evil"]
        assert loaded.storage.backend == "memory"


def test_save_config_creates_directory():
    """Test that save_config creates parent directory if needed."""
    with TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "nested" / "dir" / "config.yaml"

        save_config(PeerHostConfig(), str(config_path))

        assert config_path.exists()
        assert config_path.parent.is_dir()


def test_resolve_config_path_prefers_explicit(tmp_path, monkeypatch):
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.yaml"))
    assert resolve_config_path(tmp_path / "explicit.yaml") == tmp_path / "explicit.yaml"


def test_load_config_from_environment(tmp_path, monkeypatch):
    config_path = tmp_path / "env.yaml"
    config_path.write_text(yaml.safe_dump({"storage": {"backend": "memory"}}))
    monkeypatch.setenv(CONFIG_ENV_VAR, str(config_path))

    config = load_config()

    assert config.storage.backend == "memory"


def test_relative_directories_resolve_against_config_file(tmp_path):
    node_dir = tmp_path / "node"
    node_dir.mkdir()
    config_path = node_dir / "peerhost.yaml"
    config_path.write_text(
        yaml.safe_dump({"node": {"data_dir": "data"}, "storage": {"directory": "db"}})
    )

    config = load_config(config_path)

    assert config.data_dir == node_dir.resolve() / "data"
    assert config.storage_directory == node_dir.resolve() / "db"


def test_absolute_and_home_directories_unchanged(tmp_path):
    config_path = tmp_path / "peerhost.yaml"
    config_path.write_text(
        yaml.safe_dump({"node": {"data_dir": "~/peer"}, "storage": {"directory": "/srv/db"}})
    )

    config = load_config(config_path)

    assert config.node.data_dir == "~/peer"
    assert config.storage.directory == "/srv/db"


def test_save_config_returns_written_path(tmp_path):
    written = save_config(PeerHostConfig(), tmp_path / "out.yaml")

    assert written == tmp_path / "out.yaml"
    assert yaml.safe_load(written.read_text())["node"]["data_dir"] == "~/.peerhost/data"
