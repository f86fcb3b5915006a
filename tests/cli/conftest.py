"""Shared fixtures for CLI tests."""

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml


@pytest.fixture
def tmp_config_path(tmp_path: Path) -> Path:
    """Provide a temporary config file path."""
    return tmp_path / "peerhost.yaml"


@pytest.fixture
def write_config(tmp_config_path: Path, tmp_path: Path):
    """Write a memory-backed config file, optionally with addon paths."""

    def _write(paths: list[str] | None = None) -> Path:
        data = {
            "node": {"data_dir": str(tmp_path / "data")},
            "addons": {"paths": paths or []},
            "storage": {"backend": "memory"},
        }
        tmp_config_path.write_text(yaml.safe_dump(data))
        return tmp_config_path

    return _write


@pytest.fixture
def no_logging_setup():
    """Keep CLI commands from replacing the root log handlers."""
    with patch("peerhost.cli.app.configure_logging") as mock:
        yield mock
