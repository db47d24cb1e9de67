"""Tests for duet.config — server settings from TOML and environment."""

import textwrap
from pathlib import Path

import pytest

from duet.config import (
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_PORT,
    ServerSettings,
    load_config,
)


@pytest.fixture
def config_dir(tmp_path):
    """Temporary directory for config files."""
    return tmp_path


def _write_config(config_dir: Path, content: str) -> Path:
    """Write a config.toml and return the path."""
    config_path = config_dir / "config.toml"
    config_path.write_text(textwrap.dedent(content))
    return config_path


class TestLoadConfig:
    def test_missing_file_returns_defaults(self, config_dir):
        cfg = load_config(config_dir / "nonexistent.toml", env={})
        assert isinstance(cfg, ServerSettings)
        assert cfg.host == "0.0.0.0"
        assert cfg.port == DEFAULT_PORT
        assert cfg.heartbeat_interval == DEFAULT_HEARTBEAT_INTERVAL
        assert cfg.admin_token is None

    def test_server_section(self, config_dir):
        path = _write_config(config_dir, """\
            [server]
            host = "127.0.0.1"
            port = 9000
            heartbeat_interval = 10
            admin_token = "hunter2"
        """)
        cfg = load_config(path, env={})
        assert cfg.host == "127.0.0.1"
        assert cfg.port == 9000
        assert cfg.heartbeat_interval == 10.0
        assert cfg.admin_token == "hunter2"

    def test_partial_section_keeps_defaults(self, config_dir):
        path = _write_config(config_dir, """\
            [server]
            port = 9001
        """)
        cfg = load_config(path, env={})
        assert cfg.port == 9001
        assert cfg.heartbeat_interval == DEFAULT_HEARTBEAT_INTERVAL

    def test_bad_toml_returns_defaults(self, config_dir):
        path = _write_config(config_dir, "this is [not valid toml\n")
        cfg = load_config(path, env={})
        assert cfg == ServerSettings()

    def test_bad_value_returns_defaults(self, config_dir):
        path = _write_config(config_dir, """\
            [server]
            port = "eighty"
        """)
        cfg = load_config(path, env={})
        assert cfg.port == DEFAULT_PORT

    def test_unrelated_sections_ignored(self, config_dir):
        path = _write_config(config_dir, """\
            [client]
            theme = "dark"
        """)
        assert load_config(path, env={}) == ServerSettings()


class TestEnvironment:
    def test_env_overrides_file(self, config_dir):
        path = _write_config(config_dir, """\
            [server]
            port = 9000
            admin_token = "from-file"
        """)
        cfg = load_config(path, env={"PORT": "7000", "ADMIN_PASSWORD": "from-env"})
        assert cfg.port == 7000
        assert cfg.admin_token == "from-env"

    def test_env_host_and_heartbeat(self, config_dir):
        cfg = load_config(
            config_dir / "missing.toml",
            env={"DUET_HOST": "::1", "DUET_HEARTBEAT_INTERVAL": "2.5"},
        )
        assert cfg.host == "::1"
        assert cfg.heartbeat_interval == 2.5

    def test_invalid_env_number_ignored(self, config_dir):
        cfg = load_config(config_dir / "missing.toml", env={"PORT": "not-a-port"})
        assert cfg.port == DEFAULT_PORT

    def test_empty_env_values_ignored(self, config_dir):
        cfg = load_config(config_dir / "missing.toml", env={"PORT": "", "ADMIN_PASSWORD": ""})
        assert cfg.port == DEFAULT_PORT
        assert cfg.admin_token is None
