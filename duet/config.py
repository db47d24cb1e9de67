"""
duet/config.py - Server configuration

Reads settings from a platform-appropriate config file, then applies
environment overrides (the usual way to configure a hosted deployment):
  - macOS/Linux: ~/.duet/config.toml
  - Windows: %APPDATA%\\duet\\config.toml

Example:
    [server]
    host = "0.0.0.0"
    port = 8080
    heartbeat_interval = 30
    admin_token = "change-me"

Environment:
    PORT, DUET_HOST, DUET_HEARTBEAT_INTERVAL, ADMIN_PASSWORD
"""

import logging
import os
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================


def _get_config_dir() -> Path:
    """Get platform-appropriate config directory."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "duet"
    return Path.home() / ".duet"


CONFIG_DIR = _get_config_dir()
CONFIG_PATH = CONFIG_DIR / "config.toml"

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_HEARTBEAT_INTERVAL = 30.0


# ============================================================================
# Data Types
# ============================================================================


@dataclass
class ServerSettings:
    """Everything the signaling server needs at startup."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    admin_token: str | None = None  # /stats is disabled without one


# ============================================================================
# Parsing
# ============================================================================


def _parse_server_section(data: dict) -> ServerSettings:
    defaults = ServerSettings()
    return ServerSettings(
        host=data.get("host", defaults.host),
        port=int(data.get("port", defaults.port)),
        heartbeat_interval=float(data.get("heartbeat_interval", defaults.heartbeat_interval)),
        admin_token=data.get("admin_token"),
    )


def _apply_env(settings: ServerSettings, env: Mapping[str, str]) -> ServerSettings:
    """Overlay environment variables. Unparseable numbers are logged and skipped."""
    if env.get("DUET_HOST"):
        settings.host = env["DUET_HOST"]

    if env.get("PORT"):
        try:
            settings.port = int(env["PORT"])
        except ValueError:
            logger.warning(f"Ignoring invalid PORT={env['PORT']!r}")

    if env.get("DUET_HEARTBEAT_INTERVAL"):
        try:
            settings.heartbeat_interval = float(env["DUET_HEARTBEAT_INTERVAL"])
        except ValueError:
            logger.warning(
                f"Ignoring invalid DUET_HEARTBEAT_INTERVAL={env['DUET_HEARTBEAT_INTERVAL']!r}"
            )

    if env.get("ADMIN_PASSWORD"):
        settings.admin_token = env["ADMIN_PASSWORD"]

    return settings


def load_config(
    path: Path | None = None, env: Mapping[str, str] | None = None
) -> ServerSettings:
    """
    Read settings from TOML, then apply environment overrides.

    Args:
        path: Override config file path (default: ~/.duet/config.toml)
        env: Override environment mapping (default: os.environ)

    Returns:
        ServerSettings. Missing file or bad TOML falls back to defaults.
    """
    config_path = path or CONFIG_PATH
    settings = ServerSettings()

    if config_path.exists():
        try:
            with open(config_path, "rb") as f:
                raw = tomllib.load(f)
        except Exception as e:
            logger.warning(f"Failed to parse {config_path}: {e}")
            raw = {}

        server_data = raw.get("server", {})
        if isinstance(server_data, dict):
            try:
                settings = _parse_server_section(server_data)
            except (TypeError, ValueError) as e:
                logger.warning(f"Bad [server] section in {config_path}: {e}")

    return _apply_env(settings, os.environ if env is None else env)
