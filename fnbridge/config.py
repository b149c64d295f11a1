"""
Configuration for fn-bridge.

The bridge is configured by an explicit, immutable ``BridgeConfig`` value
that is handed to the functions manager and the MCP server.  Values are
resolved from (highest priority first):

  1. keyword overrides (CLI flags)
  2. environment variables
  3. a YAML config file
  4. google.auth.default() (project only)
  5. built-in defaults
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import google.auth
import yaml
from google.auth import exceptions as auth_exceptions

from fnbridge.errors import ConfigError

logger = logging.getLogger("fn-bridge.config")

DEFAULT_REGION = "us-central1"
DEFAULT_TIMEOUT = 30.0  # seconds, applied to every outbound call
DEFAULT_LOG_LEVEL = "WARNING"
MAX_RESPONSE_BYTES = 50 * 1024  # 50 KB truncation limit

# The directory where fn-bridge looks for its default config file.
CONFIG_DIR = Path.home() / ".fn-bridge"
_CONFIG_FILE = CONFIG_DIR / "config.yaml"

_PROJECT_ENV_VARS = ("FN_BRIDGE_PROJECT", "GOOGLE_CLOUD_PROJECT", "GCLOUD_PROJECT")
_REGION_ENV_VARS = ("FN_BRIDGE_REGION", "FUNCTION_REGION")

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class BridgeConfig:
    project_id: str
    region: str = DEFAULT_REGION
    timeout: float = DEFAULT_TIMEOUT
    log_level: str = DEFAULT_LOG_LEVEL
    max_response_bytes: int = MAX_RESPONSE_BYTES


# ---------------------------------------------------------------------------
# Config file
# ---------------------------------------------------------------------------

def _load_file(path: str | os.PathLike | None, env: Mapping[str, str]) -> dict:
    """Load the YAML config file.

    An explicitly named file must exist.  The default file is optional.
    """
    explicit = path or env.get("FN_BRIDGE_CONFIG")
    file_path = Path(explicit) if explicit else _CONFIG_FILE

    if not file_path.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {file_path}")
        return {}

    try:
        data = yaml.safe_load(file_path.read_text())
    except (yaml.YAMLError, OSError) as exc:
        raise ConfigError(f"Cannot read config file {file_path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {file_path} must contain a mapping")
    logger.debug("Loaded config file %s", file_path)
    return data


# ---------------------------------------------------------------------------
# Resolution helpers
# ---------------------------------------------------------------------------

def _first(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


def _from_env(env: Mapping[str, str], names: tuple[str, ...]) -> str | None:
    for name in names:
        value = env.get(name)
        if value:
            return value
    return None


def _default_project() -> str | None:
    """Return the project bound to Application Default Credentials, if any."""
    try:
        _credentials, project = google.auth.default()
    except auth_exceptions.DefaultCredentialsError as exc:
        logger.debug("google.auth.default() failed: %s", exc)
        return None
    return project or None


def _as_float(name: str, value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
    if result <= 0:
        raise ConfigError(f"{name} must be positive, got {value!r}")
    return result


def _as_int(name: str, value: Any) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None
    if result <= 0:
        raise ConfigError(f"{name} must be positive, got {value!r}")
    return result


def _as_log_level(value: Any) -> str:
    level = str(value).upper()
    if level not in _LOG_LEVELS:
        raise ConfigError(
            f"log_level must be one of {', '.join(_LOG_LEVELS)}, got {value!r}"
        )
    return level


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def load_config(
    path: str | os.PathLike | None = None,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> BridgeConfig:
    """Resolve a BridgeConfig.

    Parameters
    ----------
    path:
        YAML config file.  Falls back to ``FN_BRIDGE_CONFIG`` and then
        ``~/.fn-bridge/config.yaml``.
    env:
        Environment mapping, defaults to ``os.environ``.
    overrides:
        ``project_id``, ``region``, ``timeout``, ``log_level`` or
        ``max_response_bytes``.  ``None`` values are ignored.

    Raises ConfigError when no project can be determined or a value is
    invalid.
    """
    if env is None:
        env = os.environ
    unknown = set(overrides) - {
        "project_id", "region", "timeout", "log_level", "max_response_bytes",
    }
    if unknown:
        raise ConfigError(f"Unknown config option(s): {', '.join(sorted(unknown))}")

    file_cfg = _load_file(path, env)

    project = _first(
        overrides.get("project_id"),
        _from_env(env, _PROJECT_ENV_VARS),
        file_cfg.get("project_id"),
    )
    if project is None:
        project = _default_project()
    if not project:
        raise ConfigError(
            "Cannot determine GCP project. Set FN_BRIDGE_PROJECT or "
            "GOOGLE_CLOUD_PROJECT, pass --project, or configure gcloud "
            "with a default project."
        )

    region = _first(
        overrides.get("region"),
        _from_env(env, _REGION_ENV_VARS),
        file_cfg.get("region"),
        DEFAULT_REGION,
    )
    timeout = _first(
        overrides.get("timeout"),
        env.get("FN_BRIDGE_TIMEOUT"),
        file_cfg.get("timeout"),
        DEFAULT_TIMEOUT,
    )
    log_level = _first(
        overrides.get("log_level"),
        env.get("FN_BRIDGE_LOG_LEVEL"),
        file_cfg.get("log_level"),
        DEFAULT_LOG_LEVEL,
    )
    max_bytes = _first(
        overrides.get("max_response_bytes"),
        env.get("FN_BRIDGE_MAX_RESPONSE_BYTES"),
        file_cfg.get("max_response_bytes"),
        MAX_RESPONSE_BYTES,
    )

    return BridgeConfig(
        project_id=str(project),
        region=str(region),
        timeout=_as_float("timeout", timeout),
        log_level=_as_log_level(log_level),
        max_response_bytes=_as_int("max_response_bytes", max_bytes),
    )


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Send log records to stderr so stdout stays free for MCP / JSON output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(name)s: %(message)s",
        stream=sys.stderr,
    )
