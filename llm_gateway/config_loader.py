"""Gateway configuration: a YAML file plus an optional ``.env`` of secrets.

Placeholders such as ``${ACME_KEY}`` or ``$ACME_KEY`` anywhere in string
values are filled from the paired ``.env`` file first and the process
environment second. The ``.env`` file is read with ``dotenv_values`` so the
process environment is never modified.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError

logger = logging.getLogger("llm-gateway")

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"
CONFIG_ENV_VAR = "LLMGW_CONFIG"
HOST_ENV_VAR = "LLMGW_HOST"
PORT_ENV_VAR = "LLMGW_PORT"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def resolve_config_path(path: str) -> Path:
    """Absolute paths are used as-is; relative ones hang off the project root."""
    candidate = Path(path)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def resolve_env_path(config_path: Path, env_path: Optional[str] = None) -> Path:
    """Find the ``.env`` file that belongs to ``config_path``.

    ``config_<name>.yaml`` pairs with ``.env_<name>`` in the same directory;
    any other file name pairs with a plain ``.env``.
    """
    if env_path:
        return resolve_config_path(env_path)
    prefix, _, name = config_path.stem.partition("config_")
    env_name = f".env_{name}" if not prefix and name else ".env"
    return config_path.parent / env_name


def load_env_values(env_path: Path) -> dict[str, str]:
    if not env_path.is_file():
        return {}
    return {key: value for key, value in dotenv_values(env_path).items() if value is not None}


def _read_yaml(config_path: Path) -> dict:
    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file not found: {config_path}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {config_path} must contain a mapping, got {type(data).__name__}"
        )
    return data


def load_config(
    path: Optional[str] = None,
    env_path: Optional[str] = None,
    substitute_env: bool = True,
) -> dict:
    """Read the gateway configuration.

    Args:
        path: Config file. Falls back to ``$LLMGW_CONFIG`` and then to
              ``configs/config_default.yaml`` under the project root.
        env_path: Explicit ``.env`` file instead of the one paired with
              the config file name.
        substitute_env: Fill ``$VAR`` placeholders. Turn off to get the
              file exactly as written.

    Raises:
        ConfigurationError: the file is missing, unparsable or not a mapping.
    """
    config_path = resolve_config_path(path or os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    logger.info("Reading gateway config %s", config_path)
    try:
        data = _read_yaml(config_path)
    except ConfigurationError as exc:
        logger.error("%s", exc.message)
        raise

    if substitute_env:
        env_file = resolve_env_path(config_path, env_path)
        secrets = load_env_values(env_file)
        if secrets:
            logger.info("Using %d values from %s", len(secrets), env_file)
        data = _substitute_env_vars(data, secrets)

    logger.info("Config loaded with %d backends", len(data.get("backends") or {}))
    return data


def _lookup_placeholder(name: str, env_values: Mapping[str, str]) -> Optional[str]:
    if name in env_values:
        return env_values[name]
    return os.environ.get(name)


def _substitute_env_vars(obj: Any, env_values: Optional[Mapping[str, str]] = None) -> Any:
    """Fill placeholders in every string nested inside ``obj``.

    An unresolvable placeholder stays in the value literally and is logged.
    """
    env_values = env_values or {}
    if isinstance(obj, dict):
        return {key: _substitute_env_vars(value, env_values) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if not isinstance(obj, str):
        return obj

    def fill(match: "re.Match[str]") -> str:
        name = match.group(1) or match.group(2)
        value = _lookup_placeholder(name, env_values)
        if value is None:
            logger.warning("Config placeholder %s has no value; leaving it as-is", match.group(0))
            return match.group(0)
        return value

    return _PLACEHOLDER.sub(fill, obj)


def resolve_server_address(config: Mapping[str, Any]) -> tuple[str, int]:
    """Bind address: LLMGW_HOST/LLMGW_PORT, else ``gateway_settings.server``."""
    server = (config.get("gateway_settings") or {}).get("server") or {}
    host = os.getenv(HOST_ENV_VAR) or str(server.get("host") or DEFAULT_HOST)

    raw_port = os.getenv(PORT_ENV_VAR)
    if raw_port is None:
        raw_port = server.get("port", DEFAULT_PORT)
    try:
        port = int(raw_port)
    except (TypeError, ValueError):
        logger.warning("Invalid port %r; using %d", raw_port, DEFAULT_PORT)
        port = DEFAULT_PORT
    return host, port


def logging_level(config: Mapping[str, Any]) -> str:
    logging_cfg = (config.get("gateway_settings") or {}).get("logging") or {}
    return str(logging_cfg.get("level") or "INFO")
