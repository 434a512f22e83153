"""Process entry point: the gateway app built from the configured YAML file."""

from .app import create_app
from .config_loader import load_config, logging_level, resolve_server_address
from .logging import setup_logging

config = load_config()

# Initialize logging
logger = setup_logging(logging_level(config))

app = create_app(config)

# Environment variables LLMGW_HOST / LLMGW_PORT take priority over the config file
SERVER_HOST, SERVER_PORT = resolve_server_address(config)

__all__ = ["app", "config", "SERVER_HOST", "SERVER_PORT"]
