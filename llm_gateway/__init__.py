"""llm-gateway: one OpenAI-style endpoint in front of several LLM backends.

Requests arrive at ``/{backend}/v1/chat/completions`` in the OpenAI
chat-completions envelope and are forwarded to the named backend, which is
either OpenAI-compatible or a native generate-content provider. Streaming
output from either kind comes back as OpenAI-style SSE chunks terminated by
``data: [DONE]``. Each backend also keeps a conversation history that can be
loaded, inspected and extended through ``/{backend}/conversation/*``.

Example:
    >>> from llm_gateway import create_app, load_config
    >>> import uvicorn
    >>> uvicorn.run(create_app(load_config()), host="127.0.0.1", port=8000)
"""

from .app import build_router, create_app
from .config_loader import load_config
from .core import (
    ClientRegistry,
    GatewayRouter,
    NativeProviderClient,
    OpenAICompatibleClient,
    ProviderClient,
)
from .logging import logger, setup_logging

__all__ = [
    "ClientRegistry",
    "GatewayRouter",
    "NativeProviderClient",
    "OpenAICompatibleClient",
    "ProviderClient",
    "build_router",
    "create_app",
    "load_config",
    "logger",
    "setup_logging",
]
