"""HTTP transport for the gateway."""

from .routes import gateway_endpoint, wait_for_pending_tasks
from .sink import QueueSink

__all__ = [
    "QueueSink",
    "gateway_endpoint",
    "wait_for_pending_tasks",
]
