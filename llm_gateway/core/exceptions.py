"""Core exceptions for the gateway."""

from typing import Optional


class GatewayError(Exception):
    """Base exception for gateway errors."""

    status_code = 500
    code = "gateway_error"
    error_type = "server_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(GatewayError):
    """Raised when there's an issue with the configuration."""
    pass


class UnknownBackend(GatewayError):
    """Raised when a request names a backend that is not configured."""

    status_code = 400
    code = "unknown_backend"
    error_type = "invalid_request_error"

    def __init__(self, backend_id: str) -> None:
        super().__init__(f"No settings for backend '{backend_id}'")
        self.backend_id = backend_id


class RouteNotFound(GatewayError):
    """Raised when the request path matches no known endpoint."""

    status_code = 404
    code = "route_not_found"
    error_type = "invalid_request_error"

    def __init__(self, path: str) -> None:
        super().__init__(f"No route for path '{path}'")
        self.path = path


class MalformedRequest(GatewayError):
    """Raised when an incoming request is missing required fields."""

    status_code = 400
    error_type = "invalid_request_error"

    def __init__(self, message: str, code: str = "invalid_request") -> None:
        super().__init__(message)
        self.code = code


class UpstreamUnavailable(GatewayError):
    """Raised when a provider call cannot be issued or is rejected.

    ``status_code`` carries the provider's HTTP status when one was received,
    otherwise it falls back to 500.
    """

    code = "upstream_error"
    error_type = "api_error"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.upstream_status = status_code
        self.status_code = status_code or 500


class TranscodeAnomaly(GatewayError):
    """A streamed unit matched none of the known provider shapes."""

    code = "transcode_anomaly"
