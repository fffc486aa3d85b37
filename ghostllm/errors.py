"""Error taxonomy for the GhostLLM gateway.

Every stage of the request lifecycle raises a GatewayError subclass. Each
class carries a coarse ``kind`` tag and the HTTP status the dispatcher uses
when it turns the failure into an error envelope.
"""

from typing import Optional


class GatewayError(Exception):
    """Base class for failures that are reported to the client."""

    kind = "internal_error"
    status = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ProtocolError(GatewayError):
    """Raised when the raw request cannot be parsed as HTTP."""

    kind = "protocol_error"
    status = 400


class InvalidRequestError(GatewayError):
    """Raised when a request body is missing, not JSON, or fails validation."""

    kind = "invalid_request_error"
    status = 400


class PayloadTooLargeError(GatewayError):
    """Raised when a request exceeds the configured size cap."""

    kind = "payload_too_large"
    status = 413


class NotFoundError(GatewayError):
    kind = "not_found"
    status = 404


class MethodNotAllowedError(GatewayError):
    kind = "method_not_allowed"
    status = 405


class ConfigurationError(GatewayError):
    """Raised when a provider has no credential configured."""

    kind = "configuration_error"
    status = 500


class TransportError(GatewayError):
    """Raised when an upstream cannot be reached (DNS, connect, timeout)."""

    kind = "transport_error"
    status = 502


class UpstreamError(GatewayError):
    """Raised when an upstream answers with a non-2xx status."""

    kind = "upstream_error"
    status = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None) -> None:
        self.upstream_status = upstream_status
        super().__init__(message)


class TranslationError(GatewayError):
    """Raised when an upstream reply does not have the expected shape."""

    kind = "translation_error"
    status = 502
